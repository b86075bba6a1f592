import math

import drawsvg as draw
from shapely.geometry import LineString, Point

from pipe_sim import grid_to_world


# ============================================================================
# RENDER PARAMETERS
# ============================================================================

# Default render parameters (can be overridden via render_scene_svg)
DEFAULT_RENDER_PARAMS = {
    'pipe_radius': 0.4,         # world units, relative to a 2.0 cell spacing
    'joint_scale': 1.1,         # joint disc radius as a multiple of pipe radius
    'stroke_width': 0.5,        # outline width in pixels
    'stroke': 'black',
    'background': 'black',
    'bounds_color': '#323232',  # grid bounding cube wireframe
    'draw_bounds': True,
    'near_plane': 0.1,
}


# ============================================================================
# 3-D VECTOR HELPERS
# ============================================================================

def _sub(a, b):
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a, b):
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _cross(a, b):
    return (a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0])


def _normalize(v):
    mag = math.sqrt(_dot(v, v))
    if mag < 1e-10:
        return (0.0, 0.0, 0.0)
    return (v[0] / mag, v[1] / mag, v[2] / mag)


# ============================================================================
# PROJECTION
# ============================================================================

def make_view(pose, canvas_height):
    """Build a look-at basis and focal length from a camera pose dict."""
    eye = pose['position']
    forward = _normalize(_sub(pose['target'], eye))
    right = _normalize(_cross(forward, pose['up']))
    if right == (0.0, 0.0, 0.0):
        # looking straight along the up axis
        right = (1.0, 0.0, 0.0)
    up = _cross(right, forward)
    focal = (canvas_height / 2.0) / math.tan(math.radians(pose['fovy']) / 2.0)
    return {'eye': eye, 'forward': forward, 'right': right, 'up': up, 'focal': focal}


def project_point(point, view, near_plane=0.1):
    """Project a world point to screen coords (origin centre, y down).

    Returns (sx, sy, depth), or None for points behind the near plane.
    """
    rel = _sub(point, view['eye'])
    depth = _dot(rel, view['forward'])
    if depth <= near_plane:
        return None
    scale = view['focal'] / depth
    return (_dot(rel, view['right']) * scale, -_dot(rel, view['up']) * scale, depth)


# ============================================================================
# PIPE PIECES
# ============================================================================

def _segment_piece(a, b, radius, view, near_plane):
    pa = project_point(a, view, near_plane)
    pb = project_point(b, view, near_plane)
    if pa is None or pb is None:
        return None
    r_proj = radius * view['focal'] * 0.5 * (1.0 / pa[2] + 1.0 / pb[2])
    if (pa[0], pa[1]) == (pb[0], pb[1]):
        poly = Point(pa[0], pa[1]).buffer(r_proj)
    else:
        poly = LineString([(pa[0], pa[1]), (pb[0], pb[1])]).buffer(r_proj, cap_style='flat')
    return ((pa[2] + pb[2]) / 2.0, poly)


def _joint_piece(center, radius, view, near_plane):
    pc = project_point(center, view, near_plane)
    if pc is None:
        return None
    return (pc[2], Point(pc[0], pc[1]).buffer(radius * view['focal'] / pc[2]))


def build_pipe_pieces(scene, view, params):
    """Flatten the scene's pipes into (depth, polygon, color) screen pieces.

    Each committed segment becomes a flat-capped band, each interior joint a
    disc, and the partially grown segment a band from the head to the tip.
    """
    dimension = scene['grid_dimension']
    cell_size = scene['cell_size']
    radius = params['pipe_radius']
    joint_radius = radius * params['joint_scale']
    near = params['near_plane']

    pieces = []
    for pipe in scene['pipes']:
        color = pipe['color']
        points = [grid_to_world(p, dimension, cell_size) for p in pipe['points']]
        for i in range(len(points) - 1):
            piece = _segment_piece(points[i], points[i + 1], radius, view, near)
            if piece is not None:
                pieces.append(piece + (color,))
            if i < len(points) - 2:
                joint = _joint_piece(points[i + 1], joint_radius, view, near)
                if joint is not None:
                    pieces.append(joint + (color,))
        if pipe['growth_progress'] > 0:
            head = grid_to_world(pipe['head'], dimension, cell_size)
            tip = grid_to_world(pipe['tip'], dimension, cell_size)
            piece = _segment_piece(head, tip, radius, view, near)
            if piece is not None:
                pieces.append(piece + (color,))
    return pieces


def resolve_occlusion(pieces):
    """Hidden-surface removal for screen pieces.

    Walks pieces nearest first, subtracting everything already covered, so
    the visible parts returned are pairwise disjoint. Returns
    (visible_pieces, covered_union) where visible_pieces is a list of
    (polygon, color) and covered_union is None for an empty scene.
    """
    visible = []
    covered = None
    for depth, poly, color in sorted(pieces, key=lambda p: p[0]):
        part = poly if covered is None else poly.difference(covered)
        if not part.is_empty:
            visible.append((part, color))
        covered = poly if covered is None else covered.union(poly)
    return visible, covered


# ============================================================================
# CLIPPING + DRAWING HELPERS
# ============================================================================

def clip_line_outside_polygon(x1, y1, x2, y2, occlusion_poly):
    """Clip a line segment to stay OUTSIDE the occlusion polygon.

    Returns list of (x1, y1, x2, y2) tuples for visible line segments.
    """
    if occlusion_poly is None:
        return [(x1, y1, x2, y2)]

    clipped = LineString([(x1, y1), (x2, y2)]).difference(occlusion_poly)
    if clipped.is_empty:
        return []

    if clipped.geom_type == 'LineString':
        parts = [clipped]
    else:
        parts = [g for g in clipped.geoms if g.geom_type == 'LineString']

    result = []
    for geom in parts:
        coords = list(geom.coords)
        for i in range(len(coords) - 1):
            result.append((coords[i][0], coords[i][1], coords[i + 1][0], coords[i + 1][1]))
    return result


def _polygons_of(geom):
    if geom.geom_type == 'Polygon':
        return [geom]
    if geom.geom_type in ('MultiPolygon', 'GeometryCollection'):
        return [g for g in geom.geoms if g.geom_type == 'Polygon']
    return []


def draw_polygon(drawing, geom, fill, stroke, sw):
    """Append a shapely (multi)polygon, holes included, as one SVG path."""
    polys = _polygons_of(geom)
    if not polys:
        return
    path = draw.Path(fill=fill, stroke=stroke, stroke_width=sw, fill_rule='evenodd')
    for poly in polys:
        for ring in [poly.exterior] + list(poly.interiors):
            coords = list(ring.coords)
            path.M(coords[0][0], coords[0][1])
            for x, y in coords[1:]:
                path.L(x, y)
            path.Z()
    drawing.append(path)


def bounds_edges(dimension, cell_size):
    """World-space edges of the cube enclosing the grid."""
    h = (dimension / 2.0) * cell_size
    corners = [(x, y, z) for x in (-h, h) for y in (-h, h) for z in (-h, h)]
    edges = []
    for i, a in enumerate(corners):
        for b in corners[i + 1:]:
            # corners differing in exactly one axis
            if sum(1 for u, v in zip(a, b) if u != v) == 1:
                edges.append((a, b))
    return edges


def draw_bounds(drawing, scene, view, occlusion_poly, params):
    for a, b in bounds_edges(scene['grid_dimension'], scene['cell_size']):
        pa = project_point(a, view, params['near_plane'])
        pb = project_point(b, view, params['near_plane'])
        if pa is None or pb is None:
            continue
        for sx1, sy1, sx2, sy2 in clip_line_outside_polygon(pa[0], pa[1], pb[0], pb[1],
                                                            occlusion_poly):
            drawing.append(draw.Line(sx1, sy1, sx2, sy2, stroke=params['bounds_color'],
                                     stroke_width=params['stroke_width'], fill='none'))


# ============================================================================
# SCENE RENDERING
# ============================================================================

def render_scene_drawing(scene, width=800, height=800, render_params=None):
    """Render a scene description to a drawsvg Drawing.

    Args:
        scene: dict returned by PipeSimulation.step() / scene()
        width, height: canvas size in pixels
        render_params: overrides for DEFAULT_RENDER_PARAMS
    """
    params = dict(DEFAULT_RENDER_PARAMS, **(render_params or {}))
    d = draw.Drawing(width, height, origin='center')
    d.append(draw.Rectangle(-width / 2.0, -height / 2.0, width, height,
                            fill=params['background']))

    if not scene['grid_dimension']:
        return d

    view = make_view(scene['camera'], height)
    visible, covered = resolve_occlusion(build_pipe_pieces(scene, view, params))

    if params['draw_bounds']:
        draw_bounds(d, scene, view, covered, params)

    for poly, color in visible:
        draw_polygon(d, poly, color, params['stroke'], params['stroke_width'])
    return d


def render_scene_svg(scene, width=800, height=800, render_params=None):
    """Render a scene description to an SVG string."""
    return render_scene_drawing(scene, width, height, render_params).as_svg()
