"""
Tests for SVG rendering of simulation scenes.
"""

import pytest
from shapely.geometry import Point, box

from pipe_render import (
    bounds_edges,
    build_pipe_pieces,
    clip_line_outside_polygon,
    make_view,
    project_point,
    render_scene_svg,
    resolve_occlusion,
    DEFAULT_RENDER_PARAMS,
)
from pipe_sim import PipeSimulation


FRONT_POSE = {
    'position': (0.0, 0.0, 10.0),
    'target': (0.0, 0.0, 0.0),
    'up': (0.0, 1.0, 0.0),
    'fovy': 90.0,
}


def grown_scene(ticks=12):
    sim = PipeSimulation(seed=4)
    sim.init(7, {'spawn_rate': 0.0, 'turn_probability': 0.0,
                 'segment_update_delay': 3})
    sim.spawn(position=(1, 3, 3), heading='+x', color=0)
    scene = None
    for _ in range(ticks):
        scene = sim.step()
    return scene


class TestProjection:

    def test_target_projects_to_centre(self):
        view = make_view(FRONT_POSE, 200)
        sx, sy, depth = project_point((0.0, 0.0, 0.0), view)
        assert (sx, sy) == pytest.approx((0.0, 0.0))
        assert depth == pytest.approx(10.0)

    def test_axes_map_to_screen(self):
        view = make_view(FRONT_POSE, 200)
        # fovy 90 on a 200px canvas gives a focal length of 100
        assert view['focal'] == pytest.approx(100.0)
        sx, sy, _ = project_point((1.0, 0.0, 0.0), view)
        assert sx == pytest.approx(10.0)
        assert sy == pytest.approx(0.0)
        sx, sy, _ = project_point((0.0, 1.0, 0.0), view)
        assert sy == pytest.approx(-10.0)

    def test_points_behind_camera_dropped(self):
        view = make_view(FRONT_POSE, 200)
        assert project_point((0.0, 0.0, 20.0), view) is None


class TestOcclusion:

    def test_near_piece_hides_far_piece(self):
        near = Point(0, 0).buffer(10)
        far = Point(5, 0).buffer(10)
        visible, covered = resolve_occlusion([(20.0, far, 'far'), (5.0, near, 'near')])
        (near_part, near_color), (far_part, far_color) = visible
        assert (near_color, far_color) == ('near', 'far')
        assert near_part.area == pytest.approx(near.area)
        assert far_part.area < far.area
        assert not far_part.intersects(near.buffer(-0.01))
        assert covered.area == pytest.approx(near.union(far).area)

    def test_empty_scene_has_no_cover(self):
        assert resolve_occlusion([]) == ([], None)

    def test_line_clipped_outside_polygon(self):
        square = box(-1, -1, 1, 1)
        parts = clip_line_outside_polygon(-5, 0, 5, 0, square)
        assert len(parts) == 2
        xs = sorted(round(x, 6) for part in parts for x in (part[0], part[2]))
        assert xs == [-5.0, -1.0, 1.0, 5.0]

    def test_line_without_occluder_untouched(self):
        assert clip_line_outside_polygon(0, 0, 3, 4, None) == [(0, 0, 3, 4)]


class TestSceneRendering:

    def test_bounds_cube_has_twelve_edges(self):
        assert len(bounds_edges(5, 2.0)) == 12

    def test_pieces_for_grown_pipe(self):
        scene = grown_scene()
        view = make_view(scene['camera'], 800)
        pieces = build_pipe_pieces(scene, view, DEFAULT_RENDER_PARAMS)
        # four committed segments, three joints, no partial segment on a commit tick
        assert len(pieces) == 4 + 3
        assert all(color == '#ff4343' for _, _, color in pieces)

    def test_uninitialised_scene_renders_background_only(self):
        svg = render_scene_svg(PipeSimulation().step(), 200, 200)
        assert '<svg' in svg
        assert '<path' not in svg

    def test_pipe_colour_in_output(self):
        svg = render_scene_svg(grown_scene(), 400, 400)
        assert '<svg' in svg
        assert '<path' in svg
        assert '#ff4343' in svg
