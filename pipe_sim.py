import logging
import math
import random

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

MAX_PIPES = 10
MAX_PIPE_LENGTH = 30
LENGTH_MARGIN = 5          # pipes retire a few moves short of MAX_PIPE_LENGTH
GRID_DIMENSION = 20
SEGMENT_LENGTH = 1         # cells per committed move
CELL_SIZE = 2.0            # world units between neighbouring cell centres

FALLBACK_ALLOW_REVERSAL = 'allow-reversal'
FALLBACK_CONTINUE_STRAIGHT = 'continue-straight'
FALLBACK_POLICIES = (FALLBACK_ALLOW_REVERSAL, FALLBACK_CONTINUE_STRAIGHT)

STATE_INACTIVE = 'inactive'
STATE_ACTIVE = 'active'
STATE_TERMINATED = 'terminated'

MIN_GROWTH_SPEED = 0.001
MAX_GROWTH_SPEED = 0.999
MAX_SEGMENT_DELAY = 10000  # keeps per-tick growth steps well above float resolution

DEFAULT_CONFIG = {
    'fade_speed': 1,            # consumed by renderers only
    'spawn_rate': 0.15,         # per-tick spawn probability
    'turn_probability': 0.25,   # per-move direction change probability
    'max_active_pipes': 4,
    'segment_update_delay': 10, # ticks per committed move
    'growth_speed': 0.05,       # per-tick growth progress increment
    'fallback_policy': FALLBACK_CONTINUE_STRAIGHT,
    'camera_speed': 0.002,      # idle orbit radians per tick
}

PIPE_COLORS = [
    (255, 67, 67),    # red
    (67, 255, 67),    # green
    (67, 67, 255),    # blue
    (255, 255, 67),   # yellow
    (255, 67, 255),   # magenta
    (67, 255, 255),   # cyan
    (255, 165, 67),   # orange
    (165, 67, 255),   # purple
]

# Heading order matters: the selector enumerates candidates in this order.
DIRECTIONS = {
    '+x': (1, 0, 0), '-x': (-1, 0, 0),
    '+y': (0, 1, 0), '-y': (0, -1, 0),
    '+z': (0, 0, 1), '-z': (0, 0, -1),
}
OPPOSITE = {
    '+x': '-x', '-x': '+x',
    '+y': '-y', '-y': '+y',
    '+z': '-z', '-z': '+z',
}
HEADINGS = list(DIRECTIONS)


def step_cell(cell, heading, distance=SEGMENT_LENGTH):
    dx, dy, dz = DIRECTIONS[heading]
    return (cell[0] + dx * distance, cell[1] + dy * distance, cell[2] + dz * distance)


def color_hex(color_index):
    r, g, b = PIPE_COLORS[color_index % len(PIPE_COLORS)]
    return '#{:02x}{:02x}{:02x}'.format(r, g, b)


def grid_to_world(cell, dimension, cell_size=CELL_SIZE):
    """Map a (possibly fractional) grid coordinate to world space.

    The lattice is centred on the origin, so the camera orbit target (0, 0, 0)
    sits in the middle of the grid for odd and even dimensions alike.
    """
    half = (dimension - 1) / 2.0
    return tuple((c - half) * cell_size for c in cell)


# ============================================================================
# OCCUPANCY GRID
# ============================================================================

class OccupancyGrid:
    """Dense cubic lattice of occupied flags, stored as one flat bytearray.

    Occupancy only ever grows: there is no way to clear a cell.
    """

    def __init__(self, dimension):
        if not isinstance(dimension, int) or isinstance(dimension, bool) or dimension <= 0:
            raise ValueError("grid dimension must be a positive integer, got {!r}".format(dimension))
        self.dimension = dimension
        self.cells = bytearray(dimension ** 3)

    def _offset(self, x, y, z):
        d = self.dimension
        return ((x * d) + y) * d + z

    def in_bounds(self, x, y, z):
        d = self.dimension
        return 0 <= x < d and 0 <= y < d and 0 <= z < d

    def is_free(self, x, y, z):
        if not self.in_bounds(x, y, z):
            return False
        return not self.cells[self._offset(x, y, z)]

    def mark_occupied(self, x, y, z):
        if self.in_bounds(x, y, z):
            self.cells[self._offset(x, y, z)] = 1

    def occupied_count(self):
        return sum(self.cells)


# ============================================================================
# DIRECTION SELECTION
# ============================================================================

def free_headings(grid, position, exclude=None):
    """Headings whose next cell from position is free, in DIRECTIONS order."""
    result = []
    for heading in HEADINGS:
        if heading == exclude:
            continue
        if grid.is_free(*step_cell(position, heading)):
            result.append(heading)
    return result


def select_direction(grid, heading, position, rng,
                     fallback_policy=FALLBACK_CONTINUE_STRAIGHT):
    """Pick the next heading for a pipe at position.

    The exact reverse of heading is never offered while any other free
    candidate exists. With no free candidate left the fallback policy
    decides: 'allow-reversal' retries with the reverse heading allowed and
    returns None if that is blocked too, 'continue-straight' keeps heading.
    """
    reverse = OPPOSITE[heading]
    candidates = free_headings(grid, position, exclude=reverse)
    if candidates:
        return rng.choice(candidates)

    if fallback_policy == FALLBACK_ALLOW_REVERSAL:
        if grid.is_free(*step_cell(position, reverse)):
            return reverse
        return None
    return heading


# ============================================================================
# GROWTH SCHEDULING
# ============================================================================

class GrowthScheduler:
    """Separates the logical move cadence from the visual growth cadence."""

    def __init__(self):
        self.update_counter = 0
        self.growth_progress = 0.0

    def reset(self):
        self.update_counter = 0
        self.growth_progress = 0.0

    def tick(self, segment_update_delay, growth_speed):
        """Advance one tick. Returns True when a segment is due this tick."""
        self.update_counter += 1
        if self.update_counter < segment_update_delay:
            # never take more than an even share of the remaining gap, so
            # progress keeps rising every tick until the commit without reaching 1
            share = (1.0 - self.growth_progress) / (segment_update_delay - self.update_counter + 1)
            self.growth_progress += min(growth_speed, share)
            return False
        self.reset()
        return True


# ============================================================================
# PIPE ENTITY
# ============================================================================

class Pipe:
    """One fleet slot. Slots are reused, never destroyed."""

    def __init__(self, slot):
        self.slot = slot
        self.state = STATE_INACTIVE
        self.position = (0, 0, 0)
        self.heading = HEADINGS[0]
        self.color_index = 0
        self.length = 0
        self.segments = []
        self.scheduler = GrowthScheduler()

    @property
    def active(self):
        return self.state == STATE_ACTIVE

    @property
    def segment_count(self):
        return len(self.segments)

    @property
    def update_counter(self):
        return self.scheduler.update_counter

    @property
    def growth_progress(self):
        return self.scheduler.growth_progress

    def activate(self, grid, position, heading, color_index):
        self.state = STATE_ACTIVE
        self.position = tuple(position)
        self.heading = heading
        self.color_index = color_index
        self.length = 0
        self.segments = []
        self.scheduler.reset()
        grid.mark_occupied(*self.position)

    def deactivate(self):
        self.state = STATE_INACTIVE

    def _terminate(self, reason):
        logger.debug("pipe %d terminated at %s (%s)", self.slot, self.position, reason)
        self.state = STATE_TERMINATED

    def update(self, grid, rng, config):
        """Run one tick for an active pipe.

        Returns False when the pipe terminated this tick; the caller folds it
        back to inactive and frees the slot.
        """
        if not self.active:
            return False
        if not self.scheduler.tick(config['segment_update_delay'], config['growth_speed']):
            return True

        if len(self.segments) < MAX_PIPE_LENGTH:
            self.segments.append(self.position)

        target = step_cell(self.position, self.heading)
        if not grid.in_bounds(*target):
            self._terminate('left grid')
            return False

        if not grid.is_free(*target):
            rerouted = select_direction(grid, self.heading, self.position, rng,
                                        config['fallback_policy'])
            if rerouted is None:
                self._terminate('boxed in')
                return False
            target = step_cell(self.position, rerouted)
            if not grid.is_free(*target):
                self._terminate('blocked')
                return False
            self.heading = rerouted

        grid.mark_occupied(*target)
        self.position = target
        self.length += 1

        if rng.random() < config['turn_probability']:
            new_heading = select_direction(grid, self.heading, self.position, rng,
                                           config['fallback_policy'])
            if new_heading is not None:
                self.heading = new_heading

        if self.length > MAX_PIPE_LENGTH - LENGTH_MARGIN:
            self._terminate('max length')
            return False
        return True

    def tip(self):
        """Grid-space end point of the partially grown next segment."""
        dx, dy, dz = DIRECTIONS[self.heading]
        reach = self.growth_progress * SEGMENT_LENGTH
        x, y, z = self.position
        return (x + dx * reach, y + dy * reach, z + dz * reach)

    def describe(self):
        return {
            'slot': self.slot,
            'color_index': self.color_index,
            'color': color_hex(self.color_index),
            'points': list(self.segments) + [self.position],
            'head': self.position,
            'heading': self.heading,
            'tip': self.tip(),
            'growth_progress': self.growth_progress,
        }


# ============================================================================
# FLEET
# ============================================================================

class PipeFleet:
    """Fixed-capacity set of pipe slots updated in slot order each tick."""

    def __init__(self, capacity=MAX_PIPES):
        self.slots = [Pipe(i) for i in range(capacity)]
        self.active_count = 0

    def active_pipes(self):
        return [pipe for pipe in self.slots if pipe.active]

    def cull(self, max_active):
        """Deactivate the highest-index active pipes until the cap holds."""
        for pipe in reversed(self.slots):
            if self.active_count <= max_active:
                break
            if pipe.active:
                pipe.deactivate()
                self.active_count -= 1
                logger.debug("pipe %d culled (cap %d)", pipe.slot, max_active)

    def update(self, grid, rng, config):
        for pipe in self.slots:
            if not pipe.active:
                continue
            if not pipe.update(grid, rng, config):
                pipe.deactivate()
                self.active_count -= 1

    def try_spawn(self, grid, rng, config, position=None, heading=None, color=None):
        """Place one new pipe in the first inactive slot.

        A start cell that is taken or out of bounds abandons the attempt; no
        other cell is tried until the next opportunity. Returns the pipe or
        None.
        """
        if self.active_count >= min(config['max_active_pipes'], len(self.slots)):
            return None
        slot = next((pipe for pipe in self.slots if not pipe.active), None)
        if slot is None:
            return None

        if position is None:
            d = grid.dimension
            span = max(1, d // 2)
            position = (d // 4 + rng.randrange(span),
                        d // 4 + rng.randrange(span),
                        d // 4 + rng.randrange(span))
        if not grid.is_free(*position):
            logger.debug("spawn at %s rejected, cell not free", tuple(position))
            return None

        if heading is None:
            heading = rng.choice(HEADINGS)
        elif heading not in DIRECTIONS:
            raise ValueError("unknown heading {!r}".format(heading))
        if color is None:
            color = rng.randrange(len(PIPE_COLORS))

        slot.activate(grid, position, heading, color)
        self.active_count += 1
        logger.debug("pipe %d spawned at %s heading %s", slot.slot, slot.position, heading)
        return slot

    def step(self, grid, rng, config):
        self.cull(config['max_active_pipes'])
        self.update(grid, rng, config)
        if (self.active_count < config['max_active_pipes']
                and rng.random() < config['spawn_rate']):
            self.try_spawn(grid, rng, config)


# ============================================================================
# ORBIT CAMERA
# ============================================================================

CAMERA_RADIUS = 60.0
CAMERA_FOVY = 45.0
DRAG_SENSITIVITY = 0.01
ELEVATION_LIMIT = 1.2


class OrbitCamera:
    """Orbit pose around the origin, driven by drag input or idle rotation."""

    def __init__(self, radius=CAMERA_RADIUS, speed=DEFAULT_CONFIG['camera_speed']):
        self.radius = radius
        self.speed = speed
        # start on the (1, 1, 1) diagonal
        self.rotation = math.pi / 4
        self.elevation = math.atan2(1.0, math.sqrt(2.0))
        self.dragging = False
        self.last_pointer = (0, 0)

    def pointer_down(self, x, y):
        self.dragging = True
        self.last_pointer = (x, y)

    def pointer_move(self, x, y):
        if not self.dragging:
            return
        dx = x - self.last_pointer[0]
        dy = y - self.last_pointer[1]
        self.rotation -= dx * DRAG_SENSITIVITY
        self.elevation = max(-ELEVATION_LIMIT,
                             min(ELEVATION_LIMIT, self.elevation + dy * DRAG_SENSITIVITY))
        self.last_pointer = (x, y)

    def pointer_up(self):
        self.dragging = False

    def idle_step(self):
        if not self.dragging:
            self.rotation += self.speed

    def pose(self):
        horizontal = self.radius * math.cos(self.elevation)
        position = (math.sin(self.rotation) * horizontal,
                    self.radius * math.sin(self.elevation),
                    math.cos(self.rotation) * horizontal)
        return {
            'position': position,
            'target': (0.0, 0.0, 0.0),
            'up': (0.0, 1.0, 0.0),
            'fovy': CAMERA_FOVY,
        }


# ============================================================================
# SIMULATION CONTEXT
# ============================================================================

def _clamp(value, lo, hi=None):
    value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


class PipeSimulation:
    """Owns the grid, the fleet, the camera and the random source.

    Every entry point is safe to call before init() or after teardown();
    step() then returns an empty scene and nothing changes.
    """

    def __init__(self, seed=None):
        self.rng = random.Random(seed)
        self.config = dict(DEFAULT_CONFIG)
        self.camera = OrbitCamera(speed=self.config['camera_speed'])
        self.grid = None
        self.fleet = None
        self.tick = 0

    @property
    def initialized(self):
        return self.grid is not None and self.fleet is not None

    @property
    def active_count(self):
        return self.fleet.active_count if self.fleet is not None else 0

    def init(self, grid_dimension=GRID_DIMENSION, config=None):
        """Allocate grid and fleet storage and apply configuration.

        Args:
            grid_dimension: lattice size D (the grid is D x D x D cells)
            config: dict of overrides for DEFAULT_CONFIG keys

        Raises ValueError for a bad dimension or fallback policy. Storage is
        built first and installed only once complete.
        """
        grid = OccupancyGrid(grid_dimension)
        fleet = PipeFleet(MAX_PIPES)
        previous = dict(self.config)
        try:
            for key, value in (config or {}).items():
                setter = self._SETTERS.get(key)
                if setter is None:
                    logger.warning("ignoring unknown config key %r", key)
                    continue
                getattr(self, setter)(value)
        except (TypeError, ValueError):
            self.config = previous
            self.camera.speed = previous['camera_speed']
            raise
        self.grid = grid
        self.fleet = fleet
        self.tick = 0
        logger.debug("simulation initialised with %d^3 grid", grid_dimension)

    def teardown(self):
        if not self.initialized:
            return
        self.grid = None
        self.fleet = None
        logger.debug("simulation torn down after %d ticks", self.tick)

    def step(self):
        """Advance one tick and return the scene description."""
        if not self.initialized:
            return self.scene()
        self.fleet.step(self.grid, self.rng, self.config)
        self.camera.idle_step()
        self.tick += 1
        return self.scene()

    def spawn(self, position=None, heading=None, color=None):
        if not self.initialized:
            return None
        return self.fleet.try_spawn(self.grid, self.rng, self.config,
                                    position=position, heading=heading, color=color)

    def scene(self):
        pipes = []
        dimension = 0
        if self.initialized:
            pipes = [pipe.describe() for pipe in self.fleet.active_pipes()]
            dimension = self.grid.dimension
        return {
            'tick': self.tick,
            'grid_dimension': dimension,
            'cell_size': CELL_SIZE,
            'fade_speed': self.config['fade_speed'],
            'camera': self.camera.pose(),
            'pipes': pipes,
        }

    # --- parameter setters ---------------------------------------------------

    def set_fade_speed(self, speed):
        self.config['fade_speed'] = _clamp(speed, 0)
        return self.config['fade_speed']

    def set_spawn_rate(self, rate):
        self.config['spawn_rate'] = _clamp(float(rate), 0.0, 1.0)
        return self.config['spawn_rate']

    def set_turn_probability(self, probability):
        self.config['turn_probability'] = _clamp(float(probability), 0.0, 1.0)
        return self.config['turn_probability']

    def set_max_pipes(self, max_pipes):
        value = _clamp(int(max_pipes), 0, MAX_PIPES)
        if value != max_pipes:
            logger.warning("max_active_pipes %r clamped to %d", max_pipes, value)
        self.config['max_active_pipes'] = value
        return value

    def set_segment_delay(self, delay):
        self.config['segment_update_delay'] = _clamp(int(delay), 1, MAX_SEGMENT_DELAY)
        return self.config['segment_update_delay']

    def set_growth_speed(self, speed):
        self.config['growth_speed'] = _clamp(float(speed), MIN_GROWTH_SPEED, MAX_GROWTH_SPEED)
        return self.config['growth_speed']

    def set_fallback_policy(self, policy):
        if policy not in FALLBACK_POLICIES:
            raise ValueError("unknown fallback policy {!r}, expected one of {}".format(
                policy, ', '.join(FALLBACK_POLICIES)))
        self.config['fallback_policy'] = policy
        return policy

    def set_camera_speed(self, speed):
        self.config['camera_speed'] = _clamp(float(speed), 0.0)
        self.camera.speed = self.config['camera_speed']
        return self.config['camera_speed']

    _SETTERS = {
        'fade_speed': 'set_fade_speed',
        'spawn_rate': 'set_spawn_rate',
        'turn_probability': 'set_turn_probability',
        'max_active_pipes': 'set_max_pipes',
        'segment_update_delay': 'set_segment_delay',
        'growth_speed': 'set_growth_speed',
        'fallback_policy': 'set_fallback_policy',
        'camera_speed': 'set_camera_speed',
    }

    # --- pointer input -------------------------------------------------------

    def pointer_down(self, x, y):
        if self.initialized:
            self.camera.pointer_down(x, y)

    def pointer_move(self, x, y):
        if self.initialized:
            self.camera.pointer_move(x, y)

    def pointer_up(self):
        if self.initialized:
            self.camera.pointer_up()
