#!/usr/bin/env python
"""Run a seeded pipe simulation headless and save SVG frames."""

import logging
import os
import sys
from datetime import datetime

import pipe_render
import pipe_sim

TICKS = 600
FRAME_EVERY = 60
GRID_SIZE = pipe_sim.GRID_DIMENSION
CANVAS = 800


def save_snapshots(ticks=TICKS, every=FRAME_EVERY, out_dir='.', seed=None,
                   grid_dimension=GRID_SIZE, config=None, canvas=CANVAS):
    """Step a fresh simulation and write an SVG every `every` ticks.

    Returns the list of written file paths.
    """
    sim = pipe_sim.PipeSimulation(seed=seed)
    sim.init(grid_dimension, config)
    stamp = datetime.now().strftime('%Y%m%d-%H%M%S')
    written = []
    try:
        for _ in range(ticks):
            scene = sim.step()
            if scene['tick'] % every:
                continue
            drawing = pipe_render.render_scene_drawing(scene, canvas, canvas)
            filename = os.path.join(out_dir, f"pipes-{stamp}-t{scene['tick']:05d}.svg")
            drawing.save_svg(filename)
            written.append(filename)
            print(f"Saved: {filename}")
    finally:
        sim.teardown()
    return written


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    seed = int(sys.argv[1]) if len(sys.argv) > 1 else None
    save_snapshots(seed=seed)
