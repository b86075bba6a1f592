import re
import time

import streamlit as st
import streamlit.components.v1 as components

import pipe_render
import pipe_sim

st.set_page_config(page_title="Pipe Growth Preview", layout="wide")
st.title("Pipe Growth Preview")

with st.sidebar:
    st.header("Growth Settings")

    spawn_rate = st.slider("Spawn Rate", 0.0, 1.0, 0.15, 0.01,
                           help="Chance per tick that a new pipe is attempted")
    turn_probability = st.slider("Turn Probability", 0.0, 1.0, 0.25, 0.01,
                                 help="Chance per move that a pipe picks a new heading")
    max_pipes = st.slider("Max Active Pipes", 0, pipe_sim.MAX_PIPES, 4)
    segment_delay = st.slider("Segment Delay", 1, 60, 10,
                              help="Ticks between committed moves")
    growth_speed = st.slider("Growth Speed", 0.001, 0.5, 0.05, 0.001,
                             help="Visual growth per tick of the forming segment")
    fallback_policy = st.selectbox(
        "When Boxed In",
        list(pipe_sim.FALLBACK_POLICIES),
        index=pipe_sim.FALLBACK_POLICIES.index(pipe_sim.FALLBACK_CONTINUE_STRAIGHT),
        help="allow-reversal lets a trapped pipe double back; continue-straight keeps its heading"
    )
    fade_speed = st.slider("Fade Speed", 0, 10, 1)

    st.header("Camera")
    camera_speed = st.slider("Idle Rotation", 0.0, 0.05, 0.002, 0.001)
    with st.expander("Drag Camera"):
        drag_dx = st.slider("Drag X (px)", -300, 300, 40, 10)
        drag_dy = st.slider("Drag Y (px)", -300, 300, 0, 10)
        apply_drag = st.button("Apply Drag")

    st.header("Grid Settings")
    grid_dimension = st.slider("Grid Dimension", 4, 40, pipe_sim.GRID_DIMENSION)
    seed = st.number_input("Seed", 0, 2**31 - 1, 0, 1)

    st.header("Playback")
    ticks_per_advance = st.slider("Ticks per Advance", 1, 200, 10)
    autoplay = st.checkbox("Autoplay", value=False)
    zoom_level = st.slider("Zoom", 25, 200, 100, 5, help="Zoom level (100% = fit to window)")

    if st.button("Restart Simulation", type="primary"):
        st.session_state.pop('sim', None)
        st.session_state.pop('sim_key', None)

# Rebuild the simulation if grid or seed changed
current_key = (grid_dimension, seed)

if 'sim' not in st.session_state or st.session_state.get('sim_key') != current_key:
    old = st.session_state.get('sim')
    if old is not None:
        old.teardown()
    sim = pipe_sim.PipeSimulation(seed=int(seed))
    sim.init(grid_dimension)
    st.session_state.sim = sim
    st.session_state.sim_key = current_key

sim = st.session_state.sim

# Setters take effect on the next tick
sim.set_spawn_rate(spawn_rate)
sim.set_turn_probability(turn_probability)
sim.set_max_pipes(max_pipes)
sim.set_segment_delay(segment_delay)
sim.set_growth_speed(growth_speed)
sim.set_fallback_policy(fallback_policy)
sim.set_fade_speed(fade_speed)
sim.set_camera_speed(camera_speed)

if apply_drag:
    sim.pointer_down(0, 0)
    sim.pointer_move(drag_dx, drag_dy)
    sim.pointer_up()

if st.button("Advance") or autoplay:
    for _ in range(ticks_per_advance):
        sim.step()

scene = sim.scene()
occupied = sim.grid.occupied_count() if sim.initialized else 0
st.caption("Tick {}, {} active pipes, {}/{} cells occupied".format(
    scene['tick'], sim.active_count, occupied, grid_dimension ** 3))

svg_string = pipe_render.render_scene_svg(scene, 800, 800)
# Make SVG responsive for display
display_svg = re.sub(r'width="\d+"', 'width="100%"', svg_string, count=1)
display_svg = re.sub(r'height="\d+"', 'height="100%"', display_svg, count=1)

svg_size = zoom_level

html_content = f'''
<div style="background:#111; height:100%; display:flex; align-items:center;
            justify-content:center; overflow:auto; padding:20px; box-sizing:border-box;">
    <div style="width:{svg_size}vmin; height:{svg_size}vmin;">
        {display_svg}
    </div>
</div>
'''
components.html(html_content, height=700, scrolling=True)

st.download_button(
    "Download SVG",
    svg_string,
    file_name="pipes-tick-{}.svg".format(scene['tick']),
    mime="image/svg+xml"
)

if autoplay:
    time.sleep(0.1)
    st.rerun()
