import argparse
import logging
import time

import taichi as ti
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from black_hole_scene import BlackHoleScene
from logging_config import setup_logging
from schwarzschild_renderer import SchwarzschildRenderer, console
from simulation_params import DEFAULT_PARAMS

log = logging.getLogger(__name__)

ARCHS = {'gpu': ti.gpu, 'cpu': ti.cpu, 'cuda': ti.cuda, 'vulkan': ti.vulkan, 'metal': ti.metal}
BENCHMARK_FPS = 60


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Real-time Schwarzschild black hole viewer")
    parser.add_argument('--width', type=int, default=960, help="render width in pixels")
    parser.add_argument('--height', type=int, default=None, help="render height (default: 16:9 of width)")
    parser.add_argument('--arch', choices=sorted(ARCHS), default='gpu', help="Taichi backend")
    parser.add_argument('--mass', type=float, default=1.0, help="black hole mass M")
    parser.add_argument('--capture-scale', type=int, default=2, help="sampling density of high-resolution captures")
    parser.add_argument('--no-auto-rotate', action='store_true', help="start with auto rotation disabled")
    parser.add_argument('--benchmark', type=int, default=0, metavar='FRAMES', help="render FRAMES frames headless and report timings")
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', default=None)
    for name, default in DEFAULT_PARAMS.as_dict().items():
        parser.add_argument('--' + name.replace('_', '-'), type=float, default=default)
    return parser.parse_args(argv)


def params_from_args(args):
    return DEFAULT_PARAMS.replace(**{name: getattr(args, name) for name in DEFAULT_PARAMS.as_dict()})


def handle_gui_event(e, scene, gui):
    """Feeds one ti.GUI event into the scene; GUI y points up, gestures expect y down."""
    width, height = gui.res
    x, y = e.pos[0] * width, (1.0 - e.pos[1]) * height
    interaction = scene.interaction

    if e.key == ti.GUI.ESCAPE and e.type == ti.GUI.PRESS:
        gui.running = False
    elif e.key == ti.GUI.LMB:
        if e.type == ti.GUI.PRESS: interaction.pointer_down(x, y)
        elif e.type == ti.GUI.RELEASE: interaction.pointer_up()
    elif e.key == ti.GUI.MOVE:
        interaction.pointer_move(x, y)
    elif e.key == ti.GUI.WHEEL:
        # Scrolling towards the user (negative delta) moves the camera away.
        interaction.wheel(-e.delta[1])
    elif e.type == ti.GUI.PRESS:
        if e.key in ('=', '+'): scene.zoom_in()
        elif e.key == '-': scene.zoom_out()
        elif e.key == 'a':
            scene.set_auto_rotate(not scene.auto_rotate)
            log.info("Auto rotate: %s", "ON" if scene.auto_rotate else "OFF")


def run_interactive(scene):
    renderer = scene.renderer
    gui = ti.GUI("Schwarzschild Geodesic Ray Tracer", res=renderer.RESOLUTION, fast_gui=True)
    while gui.running:
        for e in gui.get_events():
            handle_gui_event(e, scene, gui)
        scene.tick()
        gui.set_image(renderer.pixels)
        gui.show()
    gui.close()


def scripted_gestures(scene, frame, total_frames):
    """Synthetic input for benchmark runs: drag sweep, wheel zoom, then a pinch."""
    interaction = scene.interaction
    quarter = max(total_frames // 4, 1)
    phase, local = divmod(frame, quarter)
    if phase == 0:
        if local == 0: interaction.pointer_down(0.0, 0.0)
        interaction.pointer_move(6.0 * (local + 1), 1.5 * (local + 1))
        if local == quarter - 1: interaction.pointer_up()
    elif phase == 1 and local % 10 == 0:
        interaction.wheel(-1.0)
    elif phase == 2:
        spread = 200.0 + 4.0 * local
        points = [(400.0 - spread / 2, 300.0), (400.0 + spread / 2, 300.0)]
        if local == 0: interaction.touch_start(points)
        else: interaction.touch_move(points)
        if local == quarter - 1: interaction.touch_end([])


def run_benchmark(scene, total_frames):
    renderer = scene.renderer
    total_render_time = 0.0
    slowest = 0.0

    job_text = Text.from_markup(f"""\
[bold]Total Frames:[/bold] {total_frames}
[bold]Resolution:[/bold]   {renderer.WIDTH}x{renderer.HEIGHT}
[bold]Mass:[/bold]         {scene.mass:g} M
""")
    job_panel = Panel(job_text, title="[bold magenta]Benchmark Started[/bold magenta]", border_style="magenta", expand=False)

    progress_columns = [
        TextColumn("{task.description}"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeRemainingColumn(),
    ]
    progress = Progress(*progress_columns, transient=True)

    with Live(Group(job_panel, progress), console=console, refresh_per_second=10):
        task = progress.add_task("Starting...", total=total_frames)

        for frame in range(total_frames):
            start_frame_time = time.perf_counter()

            scripted_gestures(scene, frame, total_frames)
            snapshot = scene.tick(frame / BENCHMARK_FPS)

            frame_duration = time.perf_counter() - start_frame_time
            total_render_time += frame_duration
            slowest = max(slowest, frame_duration)

            description_text = Text.from_markup(
                f"[cyan]Rendering Frame {frame + 1}/{total_frames}[/cyan]\n"
                f"[dim]  └─ Last: {frame_duration * 1000:.1f} ms | r = {snapshot.radius:.2f} M | {renderer.get_system_stats_str()}[/dim]"
            )
            progress.update(task, advance=1, description=description_text)

    summary_table = Table(show_header=False, box=None, padding=(0, 2))
    summary_table.add_column(style="bold blue")
    summary_table.add_column()

    summary_table.add_row("Total Frames:", f"{total_frames}")
    summary_table.add_row("Total Time:", f"{total_render_time:.2f} seconds")
    summary_table.add_row("Average Time:", f"{(total_render_time / total_frames) * 1000:.1f} ms/frame" if total_frames > 0 else "N/A")
    summary_table.add_row("Average FPS:", f"[cyan]{total_frames / total_render_time:.1f}[/cyan]" if total_render_time > 0 else "N/A")
    summary_table.add_row("Slowest Frame:", f"{slowest * 1000:.1f} ms")
    summary_table.add_row("Final Radius:", f"{scene.camera.state.radius:.2f} M")

    console.print(Panel(summary_table, title="[bold blue]Benchmark Summary[/bold blue]", border_style="blue"))
    return total_render_time


def main(argv=None):
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level), args.log_file)

    renderer = SchwarzschildRenderer(width=args.width, height=args.height, arch=ARCHS[args.arch], capture_scale=args.capture_scale)
    scene = BlackHoleScene(renderer, params=params_from_args(args), auto_rotate=not args.no_auto_rotate, mass=args.mass)
    try:
        if args.benchmark > 0:
            run_benchmark(scene, args.benchmark)
        else:
            run_interactive(scene)
    finally:
        renderer.close()


if __name__ == "__main__":
    main()
