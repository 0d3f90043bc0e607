"""
Host-facing command surface of the renderer.

The scene owns the camera, the gesture state machine and the current
parameter snapshot. A UI shell only issues commands and reads back the
`FrameSnapshot` of the last tick; it never touches camera state directly.
"""
import logging
import time
from dataclasses import dataclass

from camera_controller import CameraController
from interaction import InteractionStateMachine
from simulation_params import DEFAULT_PARAMS, SimulationParams

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameSnapshot:
    frame_index: int
    time: float
    camera_position: tuple
    look_target: tuple
    radius: float
    target_radius: float
    params: SimulationParams
    auto_rotate: bool


def format_distance(radius):
    return f"Distance: {radius:.1f} M"


class BlackHoleScene:
    def __init__(self, renderer, params=DEFAULT_PARAMS, auto_rotate=True, mass=1.0, camera=None, clock=time.perf_counter, on_status=None):
        if mass < 0:
            raise ValueError(f"mass must be non-negative, got {mass}")
        self.renderer = renderer
        self.mass = float(mass)
        self.camera = camera or CameraController()
        self.interaction = InteractionStateMachine(self.camera, on_zoom=self._notify_distance)
        self.auto_rotate = auto_rotate
        self.on_status = on_status
        self.clock = clock
        self.start_time = clock()
        self.params = DEFAULT_PARAMS
        self.set_params(params)
        self.snapshot = None
        self.frame_index = 0

    # --- commands ---

    def rotate(self, dx, dy):
        """Rotate by a pointer delta in pixels, as a drag of that size would."""
        self.interaction.rotate_by(dx, dy)

    def zoom(self, delta):
        """Continuous radius change, reported like a wheel or pinch zoom."""
        return self.interaction.zoom_by(delta)

    def zoom_in(self):
        radius = self.camera.zoom_in()
        self._notify_distance(radius)
        return radius

    def zoom_out(self):
        radius = self.camera.zoom_out()
        self._notify_distance(radius)
        return radius

    def set_auto_rotate(self, enabled):
        self.auto_rotate = bool(enabled)
        log.debug("Auto rotate %s", "on" if self.auto_rotate else "off")

    def set_params(self, params):
        adjusted = params.out_of_range()
        if adjusted:
            log.warning("Clamped out-of-range parameters: %s", ", ".join(adjusted))
        self.params = params.clamped()

    def capture_high_resolution_frame(self):
        """Re-renders the last frame's pose at the renderer's capture density."""
        if self.snapshot is None:
            self.tick()
        s = self.snapshot
        return self.renderer.capture_high_resolution_frame(s.camera_position, s.look_target, s.params, s.time, self.mass)

    # --- frame loop ---

    def tick(self, t=None):
        """Advances the camera one frame, renders it and returns the frame's snapshot."""
        t = self.clock() - self.start_time if t is None else t
        camera_position, look_target = self.camera.advance(self.auto_rotate, self.interaction.is_dragging)
        params = self.params
        self.snapshot = FrameSnapshot(
            frame_index=self.frame_index,
            time=t,
            camera_position=camera_position,
            look_target=look_target,
            radius=self.camera.state.radius,
            target_radius=self.camera.state.target_radius,
            params=params,
            auto_rotate=self.auto_rotate,
        )
        self.renderer.render_frame(camera_position, look_target, params, t, self.mass)
        self.frame_index += 1
        return self.snapshot

    def _notify_distance(self, radius):
        message = format_distance(radius)
        log.info(message)
        if self.on_status is not None:
            self.on_status(message)
