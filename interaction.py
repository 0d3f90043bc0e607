"""
Pointer, wheel and touch gestures turned into camera target updates.

The state machine knows nothing about how events are delivered: a window
backend (or a test) calls the handler methods with plain pixel coordinates
in screen convention, x to the right and y downwards.
"""
import enum
import math
from dataclasses import dataclass

ROTATE_SENSITIVITY = 0.004  # rad per pixel
WHEEL_ZOOM_STEP = 2.0
PINCH_ZOOM_SCALE = 0.05  # radius units per pixel of finger spread


class InteractionMode(enum.Enum):
    IDLE = 'idle'
    DRAGGING = 'dragging'
    PINCHING = 'pinching'


@dataclass
class InteractionState:
    is_dragging: bool = False
    last_pointer: tuple = (0.0, 0.0)
    last_pinch_distance: float = 0.0


def _pinch_distance(points):
    (x0, y0), (x1, y1) = points[0], points[1]
    return math.hypot(x0 - x1, y0 - y1)


class InteractionStateMachine:
    """
    Transition table (touch events carry the list of fingers still down):

        IDLE      --pointer_down / touch(1)--> DRAGGING
        any       --touch(2)-----------------> PINCHING   (baseline recorded)
        DRAGGING  --pointer_move / move(1)---> DRAGGING   (rotate, re-anchor)
        PINCHING  --move(2)------------------> PINCHING   (zoom, re-baseline)
        PINCHING  --move(1) / end(1)---------> DRAGGING   (re-anchor only)
        any       --pointer_up / end(0)------> IDLE
        any       --wheel--------------------> unchanged  (zoom)
    """

    def __init__(self, camera, on_zoom=None):
        self.camera = camera
        self.on_zoom = on_zoom
        self.mode = InteractionMode.IDLE
        self.state = InteractionState()

    @property
    def is_dragging(self):
        return self.state.is_dragging

    # --- mouse ---

    def pointer_down(self, x, y):
        self._start_drag(x, y)

    def pointer_move(self, x, y):
        if self.mode is not InteractionMode.DRAGGING:
            return
        last_x, last_y = self.state.last_pointer
        self.rotate_by(x - last_x, y - last_y)
        self.state.last_pointer = (x, y)

    def pointer_up(self):
        self._reset()

    def wheel(self, delta):
        if delta == 0:
            return self.camera.target_radius
        return self.zoom_by(math.copysign(WHEEL_ZOOM_STEP, delta))

    # --- touch ---

    def touch_start(self, points):
        self._sync_touches(points)

    def touch_move(self, points):
        if len(points) == 1:
            if self.mode is InteractionMode.DRAGGING:
                self.pointer_move(*points[0])
            else:
                self._start_drag(*points[0])
        elif len(points) == 2:
            if self.mode is not InteractionMode.PINCHING:
                self._start_pinch(points)
                return
            distance = _pinch_distance(points)
            self.zoom_by((self.state.last_pinch_distance - distance) * PINCH_ZOOM_SCALE)
            self.state.last_pinch_distance = distance

    def touch_end(self, remaining_points=()):
        self._sync_touches(remaining_points)

    # --- internals ---

    def _sync_touches(self, points):
        if len(points) == 1:
            self._start_drag(*points[0])
        elif len(points) == 2:
            self._start_pinch(points)
        elif not points:
            self._reset()

    def _start_drag(self, x, y):
        self.mode = InteractionMode.DRAGGING
        self.state.is_dragging = True
        self.state.last_pointer = (x, y)

    def _start_pinch(self, points):
        self.mode = InteractionMode.PINCHING
        self.state.is_dragging = False
        self.state.last_pinch_distance = _pinch_distance(points)

    def _reset(self):
        self.mode = InteractionMode.IDLE
        self.state = InteractionState()

    # --- camera deltas ---

    def rotate_by(self, dx, dy):
        # Horizontal drag spins the azimuth, vertical drag tilts the polar angle.
        self.camera.rotate(-dx * ROTATE_SENSITIVITY, -dy * ROTATE_SENSITIVITY)

    def zoom_by(self, delta):
        radius = self.camera.zoom(delta)
        if self.on_zoom is not None:
            self.on_zoom(radius)
        return radius
