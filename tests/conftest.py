import pytest
import taichi as ti

from camera_controller import CameraController
from schwarzschild_renderer import SchwarzschildRenderer

WIDTH, HEIGHT = 32, 18


@pytest.fixture(scope="session")
def renderer():
    # ti.init resets the runtime, so every test shares one renderer.
    r = SchwarzschildRenderer(width=WIDTH, height=HEIGHT, arch=ti.cpu, capture_scale=2)
    yield r
    r.close()


@pytest.fixture
def camera():
    return CameraController()


class RecordingRenderer:
    """Stands in for the Taichi renderer where only the host-side calls matter."""

    def __init__(self):
        self.frames = []
        self.captures = []

    def render_frame(self, camera_position, look_target, params, t, mass):
        self.frames.append((camera_position, look_target, params, t, mass))

    def capture_high_resolution_frame(self, camera_position, look_target, params, t, mass):
        self.captures.append((camera_position, look_target, params, t, mass))
        return "image"


@pytest.fixture
def stub_renderer():
    return RecordingRenderer()
