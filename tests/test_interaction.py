import math

import pytest

from camera_controller import CameraController, PHI_MAX, PHI_MIN, RADIUS_MAX, RADIUS_MIN
from interaction import (
    PINCH_ZOOM_SCALE, ROTATE_SENSITIVITY, WHEEL_ZOOM_STEP, InteractionMode, InteractionStateMachine,
)


@pytest.fixture
def zooms():
    return []


@pytest.fixture
def machine(camera, zooms):
    return InteractionStateMachine(camera, on_zoom=zooms.append)


def test_drag_rotates_target_angles(machine, camera):
    machine.pointer_down(100.0, 100.0)
    assert machine.is_dragging
    machine.pointer_move(150.0, 80.0)
    assert camera.state.target_theta == pytest.approx(-50.0 * ROTATE_SENSITIVITY)
    assert camera.state.target_phi == pytest.approx(math.pi / 2 + 20.0 * ROTATE_SENSITIVITY)
    assert machine.state.last_pointer == (150.0, 80.0)


def test_deltas_are_relative_to_last_sample(machine, camera):
    machine.pointer_down(0.0, 0.0)
    machine.pointer_move(10.0, 0.0)
    machine.pointer_move(30.0, 0.0)
    assert camera.state.target_theta == pytest.approx(-30.0 * ROTATE_SENSITIVITY)


def test_move_without_press_is_ignored(machine, camera):
    machine.pointer_move(500.0, 500.0)
    assert camera.state.target_theta == 0.0
    assert machine.mode is InteractionMode.IDLE


def test_pointer_up_clears_drag(machine, camera):
    machine.pointer_down(0.0, 0.0)
    machine.pointer_up()
    assert not machine.is_dragging
    machine.pointer_move(100.0, 0.0)
    assert camera.state.target_theta == 0.0


@pytest.mark.parametrize("dy", [1.0e4, -1.0e4, 1.0e9])
def test_huge_vertical_drags_keep_phi_in_range(machine, camera, dy):
    machine.pointer_down(0.0, 0.0)
    for k in range(1, 6):
        machine.pointer_move(0.0, dy * k)
        assert PHI_MIN <= camera.state.target_phi <= PHI_MAX


def test_wheel_steps_radius_and_reports(machine, camera, zooms):
    assert machine.wheel(120.0) == 25.0 + WHEEL_ZOOM_STEP
    assert machine.wheel(-0.5) == 25.0
    assert zooms == [25.0 + WHEEL_ZOOM_STEP, 25.0]


def test_wheel_is_clamped(machine, camera):
    for _ in range(100):
        machine.wheel(-1.0)
    assert camera.target_radius == RADIUS_MIN
    for _ in range(100):
        machine.wheel(1.0)
    assert camera.target_radius == RADIUS_MAX


def test_zero_wheel_delta_does_nothing(machine, zooms):
    assert machine.wheel(0.0) == 25.0
    assert zooms == []


def test_pinch_spread_zooms_in(machine, camera, zooms):
    machine.touch_start([(0.0, 0.0), (100.0, 0.0)])
    assert machine.mode is InteractionMode.PINCHING
    assert not machine.is_dragging
    machine.touch_move([(0.0, 0.0), (140.0, 0.0)])
    assert camera.target_radius == pytest.approx(25.0 - 40.0 * PINCH_ZOOM_SCALE)
    machine.touch_move([(0.0, 0.0), (120.0, 0.0)])
    assert camera.target_radius == pytest.approx(25.0 - 20.0 * PINCH_ZOOM_SCALE)
    assert len(zooms) == 2


def test_single_finger_matches_pointer_drag():
    mouse_camera, touch_camera = CameraController(), CameraController()
    mouse, touch = InteractionStateMachine(mouse_camera), InteractionStateMachine(touch_camera)
    path = [(10.0, 10.0), (25.0, 40.0), (-5.0, 12.0)]

    mouse.pointer_down(0.0, 0.0)
    touch.touch_start([(0.0, 0.0)])
    for p in path:
        mouse.pointer_move(*p)
        touch.touch_move([p])

    assert touch_camera.state == mouse_camera.state


def test_lifting_a_finger_does_not_reuse_pinch_baseline(machine, camera):
    machine.touch_start([(0.0, 0.0), (100.0, 0.0)])
    machine.touch_move([(0.0, 0.0), (300.0, 0.0)])
    radius = camera.target_radius

    machine.touch_end([(300.0, 0.0)])
    assert machine.mode is InteractionMode.DRAGGING
    machine.touch_move([(310.0, 0.0)])
    assert camera.state.target_theta == pytest.approx(-10.0 * ROTATE_SENSITIVITY)

    # Second finger lands close by: a new baseline, no jump in radius.
    machine.touch_start([(310.0, 0.0), (320.0, 0.0)])
    assert camera.target_radius == radius
    machine.touch_move([(310.0, 0.0), (330.0, 0.0)])
    assert camera.target_radius == pytest.approx(radius - 10.0 * PINCH_ZOOM_SCALE)


def test_two_finger_move_without_start_rebaselines(machine, camera):
    machine.touch_start([(0.0, 0.0)])
    machine.touch_move([(0.0, 0.0), (500.0, 0.0)])
    assert machine.mode is InteractionMode.PINCHING
    assert camera.target_radius == 25.0


def test_one_finger_move_after_pinch_reanchors(machine, camera):
    machine.touch_start([(0.0, 0.0), (100.0, 0.0)])
    machine.touch_move([(400.0, 400.0)])
    assert machine.mode is InteractionMode.DRAGGING
    assert camera.state.target_theta == 0.0
    assert machine.state.last_pointer == (400.0, 400.0)


def test_all_fingers_up_resets(machine):
    machine.touch_start([(0.0, 0.0)])
    machine.touch_end([])
    assert machine.mode is InteractionMode.IDLE
    assert machine.state.last_pinch_distance == 0.0
