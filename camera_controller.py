import math
from dataclasses import dataclass

RADIUS_MIN, RADIUS_MAX = 2.5, 60.0
PHI_MIN, PHI_MAX = 0.1, math.pi - 0.1

DEFAULT_RADIUS = 25.0
DEFAULT_THETA = 0.0
DEFAULT_PHI = math.pi / 2.0

SMOOTH_FACTOR = 0.08
AUTO_ROTATE_RATE = 0.001  # rad per frame
ZOOM_STEP = 3.0

LOOK_TARGET = (0.0, 0.0, 0.0)


def clamp_radius(radius):
    return max(RADIUS_MIN, min(RADIUS_MAX, radius))


def clamp_phi(phi):
    return max(PHI_MIN, min(PHI_MAX, phi))


def spherical_to_cartesian(radius, theta, phi):
    """Y-up spherical coordinates: phi is the polar angle from +Y, theta the azimuth in XZ."""
    x = radius * math.sin(phi) * math.cos(theta)
    y = radius * math.cos(phi)
    z = radius * math.sin(phi) * math.sin(theta)
    return (x, y, z)


@dataclass
class CameraState:
    radius: float = DEFAULT_RADIUS
    theta: float = DEFAULT_THETA
    phi: float = DEFAULT_PHI
    target_radius: float = DEFAULT_RADIUS
    target_theta: float = DEFAULT_THETA
    target_phi: float = DEFAULT_PHI


class CameraController:
    """
    Orbits the camera around the origin.

    Gestures only move the target coordinates; `advance` is called once per
    frame and low-pass filters the current coordinates towards the target,
    so convergence is monotonic and takes the same number of frames whatever
    the distance travelled.
    """

    def __init__(self, radius=DEFAULT_RADIUS, theta=DEFAULT_THETA, phi=DEFAULT_PHI):
        radius, phi = clamp_radius(radius), clamp_phi(phi)
        self.state = CameraState(radius, theta, phi, radius, theta, phi)

    @property
    def target_radius(self):
        return self.state.target_radius

    @property
    def position(self):
        s = self.state
        return spherical_to_cartesian(s.radius, s.theta, s.phi)

    def advance(self, auto_rotate=False, is_dragging=False):
        """Runs one frame of smoothing and returns (camera_position, look_target)."""
        s = self.state
        if auto_rotate and not is_dragging:
            s.target_theta += AUTO_ROTATE_RATE

        s.radius += (s.target_radius - s.radius) * SMOOTH_FACTOR
        s.theta += (s.target_theta - s.theta) * SMOOTH_FACTOR
        s.phi += (s.target_phi - s.phi) * SMOOTH_FACTOR

        return self.position, LOOK_TARGET

    def rotate(self, d_theta, d_phi):
        """Offsets the target angles; the polar angle is clamped immediately."""
        s = self.state
        s.target_theta += d_theta
        s.target_phi = clamp_phi(s.target_phi + d_phi)

    def zoom(self, delta):
        """Continuous zoom (wheel, pinch). Returns the new target radius."""
        self.state.target_radius = clamp_radius(self.state.target_radius + delta)
        return self.state.target_radius

    def zoom_in(self):
        return self.zoom(-ZOOM_STEP)

    def zoom_out(self):
        return self.zoom(ZOOM_STEP)

    def snap_to_target(self):
        s = self.state
        s.radius, s.theta, s.phi = s.target_radius, s.target_theta, s.target_phi
