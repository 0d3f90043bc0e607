import colorsys
import math

import numpy as np
import pytest

from simulation_params import DEFAULT_PARAMS

MID_RADIUS = 8.5


def ring(radius, count=48):
    for k in range(count):
        phi = 2.0 * math.pi * k / count
        position = np.array([radius * math.cos(phi), 0.0, radius * math.sin(phi)])
        velocity = np.array([-math.sin(phi), 0.0, math.cos(phi)])
        yield position, velocity


def bright_samples(renderer, params=DEFAULT_PARAMS, radius=MID_RADIUS):
    """Ring positions whose sample, looked at along the orbital velocity, emits light."""
    samples = [(p, v) for p, v in ring(radius) if renderer.shade_disk(p, v, params)[2] > 0.05]
    assert samples, "turbulence produced no emitting sample on the test ring"
    return samples


def test_radial_fade_is_lower_at_both_edges(renderer):
    eps = 0.05
    inner = renderer.disk_envelope(3.0 + eps)
    outer = renderer.disk_envelope(14.0 - eps)
    middle = renderer.disk_envelope((3.0 + 14.0) / 2.0)
    assert inner < middle
    assert outer < middle
    assert middle == pytest.approx(1.0)


def test_radial_fade_is_monotonic_towards_edges(renderer):
    inner = [renderer.disk_envelope(r) for r in np.linspace(3.0, 3.2, 9)]
    outer = [renderer.disk_envelope(r) for r in np.linspace(11.0, 14.0, 9)]
    assert all(a <= b for a, b in zip(inner, inner[1:]))
    assert all(a >= b for a, b in zip(outer, outer[1:]))
    assert inner[0] == 0.0 and outer[-1] == 0.0


def test_vertical_fade_vanishes_at_disk_surface(renderer):
    thickness = 0.1 + 0.01 * MID_RADIUS
    heights = np.linspace(0.0, thickness, 7)
    fades = [renderer.disk_envelope(MID_RADIUS, h) for h in heights]
    assert all(a >= b for a, b in zip(fades, fades[1:]))
    assert fades[-1] == pytest.approx(0.0, abs=1e-6)


def test_envelope_scales_with_mass(renderer):
    assert renderer.disk_envelope(2.0 * MID_RADIUS, mass=2.0) == pytest.approx(1.0)
    assert renderer.disk_envelope(5.0) == pytest.approx(1.0)
    assert renderer.disk_envelope(5.0, mass=2.0) == 0.0


def test_beaming_brightens_approaching_side(renderer):
    for position, velocity in bright_samples(renderer):
        _, _, along, term = renderer.shade_disk(position, velocity)
        _, alpha_against, against, _ = renderer.shade_disk(position, -velocity)
        _, _, across, _ = renderer.shade_disk(position, np.array([0.0, 1.0, 0.0]))
        assert term == pytest.approx(1.0, abs=1e-5)
        assert along == pytest.approx(across * 2.0 ** DEFAULT_PARAMS.doppler_power, rel=1e-3)
        assert against == pytest.approx(0.0, abs=1e-6)
        assert alpha_against == 0.0


def test_doppler_term_is_neutral_on_the_axis(renderer):
    color, alpha, intensity, term = renderer.shade_disk((0.0, 0.5, 0.0), (1.0, 0.0, 0.0))
    assert term == 0.0


def test_alpha_is_coupled_to_intensity(renderer):
    for position, velocity in bright_samples(renderer):
        _, alpha, intensity, _ = renderer.shade_disk(position, velocity)
        assert alpha == pytest.approx(0.25 * intensity, rel=1e-5)


def test_intensity_is_linear_in_luminosity(renderer):
    position, velocity = bright_samples(renderer)[0]
    _, _, base, _ = renderer.shade_disk(position, velocity, DEFAULT_PARAMS.replace(luminosity_scale=1.0))
    _, _, scaled, _ = renderer.shade_disk(position, velocity, DEFAULT_PARAMS.replace(luminosity_scale=3.0))
    assert scaled == pytest.approx(3.0 * base, rel=1e-5)


def hue_delta(a, b):
    d = (a - b) % 1.0
    return min(d, 1.0 - d)


@pytest.mark.parametrize("changes, expected_shift", [
    ({'doppler_color_shift': 0.3}, 0.3),
    ({'doppler_color_shift': 0.0, 'hue_shift': 0.25}, 0.25),
])
def test_hue_rotations_add_up(renderer, changes, expected_shift):
    neutral_params = DEFAULT_PARAMS.replace(doppler_color_shift=0.0, hue_shift=0.0)
    shifted_params = neutral_params.replace(**changes)
    checked = 0
    # Samples are looked at along the orbital velocity, so the Doppler term is 1.
    for position, velocity in bright_samples(renderer, neutral_params):
        neutral, _, _, _ = renderer.shade_disk(position, velocity, neutral_params)
        shifted, _, _, _ = renderer.shade_disk(position, velocity, shifted_params)
        h0, s0, v0 = colorsys.rgb_to_hsv(*neutral)
        h1, s1, v1 = colorsys.rgb_to_hsv(*shifted)
        if s0 < 0.1:
            continue
        assert v1 == pytest.approx(v0, rel=1e-4)
        assert hue_delta(h1, h0 + expected_shift) < 2e-3
        checked += 1
    assert checked > 0


def test_faint_samples_contribute_nothing(renderer):
    # Outside the fade band the sample is below the emission threshold.
    color, alpha, intensity, _ = renderer.shade_disk((14.5, 0.0, 0.0), (0.0, 0.0, 1.0))
    assert intensity == 0.0
    assert alpha == 0.0
    assert np.all(color == 0.0)
