import enum
import logging
import math
import time
from typing import NamedTuple

import numpy as np
import psutil
import pynvml
import taichi as ti
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

try:
    pynvml.nvmlInit()
    _pynvml_available = True
except pynvml.NVMLError:
    _pynvml_available = False

from simulation_params import DEFAULT_PARAMS

log = logging.getLogger(__name__)
console = Console()

vec3 = ti.types.vector(3, ti.f32)
mat3 = ti.types.matrix(3, 3, ti.f32)

# Ray termination codes shared by the kernels and the host.
RAY_MARCHING, RAY_CAPTURED, RAY_ESCAPED, RAY_OPAQUE, RAY_MAX_STEPS = 0, 1, 2, 3, 4


class RayStatus(enum.IntEnum):
    MARCHING = RAY_MARCHING
    CAPTURED = RAY_CAPTURED
    ESCAPED = RAY_ESCAPED
    OPAQUE = RAY_OPAQUE
    MAX_STEPS_REACHED = RAY_MAX_STEPS


class RayTrace(NamedTuple):
    color: np.ndarray
    alpha: float
    status: RayStatus
    steps: int
    position: np.ndarray
    direction: np.ndarray


WORLD_UP = np.array([0.0, 1.0, 0.0])
FALLBACK_UP = np.array([0.0, 0.0, 1.0])


def camera_basis(position, target):
    """
    Builds (right, up, forward) for a camera looking from `position` at `target`.

    When forward is (anti)parallel to world up the cross product vanishes and
    the reference up vector is switched to +Z instead.
    """
    position, target = np.asarray(position, dtype=np.float64), np.asarray(target, dtype=np.float64)
    forward = target - position
    norm = np.linalg.norm(forward)
    if norm < 1e-9:
        raise ValueError("camera position coincides with its look target")
    forward /= norm

    right = np.cross(WORLD_UP, forward)
    rn = np.linalg.norm(right)
    if rn < 1e-6:
        right = np.cross(FALLBACK_UP, forward)
        rn = np.linalg.norm(right)
    right /= rn
    up = np.cross(forward, right)
    return right, up, forward


@ti.data_oriented
class SchwarzschildRenderer:
    def __init__(self, width=960, height=None, arch=ti.gpu, capture_scale=2, view_offset_y=0.0, post_pass=None):
        if width <= 0 or (height is not None and height <= 0):
            raise ValueError(f"Resolution must be positive, got {width}x{height}")
        if capture_scale < 1:
            raise ValueError(f"capture_scale must be >= 1, got {capture_scale}")

        ti.init(arch=arch, default_fp=ti.f32, log_level=ti.WARN)

        self.ASPECT_RATIO = 16.0 / 9.0
        self.WIDTH = int(width)
        self.HEIGHT = int(height) if height is not None else int(self.WIDTH / self.ASPECT_RATIO)
        self.RESOLUTION = (self.WIDTH, self.HEIGHT)
        self.CAPTURE_SCALE = int(capture_scale)
        self.CAPTURE_RESOLUTION = (self.WIDTH * self.CAPTURE_SCALE, self.HEIGHT * self.CAPTURE_SCALE)
        self.VIEW_OFFSET_Y = float(view_offset_y)

        # Geodesic integration
        self.MAX_STEPS = 1000
        self.MAX_DIST = 150.0
        self.MIN_STEP, self.STEP_SCALE = 0.005, 0.01
        self.BENDING_GAIN = 1.5
        self.HORIZON_GUARD = 0.1  # bending only beyond this fraction of r_s
        self.OPAQUE_ALPHA = 0.99

        # Accretion disk, radii in units of M
        self.DISK_INNER, self.DISK_OUTER = 3.0, 14.0
        self.DISK_BASE_THICKNESS, self.DISK_THICKNESS_SLOPE = 0.1, 0.01
        self.DISK_INNER_FADE, self.DISK_OUTER_FADE = 0.2, 3.0
        self.DISK_ALPHA_COUPLING = 0.25
        self.DISK_MIN_INTENSITY = 0.01
        self.ORBITAL_SPEED, self.DISK_SPIN_RATE = 4.0, 0.15
        self.WARP_SCALE, self.WARP_STRENGTH = 0.5, 3.5
        self.MIN_PLANAR_RADIUS = 1.0e-5
        self.DISK_COLOR_EDGE = ti.Vector([0.3, 0.0, 0.0])
        self.DISK_COLOR_MAIN = ti.Vector([1.0, 0.5, 0.0])
        self.DISK_COLOR_HOT = ti.Vector([1.0, 1.0, 0.8])

        # Noise
        self.FBM_OCTAVES, self.FBM_OCTAVE_OFFSET, self.FBM_LACUNARITY = 6, 1.3, 2.5
        self.FBM_ROTATION = ti.Matrix([[math.cos(0.7), -math.sin(0.7)], [math.sin(0.7), math.cos(0.7)]])

        # Starfield
        self.STAR_SCALE = 60.0
        self.NEBULA_DETAIL_SCALE, self.NEBULA_CLOUD_SCALE = 12.0, 3.5
        self.NEBULA_DETAIL_TINT = ti.Vector([0.05, 0.1, 0.2])
        self.NEBULA_CLOUD_TINT = ti.Vector([0.2, 0.05, 0.1])

        # Tone mapping (ACES fit)
        self.TONE_A, self.TONE_B, self.TONE_C, self.TONE_D, self.TONE_E = 2.51, 0.03, 2.43, 0.59, 0.14
        self.MAX_LINEAR = 1.0e4
        self.GAMMA = 2.2

        self.post_pass = post_pass
        self.frame_count = 0
        self.last_frame_seconds = 0.0

        self.pixels = ti.Vector.field(3, dtype=ti.f32, shape=self.RESOLUTION)
        self.capture_pixels = ti.Vector.field(3, dtype=ti.f32, shape=self.CAPTURE_RESOLUTION)
        self.probe_color = ti.Vector.field(3, dtype=ti.f32, shape=())
        self.probe_position = ti.Vector.field(3, dtype=ti.f32, shape=())
        self.probe_direction = ti.Vector.field(3, dtype=ti.f32, shape=())
        self.probe_alpha = ti.field(dtype=ti.f32, shape=())
        self.probe_status = ti.field(dtype=ti.i32, shape=())
        self.probe_steps = ti.field(dtype=ti.i32, shape=())
        self.probe_intensity = ti.field(dtype=ti.f32, shape=())
        self.probe_doppler = ti.field(dtype=ti.f32, shape=())

        self._print_init_summary(arch)

    def _print_init_summary(self, arch):
        settings_text = Text.from_markup(f"""
[bold]Resolution:[/bold]   {self.WIDTH}x{self.HEIGHT}
[bold]Capture:[/bold]      {self.CAPTURE_RESOLUTION[0]}x{self.CAPTURE_RESOLUTION[1]} ([dim]x{self.CAPTURE_SCALE}[/dim])
[bold]Backend:[/bold]      {arch}
[bold]Integrator:[/bold]   {self.MAX_STEPS} steps, escape radius {self.MAX_DIST:g} M
[bold]Post pass:[/bold]    {'[green]attached[/green]' if self.post_pass else '[dim]none[/dim]'}
""")
        console.print(Panel(settings_text, title="[bold blue]Schwarzschild Renderer Initialized[/bold blue]", subtitle="[dim]Ready to render[/dim]", border_style="blue", expand=False))

    def get_system_stats_str(self):
        """Returns a compact, color-coded string of host and GPU usage."""
        log_parts = []

        def get_color(percent):
            if percent < 50: return "green"
            if percent < 80: return "yellow"
            return "red"

        ram = psutil.virtual_memory()
        ram_color = get_color(ram.percent)
        cpu_percent = psutil.cpu_percent()
        cpu_color = get_color(cpu_percent)
        log_parts.append(f"CPU: [bold {cpu_color}]{cpu_percent: >4.1f}%[/bold {cpu_color}]")
        log_parts.append(f"RAM: [bold {ram_color}]{ram.percent: >4.1f}%[/bold {ram_color}]")

        if _pynvml_available:
            try:
                handle = pynvml.nvmlDeviceGetHandleByIndex(0)
                mem_info = pynvml.nvmlDeviceGetMemoryInfo(handle)
                vram_percent = mem_info.used / mem_info.total * 100
                vram_color = get_color(vram_percent)
                log_parts.append(f"VRAM: [bold {vram_color}]{vram_percent: >4.1f}%[/bold {vram_color}]")
            except pynvml.NVMLError:
                log_parts.append("VRAM: [red]N/A[/red]")

        return " | ".join(log_parts)

    # ------------------------------------------------------------------
    # Noise
    # ------------------------------------------------------------------

    @ti.func
    def hash21(self, p):
        q = ti.math.fract(p * ti.Vector([123.34, 456.21])); q += q.dot(q + 45.32)
        return ti.math.fract(q.x * q.y)

    @ti.func
    def hash31(self, p):
        q = ti.math.fract(p * 0.3183 + 0.1) * 17.0
        return ti.math.fract(q.x * q.y * q.z * (q.x + q.y + q.z))

    @ti.func
    def value_noise_2d(self, p):
        i = ti.floor(p); f = ti.math.fract(p); u = f * f * (3.0 - 2.0 * f)
        return ti.math.mix(ti.math.mix(self.hash21(i), self.hash21(i + ti.Vector([1.0, 0.0])), u.x), ti.math.mix(self.hash21(i + ti.Vector([0.0, 1.0])), self.hash21(i + ti.Vector([1.0, 1.0])), u.x), u.y)

    @ti.func
    def fbm_2d(self, p, t):
        """Layered value noise; each octave is rotated and rescaled before the next."""
        q = p * 1.0
        val, amp = 0.0, 0.5
        for k in ti.static(range(self.FBM_OCTAVES)):
            val += amp * self.value_noise_2d(q + k * self.FBM_OCTAVE_OFFSET + t * 0.01)
            q = (self.FBM_ROTATION @ q) * self.FBM_LACUNARITY; amp *= 0.5
        return val

    # ------------------------------------------------------------------
    # Color space
    # ------------------------------------------------------------------

    @ti.func
    def rgb_to_hsv(self, c):
        K = ti.Vector([0.0, -1.0 / 3.0, 2.0 / 3.0, -1.0])
        p = ti.math.mix(ti.Vector([c.z, c.y, K.w, K.z]), ti.Vector([c.y, c.z, K.x, K.y]), ti.math.step(c.z, c.y))
        q = ti.math.mix(ti.Vector([p.x, p.y, p.w, c.x]), ti.Vector([c.x, p.y, p.z, p.x]), ti.math.step(p.x, c.x))
        d = q.x - ti.min(q.w, q.y); e = 1.0e-10
        return ti.Vector([abs(q.z + (q.w - q.y) / (6.0 * d + e)), d / (q.x + e), q.x])

    @ti.func
    def hsv_to_rgb(self, c):
        p = ti.abs(ti.math.fract(ti.Vector([c.x, c.x, c.x]) + ti.Vector([1.0, 2.0 / 3.0, 1.0 / 3.0])) * 6.0 - 3.0)
        return c.z * ti.math.mix(ti.Vector([1.0, 1.0, 1.0]), ti.math.clamp(p - 1.0, 0.0, 1.0), c.y)

    # ------------------------------------------------------------------
    # Accretion disk
    # ------------------------------------------------------------------

    @ti.func
    def disk_thickness(self, r):
        return self.DISK_BASE_THICKNESS + r * self.DISK_THICKNESS_SLOPE

    @ti.func
    def disk_density(self, pos, r, t):
        # Keplerian-like angular speed, sampled in the co-rotating frame.
        angle = ti.atan2(pos.z, pos.x)
        phase = angle + t * (self.ORBITAL_SPEED / ti.sqrt(r)) * self.DISK_SPIN_RATE
        uv = ti.Vector([ti.cos(phase), ti.sin(phase)]) * r
        warp = ti.Vector([self.fbm_2d(uv * self.WARP_SCALE + t * 0.06, t), self.fbm_2d(uv * self.WARP_SCALE - t * 0.04, t)])
        cloud = self.fbm_2d(uv * ti.Vector([1.0, 2.0]) + warp * self.WARP_STRENGTH, t)
        return ti.math.smoothstep(0.1, 0.9, cloud)

    @ti.func
    def disk_fade(self, r, h, thickness, disk_in, disk_out):
        radial = ti.math.smoothstep(disk_in, disk_in + self.DISK_INNER_FADE, r) * ti.math.smoothstep(disk_out, disk_out - self.DISK_OUTER_FADE, r)
        vertical = ti.math.smoothstep(thickness, 0.0, h)
        return radial * vertical

    @ti.func
    def doppler_term(self, pos, ray_dir):
        term = 0.0
        rxz = ti.Vector([pos.x, pos.z]).norm()
        if rxz > self.MIN_PLANAR_RADIUS:
            vel_unit = ti.Vector([-pos.z, 0.0, pos.x]) / rxz
            term = vel_unit.dot(ray_dir)
        return term

    @ti.func
    def temperature_color(self, t):
        return (self.DISK_COLOR_EDGE * ti.math.smoothstep(0.0, 0.2, t)
                + self.DISK_COLOR_MAIN * ti.math.smoothstep(0.1, 0.6, t)
                + self.DISK_COLOR_HOT * ti.math.smoothstep(0.5, 1.5, t))

    @ti.func
    def shade_disk_sample(self, pos, r, ray_dir, t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift):
        thickness = self.disk_thickness(r)
        dens = self.disk_density(pos, r, t)
        fade = self.disk_fade(r, abs(pos.y), thickness, self.DISK_INNER * mass, self.DISK_OUTER * mass)
        term = self.doppler_term(pos, ray_dir)
        beaming = ti.pow(ti.max(0.0, 1.0 + term), doppler_power)
        intensity = dens * fade * beaming * luminosity_scale

        color, alpha = ti.Vector([0.0, 0.0, 0.0]), 0.0
        if intensity > self.DISK_MIN_INTENSITY:
            hsv = self.rgb_to_hsv(self.temperature_color(intensity))
            hsv[0] = ti.math.fract(hsv[0] + term * doppler_color_shift + hue_shift)
            color = self.hsv_to_rgb(hsv)
            alpha = intensity * self.DISK_ALPHA_COUPLING
        return color, alpha, intensity

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    @ti.func
    def triplanar_fbm(self, rd, w, scale, t):
        nx = self.fbm_2d(ti.Vector([rd.y, rd.z]) * scale, t)
        ny = self.fbm_2d(ti.Vector([rd.x, rd.z]) * scale, t)
        nz = self.fbm_2d(ti.Vector([rd.x, rd.y]) * scale, t)
        return nx * w.x + ny * w.y + nz * w.z

    @ti.func
    def starfield(self, rd, t):
        w = ti.abs(rd); w /= (w.x + w.y + w.z)
        detail = ti.pow(self.triplanar_fbm(rd, w, self.NEBULA_DETAIL_SCALE, t), 4.0)
        cloud = ti.pow(self.triplanar_fbm(rd, w, self.NEBULA_CLOUD_SCALE, t) * 0.9, 3.0)
        nebula = self.NEBULA_DETAIL_TINT * detail * 0.04 + self.NEBULA_CLOUD_TINT * cloud * 0.03
        stars = ti.math.clamp(nebula, 0.0, 1.0) * 0.5

        p = rd * self.STAR_SCALE
        cell = ti.floor(p); uv = ti.math.fract(p) - 0.5
        h = self.hash31(cell)
        twinkle = ti.sin(t * 6.0 + h * 15.0) * 0.1 + 0.9
        if h > 0.998:
            s = ti.math.smoothstep(0.4, 0.02, uv.norm())
            stars += ti.Vector([1.0, 1.0, 1.0]) * ti.math.mix(1.0, 2.0, ti.math.fract(h * 7.0)) * s * h * twinkle
        elif h > 0.980:
            s = ti.math.smoothstep(0.4, 0.10, uv.norm())
            stars += ti.math.mix(ti.Vector([1.0, 0.95, 0.8]), ti.Vector([1.0, 0.7, 0.5]), ti.math.fract(h * 11.0)) * s * h * twinkle
        elif h > 0.95:
            s = ti.math.smoothstep(0.4, 0.20, uv.norm())
            stars += ti.math.mix(ti.Vector([0.7, 0.8, 1.0]), ti.Vector([0.8, 0.4, 0.3]), ti.math.fract(h * 15.0)) * s * h * 0.3
        return stars

    # ------------------------------------------------------------------
    # Geodesic march
    # ------------------------------------------------------------------

    @ti.func
    def bending(self, pos, r, mass):
        # Newtonian 1/r^2 plus the quartic GR correction, pointing at the hole.
        strength = mass / (r * r) + 3.0 * mass * mass / (r * r * r * r)
        return -pos / r * strength

    @ti.func
    def trace_ray(self, ray_origin, ray_dir, t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift):
        pos, vel = ray_origin, ray_dir.normalized()
        color, alpha = ti.Vector([0.0, 0.0, 0.0]), 0.0
        status, step = RAY_MARCHING, 0
        rs = 2.0 * mass
        disk_in, disk_out = self.DISK_INNER * mass, self.DISK_OUTER * mass
        while status == RAY_MARCHING:
            r = pos.norm()
            if r < rs: status = RAY_CAPTURED; alpha = 1.0
            elif alpha >= self.OPAQUE_ALPHA: status = RAY_OPAQUE
            elif r > self.MAX_DIST: status = RAY_ESCAPED
            elif step >= self.MAX_STEPS: status = RAY_MAX_STEPS
            else:
                h = ti.max(self.MIN_STEP, r * self.STEP_SCALE)
                if r > rs * self.HORIZON_GUARD:
                    vel = (vel + self.bending(pos, r, mass) * h * self.BENDING_GAIN).normalized()
                pos += vel * h; step += 1
                r = pos.norm()
                if abs(pos.y) < self.disk_thickness(r) and disk_in <= r < disk_out:
                    c, a, _ = self.shade_disk_sample(pos, r, vel, t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift)
                    color += c * a * (1.0 - alpha)
                    alpha = ti.min(alpha + a, 1.0)
        return color, alpha, status, step, pos, vel

    # ------------------------------------------------------------------
    # Compositing
    # ------------------------------------------------------------------

    @ti.func
    def composite(self, color, alpha, ray_dir, t):
        result = color
        if alpha < self.OPAQUE_ALPHA:
            result += self.starfield(ray_dir, t) * (1.0 - alpha)
        return result

    @ti.func
    def tone_map_color(self, color, exposure):
        c = ti.math.clamp(color * exposure, 0.0, self.MAX_LINEAR)
        mapped = ti.math.clamp((c * (self.TONE_A * c + self.TONE_B)) / (c * (self.TONE_C * c + self.TONE_D) + self.TONE_E), 0.0, 1.0)
        return ti.pow(mapped, 1.0 / self.GAMMA)

    @ti.func
    def screen_ray(self, i, j, width, height, cam_to_world):
        u = ((i + 0.5) / width * 2.0 - 1.0) * (width / height)
        v = (j + 0.5) / height * 2.0 - 1.0 + self.VIEW_OFFSET_Y
        return (cam_to_world @ ti.Vector([u, v, 1.0])).normalized()

    @ti.kernel
    def render(self, target: ti.template(), cam_pos: vec3, cam_to_world: mat3, t: ti.f32, mass: ti.f32,
               doppler_power: ti.f32, doppler_color_shift: ti.f32, luminosity_scale: ti.f32, hue_shift: ti.f32, exposure: ti.f32):  #type: ignore
        width, height = ti.static(target.shape[0], target.shape[1])
        for i, j in target:
            ray_dir = self.screen_ray(i, j, width, height, cam_to_world)
            color, alpha, status, steps, pos, vel = self.trace_ray(cam_pos, ray_dir, t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift)
            target[i, j] = self.tone_map_color(self.composite(color, alpha, vel, t), exposure)

    # ------------------------------------------------------------------
    # Host side
    # ------------------------------------------------------------------

    def _launch(self, target, camera_position, look_target, params, t, mass):
        right, up, forward = camera_basis(camera_position, look_target)
        cam_to_world = ti.Matrix(np.column_stack([right, up, forward]).tolist())
        self.render(target, ti.Vector(list(map(float, camera_position))), cam_to_world, float(t), float(mass),
                    params.doppler_power, params.doppler_color_shift, params.luminosity_scale, params.hue_shift, params.exposure)

    def render_frame(self, camera_position, look_target, params=DEFAULT_PARAMS, t=0.0, mass=1.0):
        """Renders one frame into `self.pixels` and hands it to the post pass."""
        start = time.perf_counter()
        self._launch(self.pixels, camera_position, look_target, params, t, mass)
        if self.post_pass is not None:
            self.post_pass(self.pixels, params.bloom_strength)
        ti.sync()
        self.frame_count += 1
        self.last_frame_seconds = time.perf_counter() - start
        return self.pixels

    def capture_high_resolution_frame(self, camera_position, look_target, params=DEFAULT_PARAMS, t=0.0, mass=1.0):
        """Renders the same frame at CAPTURE_SCALE times the density; returns an (H, W, 3) image, top row first."""
        self._launch(self.capture_pixels, camera_position, look_target, params, t, mass)
        if self.post_pass is not None:
            self.post_pass(self.capture_pixels, params.bloom_strength)
        log.info("Captured %dx%d frame", *self.CAPTURE_RESOLUTION)
        return field_to_image(self.capture_pixels)

    def to_image(self):
        return field_to_image(self.pixels)

    # ------------------------------------------------------------------
    # Probes: single evaluations of the per-pixel stages
    # ------------------------------------------------------------------

    @ti.kernel
    def _trace_probe(self, origin: vec3, direction: vec3, t: ti.f32, mass: ti.f32,
                     doppler_power: ti.f32, doppler_color_shift: ti.f32, luminosity_scale: ti.f32, hue_shift: ti.f32):  #type: ignore
        color, alpha, status, steps, pos, vel = self.trace_ray(origin, direction, t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift)
        self.probe_color[None] = color; self.probe_alpha[None] = alpha
        self.probe_status[None] = status; self.probe_steps[None] = steps
        self.probe_position[None] = pos; self.probe_direction[None] = vel

    @ti.kernel
    def _shade_probe(self, pos: vec3, direction: vec3, t: ti.f32, mass: ti.f32,
                     doppler_power: ti.f32, doppler_color_shift: ti.f32, luminosity_scale: ti.f32, hue_shift: ti.f32):  #type: ignore
        r = pos.norm()
        color, alpha, intensity = self.shade_disk_sample(pos, r, direction.normalized(), t, mass, doppler_power, doppler_color_shift, luminosity_scale, hue_shift)
        self.probe_color[None] = color; self.probe_alpha[None] = alpha
        self.probe_intensity[None] = intensity; self.probe_doppler[None] = self.doppler_term(pos, direction.normalized())

    @ti.kernel
    def _fade_probe(self, r: ti.f32, h: ti.f32, mass: ti.f32) -> ti.f32:  #type: ignore
        return self.disk_fade(r, h, self.disk_thickness(r), self.DISK_INNER * mass, self.DISK_OUTER * mass)

    @ti.kernel
    def _starfield_probe(self, directions: ti.types.ndarray(), out: ti.types.ndarray(), t: ti.f32):  #type: ignore
        for n in range(directions.shape[0]):
            rd = ti.Vector([directions[n, 0], directions[n, 1], directions[n, 2]]).normalized()
            c = self.starfield(rd, t)
            for k in ti.static(range(3)): out[n, k] = c[k]

    @ti.kernel
    def _tone_map_probe(self, colors: ti.types.ndarray(), out: ti.types.ndarray(), exposure: ti.f32):  #type: ignore
        for n in range(colors.shape[0]):
            c = self.tone_map_color(ti.Vector([colors[n, 0], colors[n, 1], colors[n, 2]]), exposure)
            for k in ti.static(range(3)): out[n, k] = c[k]

    def trace(self, origin, direction, params=DEFAULT_PARAMS, t=0.0, mass=1.0):
        """Marches a single ray; the colour is the raw front-to-back accumulation before background and tone mapping."""
        self._trace_probe(ti.Vector(list(map(float, origin))), ti.Vector(list(map(float, direction))), float(t), float(mass),
                          params.doppler_power, params.doppler_color_shift, params.luminosity_scale, params.hue_shift)
        return RayTrace(
            color=self.probe_color[None].to_numpy(),
            alpha=float(self.probe_alpha[None]),
            status=RayStatus(int(self.probe_status[None])),
            steps=int(self.probe_steps[None]),
            position=self.probe_position[None].to_numpy(),
            direction=self.probe_direction[None].to_numpy(),
        )

    def pixel_direction(self, i, j, camera_position, look_target, resolution=None):
        """World-space direction of the ray through pixel (i, j); j counts upwards from the bottom row."""
        width, height = resolution or self.RESOLUTION
        right, up, forward = camera_basis(camera_position, look_target)
        u = ((i + 0.5) / width * 2.0 - 1.0) * (width / height)
        v = (j + 0.5) / height * 2.0 - 1.0 + self.VIEW_OFFSET_Y
        d = forward + right * u + up * v
        return d / np.linalg.norm(d)

    def trace_pixel(self, i, j, camera_position, look_target, params=DEFAULT_PARAMS, t=0.0, mass=1.0):
        direction = self.pixel_direction(i, j, camera_position, look_target)
        return self.trace(camera_position, direction, params, t, mass)

    def shade_disk(self, position, direction, params=DEFAULT_PARAMS, t=0.0, mass=1.0):
        """Returns (color, alpha, intensity, doppler_term) for one disk sample."""
        self._shade_probe(ti.Vector(list(map(float, position))), ti.Vector(list(map(float, direction))), float(t), float(mass),
                          params.doppler_power, params.doppler_color_shift, params.luminosity_scale, params.hue_shift)
        return self.probe_color[None].to_numpy(), float(self.probe_alpha[None]), float(self.probe_intensity[None]), float(self.probe_doppler[None])

    def disk_envelope(self, r, height=0.0, mass=1.0):
        """Radial times vertical fade of the disk at cylindrical radius r and height."""
        return float(self._fade_probe(float(r), float(height), float(mass)))

    def sample_starfield(self, directions, t=0.0):
        directions = np.ascontiguousarray(np.atleast_2d(directions), dtype=np.float32)
        out = np.zeros_like(directions)
        self._starfield_probe(directions, out, float(t))
        return out

    def tone_map(self, colors, exposure=DEFAULT_PARAMS.exposure):
        colors = np.ascontiguousarray(np.atleast_2d(colors), dtype=np.float32)
        out = np.zeros_like(colors)
        self._tone_map_probe(colors, out, float(exposure))
        return out

    def close(self):
        global _pynvml_available
        if _pynvml_available:
            pynvml.nvmlShutdown()
            _pynvml_available = False
        log.info("Renderer closed after %d frames.", self.frame_count)


def field_to_image(field):
    """(W, H, 3) field with a bottom-left origin -> (H, W, 3) array, top row first."""
    return np.ascontiguousarray(np.flipud(field.to_numpy().transpose(1, 0, 2)))
