from dataclasses import asdict, dataclass, fields, replace


# Valid range of every artistic parameter, in declaration order.
PARAM_RANGES = {
    'doppler_power': (1.0, 5.0),
    'doppler_color_shift': (0.0, 0.5),
    'luminosity_scale': (0.5, 5.0),
    'hue_shift': (0.0, 1.0),
    'exposure': (0.1, 2.0),
    'bloom_strength': (0.0, 5.0),
}


@dataclass(frozen=True)
class SimulationParams:
    """
    Per-frame shading parameters.

    Instances are immutable snapshots: the host builds a new one whenever the
    user moves a slider and the renderer samples it once per frame.
    """
    doppler_power: float = 3.0
    doppler_color_shift: float = 0.15
    luminosity_scale: float = 0.6
    hue_shift: float = 0.0
    exposure: float = 0.6
    bloom_strength: float = 1.2

    def clamped(self):
        """Returns a copy with every field forced into PARAM_RANGES."""
        values = {}
        for f in fields(self):
            lo, hi = PARAM_RANGES[f.name]
            values[f.name] = min(max(float(getattr(self, f.name)), lo), hi)
        return SimulationParams(**values)

    def out_of_range(self):
        """Names of the fields lying outside their valid range."""
        names = []
        for f in fields(self):
            lo, hi = PARAM_RANGES[f.name]
            if not lo <= getattr(self, f.name) <= hi:
                names.append(f.name)
        return names

    def replace(self, **changes):
        return replace(self, **changes)

    def as_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, values):
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown simulation parameters: {', '.join(sorted(unknown))}")
        return cls(**values)


DEFAULT_PARAMS = SimulationParams()
