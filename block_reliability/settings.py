"""
Engine Settings
===============
Tunable limits of the evaluation engine, with defaults that match the
editor's expectations (6-decimal probabilities, 200 reduction passes).
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .reliability_math import DECIMAL_PLACES, MAX_DECIMAL_PLACES, _safe_float, _safe_int


@dataclass(frozen=True)
class EngineSettings:
    """Limits and tolerances used during one evaluation."""
    decimal_places: int = DECIMAL_PLACES
    max_reduction_passes: int = 200      # series-parallel safety cap
    max_enumerated_paths: int = 4096     # parallel-path fallback gives up beyond this
    equal_probability_tolerance: float = 1e-12

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "EngineSettings":
        """Build settings from a mapping; missing or invalid entries keep defaults."""
        defaults = cls()
        if not isinstance(data, Mapping):
            return defaults
        values = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            raw = data.get(f.name)
            if isinstance(default, int):
                value = _safe_int(raw, default)
                values[f.name] = value if value > 0 else default
            else:
                value = _safe_float(raw, default)
                values[f.name] = value if value > 0 else default
        if values["decimal_places"] > MAX_DECIMAL_PLACES:
            values["decimal_places"] = defaults.decimal_places
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_SETTINGS = EngineSettings()


def resolve_settings(settings: Optional[EngineSettings]) -> EngineSettings:
    if isinstance(settings, EngineSettings):
        return settings
    if isinstance(settings, Mapping):
        return EngineSettings.from_dict(settings)
    return DEFAULT_SETTINGS
