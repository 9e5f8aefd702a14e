"""
core.comparison_config

Tolerances and weights for one comparison. Frozen and validated on
construction: bad values raise ConfigError instead of being clamped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from core.errors import ConfigError
from core.note_models import WEIGHTED_METRICS

DEFAULT_OVERALL_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "note_accuracy": 0.30,
        "timing_accuracy": 0.20,
        "rhythm_accuracy": 0.15,
        "velocity_accuracy": 0.10,
        "duration_accuracy": 0.10,
        "pitch_class_similarity": 0.075,
        "density_similarity": 0.05,
        "polyphony_similarity": 0.025,
        "range_overlap": 0.0,  # present, disabled by default
    }
)


def _check_weight(name: str, value: Any) -> float:
    try:
        w = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Weight {name!r} is not a number: {value!r}") from e
    if not math.isfinite(w) or w < 0:
        raise ConfigError(f"Weight {name!r} must be a finite number >= 0, got {value!r}")
    return w


@dataclass(frozen=True)
class MatchWeights:
    """Per-factor weights of a single NoteMatch quality."""

    timing: float = 0.5
    pitch: float = 0.2
    velocity: float = 0.1
    duration: float = 0.2

    def __post_init__(self) -> None:
        for name in ("timing", "pitch", "velocity", "duration"):
            object.__setattr__(self, name, _check_weight(name, getattr(self, name)))


@dataclass(frozen=True)
class ComparisonConfig:
    """
    Defaults:
      - a note matches within 100 ms and on the exact same pitch
      - overall score weights favour note accuracy and timing
    velocity_tolerance is carried for callers but not used by the matching gate.
    """

    timing_tolerance_sec: float = 0.1
    pitch_tolerance_semitones: int = 0
    velocity_tolerance: int = 10

    match_weights: MatchWeights = field(default_factory=MatchWeights)
    overall_weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_OVERALL_WEIGHTS))

    density_window_sec: float = 1.0
    polyphony_window_sec: float = 0.1

    def __post_init__(self) -> None:
        if not math.isfinite(self.timing_tolerance_sec) or self.timing_tolerance_sec < 0:
            raise ConfigError(f"timing_tolerance_sec must be >= 0, got {self.timing_tolerance_sec!r}")
        if self.pitch_tolerance_semitones < 0:
            raise ConfigError(f"pitch_tolerance_semitones must be >= 0, got {self.pitch_tolerance_semitones!r}")
        if self.velocity_tolerance < 0:
            raise ConfigError(f"velocity_tolerance must be >= 0, got {self.velocity_tolerance!r}")
        for name in ("density_window_sec", "polyphony_window_sec"):
            v = getattr(self, name)
            if not math.isfinite(v) or v <= 0:
                raise ConfigError(f"{name} must be > 0, got {v!r}")

        if not isinstance(self.match_weights, MatchWeights):
            if isinstance(self.match_weights, Mapping):
                try:
                    weights_obj = MatchWeights(**self.match_weights)
                except TypeError as e:
                    raise ConfigError(f"Invalid match_weights: {e}") from e
                object.__setattr__(self, "match_weights", weights_obj)
            else:
                raise ConfigError("match_weights must be MatchWeights or a mapping")

        unknown = set(self.overall_weights) - set(WEIGHTED_METRICS)
        if unknown:
            raise ConfigError(f"Unknown metric(s) in overall_weights: {sorted(unknown)}")
        weights = {k: _check_weight(k, v) for k, v in self.overall_weights.items()}
        object.__setattr__(self, "overall_weights", MappingProxyType(weights))

    def with_overrides(self, **changes: Any) -> "ComparisonConfig":
        """Copy with some fields replaced; None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: Any) -> "ComparisonConfig":
        return cls(
            timing_tolerance_sec=float(settings.timing_tolerance_sec),
            pitch_tolerance_semitones=int(settings.pitch_tolerance_semitones),
            velocity_tolerance=int(settings.velocity_tolerance),
            density_window_sec=float(settings.density_window_sec),
            polyphony_window_sec=float(settings.polyphony_window_sec),
        )
