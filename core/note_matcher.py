"""
core.note_matcher

Greedy one-to-one alignment of generated notes onto reference notes.

Generated notes are visited in chronological order and each takes the
closest still-free reference note inside the timing/pitch tolerances.
This is NOT a global (bipartite) assignment: an earlier
generated note may claim a reference that a later one would have fit
better. Changing that changes which notes are reported unmatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from core.comparison_config import ComparisonConfig, MatchWeights
from core.note_models import NoteEvent, NoteMatch

# distance = 2.0*|dt| + 0.1*|dp| + 0.5*|dd|
TIMING_DISTANCE_WEIGHT = 2.0
PITCH_DISTANCE_WEIGHT = 0.1
DURATION_DISTANCE_WEIGHT = 0.5

PITCH_QUALITY_SCALE = 12.0
VELOCITY_QUALITY_SCALE = 127.0
MIN_DURATION_SCALE = 0.05


@dataclass(frozen=True)
class MatchResult:
    matches: Tuple[NoteMatch, ...]
    unmatched_generated: Tuple[NoteEvent, ...]
    unmatched_reference: Tuple[NoteEvent, ...]


def _quality(error: float, scale: float) -> float:
    if scale <= 0:
        return 1.0 if error == 0 else 0.0
    return max(0.0, 1.0 - error / scale)


def match_quality(
    generated: NoteEvent,
    reference: NoteEvent,
    timing_tolerance: float,
    weights: MatchWeights,
) -> float:
    timing_q = _quality(abs(generated.start_time - reference.start_time), timing_tolerance)
    pitch_q = _quality(abs(generated.pitch - reference.pitch), PITCH_QUALITY_SCALE)
    velocity_q = _quality(abs(generated.velocity - reference.velocity), VELOCITY_QUALITY_SCALE)
    duration_q = _quality(
        abs(generated.duration - reference.duration),
        max(MIN_DURATION_SCALE, reference.duration),
    )
    q = (
        timing_q * weights.timing
        + pitch_q * weights.pitch
        + velocity_q * weights.velocity
        + duration_q * weights.duration
    )
    return min(1.0, max(0.0, q))


def _build_match(gen: NoteEvent, ref: NoteEvent, cfg: ComparisonConfig) -> NoteMatch:
    return NoteMatch(
        generated=gen,
        reference=ref,
        timing_error=abs(gen.start_time - ref.start_time),
        pitch_error=abs(gen.pitch - ref.pitch),
        velocity_error=abs(gen.velocity - ref.velocity),
        duration_error=abs(gen.duration - ref.duration),
        match_quality=match_quality(gen, ref, cfg.timing_tolerance_sec, cfg.match_weights),
    )


def match_notes(
    generated: Sequence[NoteEvent],
    reference: Sequence[NoteEvent],
    config: Optional[ComparisonConfig] = None,
) -> MatchResult:
    """
    Align `generated` onto `reference` (both expected chronologically sorted).

    Every note ends up in exactly one of: a NoteMatch, unmatched_generated,
    unmatched_reference. Availability is tracked by position, so repeated
    ids in the inputs cannot produce double matches.
    """
    cfg = config or ComparisonConfig()
    tol_t = cfg.timing_tolerance_sec
    tol_p = cfg.pitch_tolerance_semitones

    free = [True] * len(reference)
    matched_gen: List[bool] = [False] * len(generated)
    matches: List[NoteMatch] = []

    for gi, gen in enumerate(generated):
        best_idx: Optional[int] = None
        best_distance = float("inf")

        for ri, ref in enumerate(reference):
            if not free[ri]:
                continue
            dt = abs(gen.start_time - ref.start_time)
            dp = abs(gen.pitch - ref.pitch)
            if dt > tol_t or dp > tol_p:
                continue
            distance = (
                dt * TIMING_DISTANCE_WEIGHT
                + dp * PITCH_DISTANCE_WEIGHT
                + abs(gen.duration - ref.duration) * DURATION_DISTANCE_WEIGHT
            )
            if distance < best_distance:
                best_distance = distance
                best_idx = ri

        if best_idx is not None:
            free[best_idx] = False
            matched_gen[gi] = True
            matches.append(_build_match(gen, reference[best_idx], cfg))

    return MatchResult(
        matches=tuple(matches),
        unmatched_generated=tuple(g for g, m in zip(generated, matched_gen) if not m),
        unmatched_reference=tuple(r for r, f in zip(reference, free) if f),
    )
