"""
core.metrics

Similarity / accuracy sub-scores between a generated and a reference note set.

Every function is pure and total: empty or degenerate input returns an
explicit fallback (usually 0.0) instead of raising, so the aggregate score
is always a number in [0, 1].
"""

from __future__ import annotations

import math
from typing import Dict, Optional, Sequence

import numpy as np

from core.comparison_config import ComparisonConfig
from core.note_matcher import MIN_DURATION_SCALE, VELOCITY_QUALITY_SCALE, MatchResult
from core.note_models import NoteEvent, NoteMatch

_EPS = 1e-8


def clamp01(x: float) -> float:
    if math.isnan(x):
        return 0.0
    return max(0.0, min(1.0, float(x)))


# ---------------------------------------------------------------------------
# Counting metrics
# ---------------------------------------------------------------------------
def precision(matched: int, generated_count: int) -> float:
    return matched / max(1, generated_count)


def recall(matched: int, reference_count: int) -> float:
    return matched / max(1, reference_count)


def f1_score(p: float, r: float) -> float:
    if p + r == 0:
        return 0.0
    return 2 * p * r / (p + r)


# ---------------------------------------------------------------------------
# Match-based metrics
# ---------------------------------------------------------------------------
def timing_accuracy(matches: Sequence[NoteMatch], timing_tolerance: float) -> float:
    if not matches:
        return 0.0
    mean_err = sum(m.timing_error for m in matches) / len(matches)
    if timing_tolerance <= 0:
        return 1.0 if mean_err == 0 else 0.0
    return clamp01(1.0 - mean_err / timing_tolerance)


def _zscore(x: np.ndarray) -> np.ndarray:
    std = float(np.std(x))
    return (x - float(np.mean(x))) / (std or _EPS)


def _pearson(a: np.ndarray, b: np.ndarray) -> float:
    va = a - a.mean()
    vb = b - b.mean()
    den = math.sqrt(float(np.dot(va, va)) * float(np.dot(vb, vb))) or _EPS
    return float(np.dot(va, vb)) / den


def rhythm_accuracy(matches: Sequence[NoteMatch]) -> float:
    """
    Correlation of inter-onset intervals (IOIs) between matched generated and
    matched reference onsets, mapped from [-1, 1] to [0, 1].
    Needs >= 3 matches (>= 2 IOIs); otherwise 0. Two steady pulses score 1
    whatever their tempos; a steady pulse against an uneven one has no
    correlation and scores 0.5.
    """
    if len(matches) < 3:
        return 0.0
    gen_ioi = np.diff(np.array([m.generated.start_time for m in matches], dtype=float))
    ref_ioi = np.diff(np.array([m.reference.start_time for m in matches], dtype=float))
    n = min(len(gen_ioi), len(ref_ioi))
    if n < 2:
        return 0.0
    gen_ioi, ref_ioi = gen_ioi[:n], ref_ioi[:n]

    # zero variance on both sides: same shape, scale is ignored as in the correlation
    if np.ptp(gen_ioi) <= _EPS and np.ptp(ref_ioi) <= _EPS:
        return 1.0

    corr = _pearson(_zscore(gen_ioi), _zscore(ref_ioi))
    if not math.isfinite(corr):
        return 0.0
    return clamp01((corr + 1.0) / 2.0)


def velocity_accuracy(matches: Sequence[NoteMatch]) -> float:
    if not matches:
        return 0.0
    mean_err = sum(m.velocity_error for m in matches) / len(matches)
    return clamp01(1.0 - mean_err / VELOCITY_QUALITY_SCALE)


def duration_accuracy(matches: Sequence[NoteMatch]) -> float:
    if not matches:
        return 0.0
    mean_ref = sum(max(MIN_DURATION_SCALE, m.reference.duration) for m in matches) / len(matches)
    mean_err = sum(m.duration_error for m in matches) / len(matches)
    return clamp01(1.0 - mean_err / mean_ref)


# ---------------------------------------------------------------------------
# Distribution metrics (full sequences, unmatched notes included)
# ---------------------------------------------------------------------------
def pitch_class_histogram(notes: Sequence[NoteEvent]) -> np.ndarray:
    pcs = np.array([n.pitch % 12 for n in notes], dtype=np.int64)
    return np.bincount(pcs, minlength=12).astype(float)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    n = min(len(a), len(b))
    a, b = a[:n], b[:n]
    den = math.sqrt(float(np.dot(a, a)) * float(np.dot(b, b))) or _EPS
    return clamp01(float(np.dot(a, b)) / den)


def pitch_class_similarity(a: Sequence[NoteEvent], b: Sequence[NoteEvent]) -> float:
    if not a or not b:
        return 0.0
    return cosine_similarity(pitch_class_histogram(a), pitch_class_histogram(b))


def _bin_count(span: float, window: float) -> int:
    return max(1, math.ceil(span / window))


def density_series(notes: Sequence[NoteEvent], span: float, window: float) -> np.ndarray:
    """Note onsets per `window`-second bin over [0, span]."""
    bins = _bin_count(span, window)
    series = np.zeros(bins, dtype=float)
    for n in notes:
        idx = min(bins - 1, max(0, int(math.floor(n.start_time / window))))
        series[idx] += 1
    return series


def polyphony_series(notes: Sequence[NoteEvent], span: float, window: float) -> np.ndarray:
    """Notes sounding at some point inside each `window`-second bin."""
    bins = _bin_count(span, window)
    starts = np.array([n.start_time for n in notes], dtype=float)
    ends = np.array([n.end_time for n in notes], dtype=float)
    series = np.zeros(bins, dtype=float)
    for i in range(bins):
        t0 = i * window
        t1 = min(span, (i + 1) * window)
        series[i] = float(np.count_nonzero((starts < t1) & (ends > t0)))
    return series


def sequence_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """1 - mean absolute error after scaling each series by max(1, its max)."""
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    a, b = a[:n], b[:n]
    na = a / max(1.0, float(a.max()))
    nb = b / max(1.0, float(b.max()))
    return clamp01(1.0 - float(np.mean(np.abs(na - nb))))


def density_similarity(
    a: Sequence[NoteEvent], b: Sequence[NoteEvent], span: float, window: float = 1.0
) -> float:
    if span <= 0 or window <= 0:
        return 0.0
    return sequence_similarity(density_series(a, span, window), density_series(b, span, window))


def polyphony_similarity(
    a: Sequence[NoteEvent], b: Sequence[NoteEvent], span: float, window: float = 0.1
) -> float:
    if span <= 0 or window <= 0:
        return 0.0
    return sequence_similarity(polyphony_series(a, span, window), polyphony_series(b, span, window))


def range_overlap(a: Sequence[NoteEvent], b: Sequence[NoteEvent]) -> float:
    """Shared semitones / covered semitones of the two inclusive pitch ranges."""
    if not a or not b:
        return 0.0
    a_lo, a_hi = min(n.pitch for n in a), max(n.pitch for n in a)
    b_lo, b_hi = min(n.pitch for n in b), max(n.pitch for n in b)
    inter = max(0, min(a_hi, b_hi) - max(a_lo, b_lo) + 1)
    union = max(a_hi, b_hi) - min(a_lo, b_lo) + 1
    return clamp01(inter / union)


# ---------------------------------------------------------------------------
# All at once
# ---------------------------------------------------------------------------
def compute_metrics(
    result: MatchResult,
    generated: Sequence[NoteEvent],
    reference: Sequence[NoteEvent],
    span: float,
    config: Optional[ComparisonConfig] = None,
) -> Dict[str, float]:
    cfg = config or ComparisonConfig()
    matched = len(result.matches)
    p = precision(matched, len(generated))
    r = recall(matched, len(reference))
    return {
        "precision": p,
        "recall": r,
        "note_accuracy": f1_score(p, r),
        "timing_accuracy": timing_accuracy(result.matches, cfg.timing_tolerance_sec),
        "rhythm_accuracy": rhythm_accuracy(result.matches),
        "velocity_accuracy": velocity_accuracy(result.matches),
        "duration_accuracy": duration_accuracy(result.matches),
        "pitch_class_similarity": pitch_class_similarity(generated, reference),
        "density_similarity": density_similarity(generated, reference, span, cfg.density_window_sec),
        "polyphony_similarity": polyphony_similarity(generated, reference, span, cfg.polyphony_window_sec),
        "range_overlap": range_overlap(generated, reference),
    }
