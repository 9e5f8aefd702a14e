"""
core.comparison

bytes -> decode -> match -> metrics -> aggregate -> ComparisonReport.

Pure and synchronous. No module-level mutable state, so independent
comparisons can run in parallel threads/processes without coordination.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.comparison_config import ComparisonConfig
from core.metrics import compute_metrics
from core.midi_decoder import MidiInput, decode_midi
from core.note_matcher import match_notes
from core.note_models import ComparisonReport
from core.note_utils import sort_notes
from core.scoring import aggregate_score

logger = logging.getLogger(__name__)


def compare_midi(
    generated: MidiInput,
    reference: MidiInput,
    config: Optional[ComparisonConfig] = None,
    *,
    include_matches: bool = True,
) -> ComparisonReport:
    """
    Compare a generated (transcribed) MIDI against a reference MIDI.

    Both inputs accept anything decode_midi() accepts. Raises FormatError if
    either side cannot be decoded; metric computation itself never raises.
    """
    cfg = config or ComparisonConfig()

    gen_midi = decode_midi(generated)
    ref_midi = decode_midi(reference)

    gen_notes = sort_notes(gen_midi.notes)
    ref_notes = sort_notes(ref_midi.notes)

    result = match_notes(gen_notes, ref_notes, cfg)
    span = max(gen_midi.duration, ref_midi.duration)
    metrics = compute_metrics(result, gen_notes, ref_notes, span, cfg)
    overall = aggregate_score(metrics, cfg.overall_weights)

    report = ComparisonReport(
        overall_score=overall,
        **metrics,
        matched_count=len(result.matches),
        unmatched_generated=len(result.unmatched_generated),
        unmatched_reference=len(result.unmatched_reference),
        matches=result.matches if include_matches else (),
    )

    logger.info(
        "compare: generated=%d reference=%d matched=%d overall=%.3f",
        len(gen_notes),
        len(ref_notes),
        report.matched_count,
        overall,
    )
    return report
