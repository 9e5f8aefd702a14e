import dataclasses

import pytest

from conftest import MELODY, build_midi, make_decoded, make_note
from core.comparison import compare_midi
from core.comparison_config import ComparisonConfig, MatchWeights
from core.errors import ConfigError, FormatError
from core.note_models import WEIGHTED_METRICS, ComparisonReport

ALL_METRICS = WEIGHTED_METRICS + ("overall_score", "precision", "recall")


def test_self_comparison_is_perfect(melody_bytes):
    report = compare_midi(melody_bytes, melody_bytes)

    assert isinstance(report, ComparisonReport)
    for name in ALL_METRICS:
        assert getattr(report, name) == pytest.approx(1.0), name
    assert report.matched_count == len(MELODY)
    assert report.unmatched_generated == 0
    assert report.unmatched_reference == 0
    assert len(report.matches) == len(MELODY)
    assert all(m.match_quality == pytest.approx(1.0) for m in report.matches)


def test_self_comparison_below_three_notes_loses_rhythm():
    two = build_midi([[(60, 0, 480, 80, 0), (62, 480, 480, 80, 0)]])
    report = compare_midi(two, two)

    assert report.rhythm_accuracy == 0.0
    for name in WEIGHTED_METRICS:
        if name != "rhythm_accuracy":
            assert getattr(report, name) == pytest.approx(1.0), name
    assert report.overall_score == pytest.approx(0.85)

    three = build_midi([[(60, 0, 480, 80, 0), (62, 480, 480, 80, 0), (64, 960, 480, 80, 0)]])
    assert compare_midi(three, three).overall_score == pytest.approx(1.0)


def test_steady_pulses_at_nearby_tempos_keep_full_rhythm():
    ref = build_midi([[(60, i * 480, 240, 80, 0) for i in range(4)]])
    gen = build_midi([[(60, i * 490, 240, 80, 0) for i in range(4)]])
    report = compare_midi(gen, ref)

    assert report.matched_count == 4
    assert report.rhythm_accuracy == 1.0


def test_empty_generated_against_reference(melody_bytes):
    empty = build_midi([[]])
    report = compare_midi(empty, melody_bytes)

    assert report.overall_score == pytest.approx(0.0, abs=0.06)
    assert report.note_accuracy == 0.0
    assert report.timing_accuracy == 0.0
    assert report.matched_count == 0
    assert report.unmatched_generated == 0
    assert report.unmatched_reference == len(MELODY)


def test_empty_reference_scores_zero_note_metrics(melody_bytes):
    report = compare_midi(melody_bytes, build_midi([[]]))

    assert report.precision == 0.0
    assert report.recall == 0.0
    assert report.note_accuracy == 0.0
    assert report.timing_accuracy == 0.0
    assert report.pitch_class_similarity == 0.0
    assert report.unmatched_generated == len(MELODY)
    assert report.unmatched_reference == 0


def test_both_empty():
    empty = build_midi([[]])
    report = compare_midi(empty, empty)
    assert report.overall_score == 0.0
    assert report.matched_count == 0


def test_uniform_offset_halves_timing():
    onsets = [0.0, 0.5, 0.75, 1.5]
    ref = [make_note(60 + i, t, 0.2, note_id=f"r{i}") for i, t in enumerate(onsets)]
    gen = [make_note(60 + i, t + 0.05, 0.2, note_id=f"g{i}") for i, t in enumerate(onsets)]

    report = compare_midi(make_decoded(gen), make_decoded(ref))

    assert report.note_accuracy == pytest.approx(1.0)
    assert report.timing_accuracy == pytest.approx(0.5)
    assert report.rhythm_accuracy == pytest.approx(1.0)
    assert report.overall_score < 1.0


def test_disjoint_pitch_classes():
    white = [make_note(p, i * 0.5) for i, p in enumerate((60, 62, 64, 65, 67))]
    black = [make_note(p, i * 0.5) for i, p in enumerate((61, 63, 66, 68, 70))]

    report = compare_midi(make_decoded(white), make_decoded(black))

    assert report.pitch_class_similarity == 0.0
    assert report.matched_count == 0
    assert report.note_accuracy == 0.0


def test_partial_transcription_bounds(melody_bytes):
    # drop two notes, shift one, add a wrong one
    partial = [MELODY[0], MELODY[2], (65, 990, 120, 85, 0), MELODY[5], (90, 600, 100, 50, 0)]
    report = compare_midi(build_midi([partial]), melody_bytes)

    assert report.matched_count == 4
    assert report.unmatched_generated == 1
    assert report.unmatched_reference == 2
    assert report.precision == pytest.approx(4 / 5)
    assert report.recall == pytest.approx(4 / 6)
    for name in ALL_METRICS:
        assert 0.0 <= getattr(report, name) <= 1.0, name
    assert 0.0 < report.overall_score < 1.0


def test_include_matches_false(melody_bytes):
    report = compare_midi(melody_bytes, melody_bytes, include_matches=False)
    assert report.matches == ()
    assert report.matched_count == len(MELODY)


def test_config_changes_outcome():
    ref = [make_note(60, 0.0, note_id="r")]
    gen = [make_note(60, 0.15, note_id="g")]

    strict = compare_midi(make_decoded(gen), make_decoded(ref))
    loose = compare_midi(make_decoded(gen), make_decoded(ref), ComparisonConfig(timing_tolerance_sec=0.2))

    assert strict.matched_count == 0
    assert loose.matched_count == 1


def test_custom_overall_weights():
    notes = [make_note(60, 0.0)]
    cfg = ComparisonConfig(overall_weights={"range_overlap": 1.0})
    report = compare_midi(make_decoded(notes), make_decoded([make_note(60, 0.5)]), cfg)
    assert report.matched_count == 0
    assert report.overall_score == pytest.approx(1.0)


def test_accepts_normalized_dict(melody_bytes):
    from core.midi_decoder import decode_midi

    cached = decode_midi(melody_bytes).model_dump(mode="json")
    assert compare_midi(cached, melody_bytes).overall_score == pytest.approx(1.0)


def test_invalid_input_raises_format_error(melody_bytes):
    with pytest.raises(FormatError):
        compare_midi(b"not midi", melody_bytes)
    with pytest.raises(FormatError):
        compare_midi(melody_bytes, b"\x00" * 20)


def test_report_serializes(melody_bytes):
    data = compare_midi(melody_bytes, melody_bytes).model_dump(mode="json")
    assert ComparisonReport.model_validate(data).overall_score == pytest.approx(1.0)
    assert data["matches"][0]["generated"]["pitch_name"] == "C4"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timing_tolerance_sec": -0.1},
        {"timing_tolerance_sec": float("nan")},
        {"pitch_tolerance_semitones": -1},
        {"velocity_tolerance": -5},
        {"density_window_sec": 0.0},
        {"polyphony_window_sec": -1.0},
        {"overall_weights": {"bogus_metric": 1.0}},
        {"overall_weights": {"note_accuracy": -1.0}},
        {"overall_weights": {"note_accuracy": float("inf")}},
        {"match_weights": {"timing": -0.5}},
        {"match_weights": {"tempo": 1.0}},
        {"match_weights": 3},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ConfigError):
        ComparisonConfig(**kwargs)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        ComparisonConfig(timing_tolerance_sec=-1)


def test_config_is_frozen_and_overridable():
    cfg = ComparisonConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.timing_tolerance_sec = 1.0  # type: ignore[misc]

    other = cfg.with_overrides(timing_tolerance_sec=0.25, pitch_tolerance_semitones=None)
    assert other.timing_tolerance_sec == 0.25
    assert other.pitch_tolerance_semitones == 0
    assert cfg.timing_tolerance_sec == 0.1

    with pytest.raises(ConfigError):
        cfg.with_overrides(timing_tolerance_sec=-2)


def test_match_weights_from_mapping():
    cfg = ComparisonConfig(match_weights={"timing": 1.0, "pitch": 0.0, "velocity": 0.0, "duration": 0.0})
    assert isinstance(cfg.match_weights, MatchWeights)
    assert cfg.match_weights.timing == 1.0
