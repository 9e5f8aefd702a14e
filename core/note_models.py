from __future__ import annotations

from typing import Annotated, Dict, Optional, Tuple

from pydantic import BaseModel, Field, computed_field, model_validator
from pydantic.config import ConfigDict


class _FrozenModel(BaseModel):
    """
    Value types are read-only once built:
    - decode produces them, comparison reads them, nobody mutates them
    - unknown keys from cached JSON are ignored (derived fields get recomputed)
    """
    model_config = ConfigDict(frozen=True, extra="ignore")


class NoteEvent(_FrozenModel):
    """
    One sounding pitch. Times are seconds from the start of the file.
    """
    id: str = Field(..., min_length=1, description="Stable per decode: '<track>-<index>'")
    pitch: int = Field(..., ge=0, le=127, description="MIDI pitch 0-127")
    pitch_name: str = Field(..., min_length=2, description="e.g. C4, F#3")
    velocity: int = Field(..., ge=0, le=127, description="MIDI velocity 0-127")
    start_time: float = Field(..., ge=0.0, description="Onset in seconds")
    end_time: float = Field(..., gt=0.0, description="Offset in seconds")
    channel: int = Field(0, ge=0, le=15, description="MIDI channel 0-15")
    track_index: int = Field(0, ge=0, description="Index of the source track")

    @computed_field  # type: ignore[misc]
    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @model_validator(mode="after")
    def _check_span(self) -> "NoteEvent":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be greater than start_time")
        return self


class Track(_FrozenModel):
    name: str = Field("Track", description="Track name (meta 0x03 or 'Track N')")
    channel: Optional[int] = Field(None, ge=0, le=15, description="First channel that carried a note")
    notes: Tuple[NoteEvent, ...] = Field(default_factory=tuple)


class DecodeDiagnostics(_FrozenModel):
    """What the decoder had to assume or drop."""
    tempo_defaulted: bool = False
    time_signature_defaulted: bool = False
    unclosed_notes: int = Field(0, ge=0)
    zero_length_notes: int = Field(0, ge=0)
    tempo_changes: int = Field(0, ge=0)
    smpte_timing: bool = False


class NoteStatistics(_FrozenModel):
    total_notes: int = 0
    average_velocity: float = 0.0
    note_range: Tuple[int, int] = (0, 0)


class DecodedMidi(_FrozenModel):
    """
    Normalized view of one MIDI buffer.
    `notes` is chronological by start_time; ties keep track/note order.
    """
    notes: Tuple[NoteEvent, ...] = Field(default_factory=tuple)
    tracks: Tuple[Track, ...] = Field(default_factory=tuple)
    duration: float = Field(0.0, ge=0.0, description="Max end_time across notes")
    tempo_bpm: float = Field(120.0, gt=0.0, description="First tempo in BPM")
    time_signature: Tuple[int, int] = (4, 4)
    midi_format: int = Field(1, ge=0, le=2)
    ticks_per_beat: int = Field(480, ge=0)
    diagnostics: DecodeDiagnostics = Field(default_factory=DecodeDiagnostics)

    @computed_field  # type: ignore[misc]
    @property
    def statistics(self) -> NoteStatistics:
        if not self.notes:
            return NoteStatistics()
        velocities = [n.velocity for n in self.notes]
        pitches = [n.pitch for n in self.notes]
        return NoteStatistics(
            total_notes=len(self.notes),
            average_velocity=sum(velocities) / len(velocities),
            note_range=(min(pitches), max(pitches)),
        )


class NoteMatch(_FrozenModel):
    generated: NoteEvent
    reference: NoteEvent
    timing_error: float = Field(..., ge=0.0)
    pitch_error: int = Field(..., ge=0)
    velocity_error: int = Field(..., ge=0)
    duration_error: float = Field(..., ge=0.0)
    match_quality: float = Field(..., ge=0.0, le=1.0)


UnitFloat = Annotated[float, Field(ge=0.0, le=1.0)]

WEIGHTED_METRICS: Tuple[str, ...] = (
    "note_accuracy",
    "timing_accuracy",
    "rhythm_accuracy",
    "velocity_accuracy",
    "duration_accuracy",
    "pitch_class_similarity",
    "density_similarity",
    "polyphony_similarity",
    "range_overlap",
)


class ComparisonReport(_FrozenModel):
    overall_score: UnitFloat
    note_accuracy: UnitFloat
    precision: UnitFloat
    recall: UnitFloat
    timing_accuracy: UnitFloat
    rhythm_accuracy: UnitFloat
    velocity_accuracy: UnitFloat
    duration_accuracy: UnitFloat
    pitch_class_similarity: UnitFloat
    density_similarity: UnitFloat
    polyphony_similarity: UnitFloat
    range_overlap: UnitFloat

    matched_count: int = Field(..., ge=0)
    unmatched_generated: int = Field(..., ge=0)
    unmatched_reference: int = Field(..., ge=0)
    matches: Tuple[NoteMatch, ...] = Field(default_factory=tuple)

    def metric_values(self) -> Dict[str, float]:
        """The metrics that take part in the overall score, by name."""
        return {name: float(getattr(self, name)) for name in WEIGHTED_METRICS}
