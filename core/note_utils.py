from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from core.note_models import NoteEvent

NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

_NAME_RE = re.compile(r"^([A-G]#?)(-?\d+)$")


def pitch_name(pitch: int) -> str:
    """60 -> 'C4', 61 -> 'C#4', 0 -> 'C-1' (octave = pitch // 12 - 1)."""
    pitch = int(pitch)
    if not 0 <= pitch <= 127:
        raise ValueError(f"pitch out of range 0-127: {pitch}")
    octave = pitch // 12 - 1
    return f"{NOTE_NAMES[pitch % 12]}{octave}"


def pitch_from_name(name: str) -> int:
    m = _NAME_RE.match((name or "").strip())
    if not m:
        raise ValueError(f"Invalid note name: {name!r}")
    letter, octave_str = m.groups()
    pitch = (int(octave_str) + 1) * 12 + NOTE_NAMES.index(letter)
    if not 0 <= pitch <= 127:
        raise ValueError(f"Note name outside MIDI range: {name!r}")
    return pitch


def sort_notes(notes: Iterable[NoteEvent]) -> List[NoteEvent]:
    """Chronological by start_time; sort is stable so ties keep input order."""
    return sorted(notes, key=lambda n: n.start_time)


def notes_in_range(notes: Sequence[NoteEvent], start: float, end: float) -> List[NoteEvent]:
    """
    Notes that start inside [start, end), end inside (start, end],
    or span the whole window.
    """
    out: List[NoteEvent] = []
    for n in notes:
        starts_inside = start <= n.start_time < end
        ends_inside = start < n.end_time <= end
        spans = n.start_time <= start and n.end_time >= end
        if starts_inside or ends_inside or spans:
            out.append(n)
    return out


def notes_at_time(notes: Sequence[NoteEvent], t: float) -> List[NoteEvent]:
    return [n for n in notes if n.start_time <= t < n.end_time]
