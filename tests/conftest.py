"""
Shared pytest fixtures.

MIDI fixtures are built in-process with mido so no binary files need to be
committed. Times in note specs are ticks (480 per quarter, 120 BPM by default,
so 480 ticks = 0.5 s).
"""
from __future__ import annotations

import io
import struct
from typing import Iterable, List, Optional, Sequence, Tuple

import mido
import pytest

import core.config as config_module
from core.note_models import DecodedMidi, NoteEvent, Track
from core.note_utils import pitch_name

# (pitch, start_tick, duration_ticks, velocity, channel)
NoteSpec = Tuple[int, int, int, int, int]

TPB = 480


def _track_from_notes(notes: Iterable[NoteSpec], name: Optional[str] = None) -> mido.MidiTrack:
    events = []
    for pitch, start, dur, vel, ch in notes:
        events.append((start, 1, mido.Message("note_on", note=pitch, velocity=vel, channel=ch)))
        events.append((start + dur, 0, mido.Message("note_off", note=pitch, velocity=0, channel=ch)))
    # note-offs before note-ons at the same tick
    events.sort(key=lambda e: (e[0], e[1]))

    track = mido.MidiTrack()
    if name:
        track.append(mido.MetaMessage("track_name", name=name, time=0))
    last = 0
    for tick, _, msg in events:
        track.append(msg.copy(time=tick - last))
        last = tick
    track.append(mido.MetaMessage("end_of_track", time=0))
    return track


def build_midi(
    tracks: Sequence[Sequence[NoteSpec]],
    *,
    tempo: Optional[int] = 500_000,
    time_signature: Optional[Tuple[int, int]] = (4, 4),
    ticks_per_beat: int = TPB,
    track_names: Optional[Sequence[str]] = None,
    tempo_changes: Sequence[Tuple[int, int]] = (),
) -> bytes:
    """Type-1 file: a conductor track (tempo/time signature) plus one track per note list."""
    mid = mido.MidiFile(type=1, ticks_per_beat=ticks_per_beat)

    conductor = mido.MidiTrack()
    meta: List[Tuple[int, mido.MetaMessage]] = []
    if tempo is not None:
        meta.append((0, mido.MetaMessage("set_tempo", tempo=tempo)))
    if time_signature is not None:
        meta.append((0, mido.MetaMessage("time_signature", numerator=time_signature[0], denominator=time_signature[1])))
    for tick, us in tempo_changes:
        meta.append((tick, mido.MetaMessage("set_tempo", tempo=us)))
    meta.sort(key=lambda m: m[0])
    last = 0
    for tick, msg in meta:
        conductor.append(msg.copy(time=tick - last))
        last = tick
    conductor.append(mido.MetaMessage("end_of_track", time=0))
    mid.tracks.append(conductor)

    for i, notes in enumerate(tracks):
        name = track_names[i] if track_names else None
        mid.tracks.append(_track_from_notes(notes, name))

    buf = io.BytesIO()
    mid.save(file=buf)
    return buf.getvalue()


def raw_smf(track_bodies: Sequence[bytes], *, fmt: int = 1, division: bytes = struct.pack(">h", TPB), ntrks: Optional[int] = None) -> bytes:
    """Hand-assembled SMF for byte-level edge cases."""
    count = len(track_bodies) if ntrks is None else ntrks
    header = b"MThd" + struct.pack(">IHH", 6, fmt, count) + division
    return header + b"".join(b"MTrk" + struct.pack(">I", len(body)) + body for body in track_bodies)


def make_note(
    pitch: int,
    start: float,
    duration: float = 0.5,
    velocity: int = 80,
    *,
    note_id: Optional[str] = None,
    channel: int = 0,
    track_index: int = 0,
) -> NoteEvent:
    return NoteEvent(
        id=note_id or f"{track_index}-{pitch}-{start}",
        pitch=pitch,
        pitch_name=pitch_name(pitch),
        velocity=velocity,
        start_time=start,
        end_time=start + duration,
        channel=channel,
        track_index=track_index,
    )


def make_decoded(notes: Sequence[NoteEvent]) -> DecodedMidi:
    notes = tuple(sorted(notes, key=lambda n: n.start_time))
    return DecodedMidi(
        notes=notes,
        tracks=(Track(name="Track 1", notes=notes),),
        duration=max((n.end_time for n in notes), default=0.0),
    )


# Melody with uneven inter-onset intervals (C major fragment), one track.
MELODY: List[NoteSpec] = [
    (60, 0, 240, 90, 0),
    (62, 240, 240, 80, 0),
    (64, 480, 480, 70, 0),
    (65, 960, 120, 85, 0),
    (67, 1200, 720, 100, 0),
    (72, 2160, 480, 60, 0),
]


@pytest.fixture
def melody_bytes() -> bytes:
    return build_midi([MELODY], time_signature=(3, 4), track_names=["Piano"])


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Settings come from a clean env (no developer .env) for every test."""
    for key in (
        "TIMING_TOLERANCE_SEC",
        "TIMING_TOLERANCE",
        "PITCH_TOLERANCE_SEMITONES",
        "PITCH_TOLERANCE",
        "VELOCITY_TOLERANCE",
        "DENSITY_WINDOW_SEC",
        "POLYPHONY_WINDOW_SEC",
        "MAX_UPLOAD_SIZE_MB",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setitem(config_module.Settings.model_config, "env_file", None)
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()
