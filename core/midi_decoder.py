"""
core.midi_decoder

Standard MIDI File bytes -> DecodedMidi (seconds-based, chronological notes).

The file is read with mido; any read error becomes a FormatError, so a
truncated or corrupt buffer never yields partial notes. Tempo events from all
tracks build one global tempo map; the reported tempo_bpm / time_signature are
the first ones found, and their absence is recorded in DecodedMidi.diagnostics
instead of being silently defaulted.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import struct
from bisect import bisect_right
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple, Union

import mido
from pydantic import ValidationError

from core.errors import EmptyInputError, FormatError
from core.note_models import DecodeDiagnostics, DecodedMidi, NoteEvent, Track
from core.note_utils import pitch_name

logger = logging.getLogger(__name__)

MidiInput = Union[bytes, bytearray, memoryview, str, DecodedMidi, Mapping[str, Any]]

DEFAULT_TEMPO_US = 500_000  # 120 BPM
DEFAULT_TIME_SIGNATURE = (4, 4)

_MAX_DELTA_TICKS = 0x0FFFFFFF  # largest 4-byte variable-length quantity

# what mido raises for malformed files
_MIDO_READ_ERRORS = (OSError, EOFError, ValueError, KeyError, IndexError, struct.error)


@dataclass
class _RawNote:
    start_tick: int
    end_tick: int
    pitch: int
    velocity: int
    channel: int
    order: int


@dataclass
class _RawTrack:
    index: int
    name: Optional[str] = None
    notes: List[_RawNote] = field(default_factory=list)
    tempos: List[Tuple[int, int]] = field(default_factory=list)  # (abs_tick, us_per_qn)
    time_signatures: List[Tuple[int, int, int]] = field(default_factory=list)  # (abs_tick, num, den)
    unclosed: int = 0
    zero_length: int = 0


class _TempoMap:
    """Piecewise tick -> seconds conversion over set_tempo segments."""

    def __init__(self, ticks_per_beat: int, tempos: List[Tuple[int, int]]) -> None:
        self.ticks_per_beat = ticks_per_beat
        # (tick, seconds_at_tick, us_per_qn)
        segments: List[Tuple[int, float, int]] = [(0, 0.0, DEFAULT_TEMPO_US)]
        for tick, us in sorted(tempos, key=lambda x: x[0]):
            last_tick, last_sec, last_us = segments[-1]
            if tick == last_tick:
                segments[-1] = (last_tick, last_sec, us)
                continue
            sec = last_sec + mido.tick2second(tick - last_tick, ticks_per_beat, last_us)
            segments.append((tick, sec, us))
        self._segments = segments
        self._ticks = [s[0] for s in segments]

    def seconds(self, tick: int) -> float:
        idx = bisect_right(self._ticks, tick) - 1
        seg_tick, seg_sec, us = self._segments[idx]
        return seg_sec + mido.tick2second(tick - seg_tick, self.ticks_per_beat, us)


class _SmpteClock:
    """SMPTE division: fixed ticks per second, tempo events do not apply."""

    def __init__(self, frames_per_second: float, ticks_per_frame: int) -> None:
        self.ticks_per_second = frames_per_second * ticks_per_frame

    def seconds(self, tick: int) -> float:
        return tick / self.ticks_per_second


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------
def _read_midi_file(data: bytes) -> mido.MidiFile:
    stream = io.BytesIO(data)
    try:
        return mido.MidiFile(file=stream)
    except _MIDO_READ_ERRORS as e:
        detail = str(e) or type(e).__name__
        raise FormatError(f"Invalid MIDI data: {detail}", stream.tell()) from e


def _division(data: bytes) -> int:
    # mido has no SMPTE support, so the signed division is read from the header
    return int.from_bytes(data[12:14], "big", signed=True)


def _collect_track(index: int, track: mido.MidiTrack) -> _RawTrack:
    raw = _RawTrack(index=index)
    open_notes: Dict[Tuple[int, int], Deque[Tuple[int, int, int]]] = {}  # (ch, pitch) -> (tick, vel, order)

    tick = 0
    order = 0
    for msg in track:
        if msg.time > _MAX_DELTA_TICKS:
            raise FormatError(f"Track {index}: delta time {msg.time} exceeds a 4-byte variable-length quantity")
        tick += msg.time

        if msg.is_meta:
            if msg.type == "end_of_track":
                break
            if msg.type == "track_name" and raw.name is None:
                raw.name = msg.name.strip("\x00 ").strip()
            elif msg.type == "set_tempo":
                if msg.tempo > 0:
                    raw.tempos.append((tick, msg.tempo))
                else:
                    logger.warning("Track %d: ignoring zero set_tempo at tick %d", index, tick)
            elif msg.type == "time_signature":
                raw.time_signatures.append((tick, msg.numerator, msg.denominator))
            continue

        if msg.type == "sysex":
            continue
        if not hasattr(msg, "channel"):
            raise FormatError(f"Track {index}: unexpected {msg.type} message in track data")

        if msg.type == "note_on" and msg.velocity > 0:
            open_notes.setdefault((msg.channel, msg.note), deque()).append((tick, msg.velocity, order))
            order += 1
        elif msg.type in ("note_on", "note_off"):
            pending = open_notes.get((msg.channel, msg.note))
            if not pending:
                continue
            start_tick, velocity, note_order = pending.popleft()
            if tick <= start_tick:
                raw.zero_length += 1
                continue
            raw.notes.append(
                _RawNote(
                    start_tick=start_tick,
                    end_tick=tick,
                    pitch=msg.note,
                    velocity=velocity,
                    channel=msg.channel,
                    order=note_order,
                )
            )

    raw.unclosed = sum(len(q) for q in open_notes.values())
    if raw.unclosed:
        logger.warning("Track %d: dropped %d note(s) never closed by a note-off", index, raw.unclosed)
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _coerce_bytes(data: Any) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        try:
            return base64.b64decode(data.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise FormatError(f"String input is not valid base64 MIDI data: {e}") from e
    raise FormatError(f"Unsupported MIDI data type: {type(data).__name__}")


def _is_normalized_mapping(data: Any) -> bool:
    return (
        isinstance(data, Mapping)
        and isinstance(data.get("notes"), (list, tuple))
        and isinstance(data.get("tracks"), (list, tuple))
    )


def _from_normalized(data: Mapping[str, Any]) -> DecodedMidi:
    try:
        return DecodedMidi.model_validate(data)
    except ValidationError as e:
        raise FormatError(f"Invalid normalized note data: {e}") from e


def _decode_bytes(data: bytes) -> DecodedMidi:
    mid = _read_midi_file(data)
    midi_format = int(mid.type)
    if midi_format not in (0, 1, 2):
        raise FormatError(f"Unsupported MIDI format {midi_format}", 8)
    division = _division(data)
    if division == 0:
        raise FormatError("Division (ticks per quarter note) is zero", 12)

    raw_tracks = [_collect_track(i, track) for i, track in enumerate(mid.tracks)]

    tempos = [t for tr in raw_tracks for t in tr.tempos]
    time_sigs = [ts for tr in raw_tracks for ts in tr.time_signatures]

    if division < 0:
        fps_code = -(division >> 8)
        ticks_per_frame = division & 0xFF
        if ticks_per_frame == 0:
            raise FormatError("SMPTE division with zero ticks per frame", 12)
        fps = 29.97 if fps_code == 29 else float(fps_code)
        clock: Union[_TempoMap, _SmpteClock] = _SmpteClock(fps, ticks_per_frame)
        ticks_per_beat = 0
    else:
        ticks_per_beat = division
        clock = _TempoMap(ticks_per_beat, tempos)

    first_tempo = min(tempos, key=lambda x: x[0]) if tempos else None
    first_ts = min(time_sigs, key=lambda x: x[0]) if time_sigs else None

    tempo_bpm = 60_000_000.0 / (first_tempo[1] if first_tempo else DEFAULT_TEMPO_US)
    time_signature = (first_ts[1], first_ts[2]) if first_ts else DEFAULT_TIME_SIGNATURE

    if first_tempo is None:
        logger.info("No set_tempo event found; assuming %.1f BPM", tempo_bpm)
    if first_ts is None:
        logger.info("No time_signature event found; assuming %d/%d", *time_signature)

    tracks: List[Track] = []
    all_notes: List[NoteEvent] = []
    for raw in raw_tracks:
        raw.notes.sort(key=lambda n: (n.start_tick, n.order))
        notes = [
            NoteEvent(
                id=f"{raw.index}-{i}",
                pitch=n.pitch,
                pitch_name=pitch_name(n.pitch),
                velocity=n.velocity,
                start_time=clock.seconds(n.start_tick),
                end_time=clock.seconds(n.end_tick),
                channel=n.channel,
                track_index=raw.index,
            )
            for i, n in enumerate(raw.notes)
        ]
        tracks.append(
            Track(
                name=raw.name or f"Track {raw.index + 1}",
                channel=notes[0].channel if notes else None,
                notes=tuple(notes),
            )
        )
        all_notes.extend(notes)
        logger.debug("Track %d (%s): %d notes", raw.index, tracks[-1].name, len(notes))

    # stable: equal onsets keep track order, then track-local order
    all_notes.sort(key=lambda n: n.start_time)

    diagnostics = DecodeDiagnostics(
        tempo_defaulted=first_tempo is None,
        time_signature_defaulted=first_ts is None,
        unclosed_notes=sum(t.unclosed for t in raw_tracks),
        zero_length_notes=sum(t.zero_length for t in raw_tracks),
        tempo_changes=len(tempos),
        smpte_timing=division < 0,
    )

    return DecodedMidi(
        notes=tuple(all_notes),
        tracks=tuple(tracks),
        duration=max((n.end_time for n in all_notes), default=0.0),
        tempo_bpm=tempo_bpm,
        time_signature=time_signature,
        midi_format=midi_format,
        ticks_per_beat=ticks_per_beat,
        diagnostics=diagnostics,
    )


def decode_midi(data: MidiInput, *, require_notes: bool = False) -> DecodedMidi:
    """
    Decode MIDI data into a DecodedMidi.

    Accepts raw SMF bytes, base64 text of SMF bytes, an existing DecodedMidi
    (returned unchanged), or a mapping already in the normalized shape
    (`notes` and `tracks` lists, e.g. cached JSON).

    Raises:
        FormatError: not a valid Standard MIDI File / unsupported input type.
        EmptyInputError: require_notes=True and nothing was decoded.
    """
    if isinstance(data, DecodedMidi):
        decoded = data
    elif _is_normalized_mapping(data):
        decoded = _from_normalized(data)  # type: ignore[arg-type]
    else:
        decoded = _decode_bytes(_coerce_bytes(data))

    if require_notes and not decoded.notes:
        raise EmptyInputError("MIDI data contains no notes")
    return decoded


def decode_midi_file(path: Union[str, Path], *, require_notes: bool = False) -> DecodedMidi:
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"midi file not found: {path}")
    return decode_midi(path.read_bytes(), require_notes=require_notes)


def is_valid_midi(data: Any) -> bool:
    """True if `data` decodes; never raises for bad input."""
    try:
        decode_midi(data)
    except FormatError:
        return False
    return True


def midi_to_base64(data: Union[bytes, bytearray]) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_to_midi(text: str) -> bytes:
    return _coerce_bytes(text)
