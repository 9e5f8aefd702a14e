from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from core.comparison import compare_midi
from core.comparison_config import ComparisonConfig
from core.config import get_settings
from core.errors import ConfigError, EmptyInputError, FormatError
from core.midi_decoder import decode_midi
from core.note_models import ComparisonReport, DecodedMidi

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Compare"])

_CHUNK_SIZE = 1024 * 1024  # 1MB


async def _read_upload(upload_file: UploadFile, *, max_bytes: int) -> bytes:
    """
    Chunked read with a size limit; MIDI files are small, so they stay in memory.
    """
    buf = bytearray()
    try:
        while True:
            chunk = await upload_file.read(_CHUNK_SIZE)
            if not chunk:
                break
            buf.extend(chunk)
            if len(buf) > max_bytes:
                raise HTTPException(
                    status_code=413,
                    detail=f"File too large: {len(buf)/1024/1024:.2f}MB > {max_bytes/1024/1024:.0f}MB",
                )
    finally:
        await upload_file.close()

    if not buf:
        raise HTTPException(status_code=400, detail=f"File is empty: {upload_file.filename or 'upload'}")
    return bytes(buf)


def _format_error(which: str, e: FormatError) -> HTTPException:
    logger.info("Rejected %s MIDI: %s", which, e)
    return HTTPException(status_code=400, detail=f"Invalid {which} MIDI: {e}")


@router.post("/decode", response_model=DecodedMidi, summary="Decode a MIDI file into note events")
async def decode_endpoint(
    file: UploadFile = File(...),
    require_notes: bool = Query(False, description="422 if the file holds no notes"),
) -> DecodedMidi:
    s = get_settings()
    data = await _read_upload(file, max_bytes=s.max_upload_bytes)

    try:
        return await run_in_threadpool(decode_midi, data, require_notes=require_notes)
    except FormatError as e:
        raise _format_error("input", e)
    except EmptyInputError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/compare", response_model=ComparisonReport, summary="Compare generated MIDI against a reference")
async def compare_endpoint(
    generated: UploadFile = File(..., description="Transcribed / generated MIDI"),
    reference: UploadFile = File(..., description="Reference score MIDI"),
    timing_tolerance: Optional[float] = Query(None, description="Seconds; default from settings"),
    pitch_tolerance: Optional[int] = Query(None, description="Semitones; default from settings"),
    include_matches: bool = Query(True, description="Include the per-note match list"),
) -> ComparisonReport:
    s = get_settings()

    try:
        cfg = ComparisonConfig.from_settings(s).with_overrides(
            timing_tolerance_sec=timing_tolerance,
            pitch_tolerance_semitones=pitch_tolerance,
        )
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))

    gen_bytes = await _read_upload(generated, max_bytes=s.max_upload_bytes)
    ref_bytes = await _read_upload(reference, max_bytes=s.max_upload_bytes)

    # decode separately so the error says which side is broken
    try:
        gen_midi = await run_in_threadpool(decode_midi, gen_bytes)
    except FormatError as e:
        raise _format_error("generated", e)
    try:
        ref_midi = await run_in_threadpool(decode_midi, ref_bytes)
    except FormatError as e:
        raise _format_error("reference", e)

    try:
        return await run_in_threadpool(
            compare_midi, gen_midi, ref_midi, cfg, include_matches=include_matches
        )
    except Exception as e:
        logger.exception("Comparison failed: %s", e)
        raise HTTPException(status_code=500, detail="Comparison failed")
