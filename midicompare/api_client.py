from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from core.note_models import ComparisonReport, DecodedMidi


# -----------------------------
# Exceptions (Business-level)
# -----------------------------
class MidiCompareClientError(Exception):
    """Base exception for SDK client."""


class NetworkError(MidiCompareClientError):
    """Connection/timeout/DNS issues."""


class HTTPError(MidiCompareClientError):
    """Non-2xx response from server."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ContractError(MidiCompareClientError):
    """Response JSON doesn't match the expected shape."""


_NETWORK_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.ConnectError)


def _normalize_base_url(base_url: str) -> str:
    base = (base_url or "").strip()
    if not base:
        base = "http://127.0.0.1:8000"
    return base.rstrip("/")


def _existing_file(path: Path) -> Path:
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise ValueError(f"midi file not found: {path}")
    return path


class MidiCompareClient:
    """
    API client:
    - GET  /api/v1/health
    - POST /api/v1/decode   (multipart: file)
    - POST /api/v1/compare  (multipart: generated, reference)
    """

    def __init__(
        self,
        *,
        base_url: str = "http://127.0.0.1:8000",
        timeout_s: float = 30.0,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self._owns_http = http is None
        self.http = http or httpx.Client(timeout=httpx.Timeout(timeout_s))

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "MidiCompareClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _json(self, r: httpx.Response, what: str) -> Any:
        if r.status_code != 200:
            raise HTTPError(r.status_code, r.text)
        try:
            return r.json()
        except ValueError as e:
            raise ContractError(f"Invalid JSON in {what} response: {e}") from e

    def _validate(self, model: type[BaseModel], data: Any, what: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ContractError(f"{what} response violates contract: {e}") from e

    def health(self) -> dict[str, Any]:
        try:
            r = self.http.get(f"{self.base_url}/api/v1/health")
        except _NETWORK_ERRORS as e:
            raise NetworkError(str(e)) from e
        return self._json(r, "/health")

    def decode(self, midi_path: Path, *, require_notes: bool = False) -> DecodedMidi:
        midi_path = _existing_file(midi_path)
        params = {"require_notes": str(require_notes).lower()}

        with midi_path.open("rb") as f:
            files = {"file": (midi_path.name, f, "audio/midi")}
            try:
                r = self.http.post(f"{self.base_url}/api/v1/decode", params=params, files=files)
            except _NETWORK_ERRORS as e:
                raise NetworkError(str(e)) from e

        return self._validate(DecodedMidi, self._json(r, "/decode"), "/decode")

    def compare(
        self,
        generated_path: Path,
        reference_path: Path,
        *,
        timing_tolerance: Optional[float] = None,
        pitch_tolerance: Optional[int] = None,
        include_matches: bool = True,
    ) -> ComparisonReport:
        generated_path = _existing_file(generated_path)
        reference_path = _existing_file(reference_path)

        params: dict[str, Any] = {"include_matches": str(include_matches).lower()}
        if timing_tolerance is not None:
            params["timing_tolerance"] = timing_tolerance
        if pitch_tolerance is not None:
            params["pitch_tolerance"] = pitch_tolerance

        with generated_path.open("rb") as fg, reference_path.open("rb") as fr:
            files = {
                "generated": (generated_path.name, fg, "audio/midi"),
                "reference": (reference_path.name, fr, "audio/midi"),
            }
            try:
                r = self.http.post(f"{self.base_url}/api/v1/compare", params=params, files=files)
            except _NETWORK_ERRORS as e:
                raise NetworkError(str(e)) from e

        return self._validate(ComparisonReport, self._json(r, "/compare"), "/compare")
