from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from core.comparison import compare_midi
from core.comparison_config import ComparisonConfig
from core.config import get_settings
from core.errors import ConfigError, EmptyInputError, FormatError
from core.midi_decoder import decode_midi_file

from midicompare.api_client import ContractError, HTTPError, MidiCompareClient, NetworkError


# exit codes (keep stable)
EXIT_OK = 0
EXIT_FORMAT_ERROR = 2
EXIT_EMPTY_INPUT = 3
EXIT_NETWORK_OR_HTTP = 4
EXIT_BAD_ARGS = 5


def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _emit(payload: dict[str, Any], out: Optional[str]) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if out:
        out_path = Path(out).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        print(str(out_path))
    else:
        print(text)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="midicompare", description="Compare transcribed MIDI against a reference score")
    p.add_argument("--log-level", dest="log_level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ------------------------------------------------------------
    # decode: MIDI -> normalized note events (JSON)
    # ------------------------------------------------------------
    d = sub.add_parser("decode", help="Decode a MIDI file into note events (JSON)")
    d.add_argument("midi", type=str, help="Path to MIDI file")
    d.add_argument("--out", type=str, default="", help="Write JSON here instead of stdout")
    d.add_argument("--require-notes", dest="require_notes", action="store_true", help="Fail if the file has no notes")

    # ------------------------------------------------------------
    # compare: generated vs reference -> report (JSON)
    # ------------------------------------------------------------
    c = sub.add_parser("compare", help="Compare generated MIDI against reference MIDI")
    c.add_argument("generated", type=str, help="Path to generated / transcribed MIDI")
    c.add_argument("reference", type=str, help="Path to reference MIDI")
    c.add_argument("--timing-tolerance", dest="timing_tolerance", type=float, default=None, help="Seconds (default from settings: 0.1)")
    c.add_argument("--pitch-tolerance", dest="pitch_tolerance", type=int, default=None, help="Semitones (default from settings: 0)")
    c.add_argument("--no-matches", dest="no_matches", action="store_true", help="Omit the per-note match list")
    c.add_argument("--summary", action="store_true", help="Print a one-line summary instead of JSON")
    c.add_argument("--out", type=str, default="", help="Write JSON here instead of stdout")
    c.add_argument("--base-url", dest="base_url", default=None, help="Compare on a running server instead of locally")

    return p


# -------------------------------
# Commands
# -------------------------------
def cmd_decode(args: argparse.Namespace) -> int:
    try:
        decoded = decode_midi_file(Path(args.midi), require_notes=bool(args.require_notes))
    except FileNotFoundError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except FormatError as e:
        _print_err(f"Invalid MIDI: {e}")
        return EXIT_FORMAT_ERROR
    except EmptyInputError as e:
        _print_err(str(e))
        return EXIT_EMPTY_INPUT

    _emit(decoded.model_dump(mode="json"), args.out or None)
    return EXIT_OK


def _compare_remote(args: argparse.Namespace):
    client = MidiCompareClient(base_url=args.base_url)
    try:
        return client.compare(
            Path(args.generated),
            Path(args.reference),
            timing_tolerance=args.timing_tolerance,
            pitch_tolerance=args.pitch_tolerance,
            include_matches=not args.no_matches,
        )
    finally:
        client.close()


def _compare_local(args: argparse.Namespace):
    cfg = ComparisonConfig.from_settings(get_settings()).with_overrides(
        timing_tolerance_sec=args.timing_tolerance,
        pitch_tolerance_semitones=args.pitch_tolerance,
    )
    generated = decode_midi_file(Path(args.generated))
    reference = decode_midi_file(Path(args.reference))
    return compare_midi(generated, reference, cfg, include_matches=not args.no_matches)


def cmd_compare(args: argparse.Namespace) -> int:
    try:
        report = _compare_remote(args) if args.base_url else _compare_local(args)
    except (FileNotFoundError, ConfigError, ValueError) as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except FormatError as e:
        _print_err(f"Invalid MIDI: {e}")
        return EXIT_FORMAT_ERROR
    except (NetworkError, HTTPError) as e:
        _print_err(str(e))
        return EXIT_NETWORK_OR_HTTP
    except ContractError as e:
        _print_err(f"Contract error: {e}")
        return EXIT_NETWORK_OR_HTTP

    if args.summary:
        print(
            f"overall={report.overall_score:.3f} note_accuracy={report.note_accuracy:.3f} "
            f"timing={report.timing_accuracy:.3f} matched={report.matched_count} "
            f"unmatched_generated={report.unmatched_generated} unmatched_reference={report.unmatched_reference}"
        )
        return EXIT_OK

    _emit(report.model_dump(mode="json"), args.out or None)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.cmd == "decode":
        return cmd_decode(args)
    if args.cmd == "compare":
        return cmd_compare(args)

    _print_err("Unknown command.")
    return EXIT_BAD_ARGS


if __name__ == "__main__":
    raise SystemExit(main())
