"""
Command-line interface for sfxchain.

Steps are applied in the order they appear on the command line.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sfxchain.chain import AudioChain
from sfxchain.config import ChainConfig
from sfxchain.errors import SfxChainError
from sfxchain.filters import AVAILABLE_FILTERS
from sfxchain.resilience import print_health_report

logger = logging.getLogger(__name__)


class _StepAction(argparse.Action):
    """Collect every step flag into one ordered ``steps`` list."""

    def __call__(self, parser, namespace, values, option_string=None):
        steps = getattr(namespace, "steps", None) or []
        steps.append((self.const, values))
        namespace.steps = steps


def parse_value(raw: str) -> Any:
    """Turn ``"3"``/``"-1.5"`` into numbers and leave other strings alone."""
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def parse_pairs(pairs: Sequence[str], what: str = "option") -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` tokens into a dict."""
    result: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid {what} {pair!r}; expected KEY=VALUE")
        key, value = pair.split("=", 1)
        result[key.strip()] = parse_value(value.strip())
    return result


def build_chain(chain: AudioChain, steps: List[Tuple[str, Any]]) -> AudioChain:
    """Record parsed CLI steps on ``chain``."""
    for kind, value in steps:
        if kind == "add":
            chain.add(value)
        elif kind == "mix":
            source, *rest = value
            chain.mix(source, parse_pairs(rest))
        elif kind == "silence":
            chain.silence(value)
        elif kind == "filter":
            name, *rest = value
            chain.filter(name, parse_pairs(rest))
        elif kind == "trim":
            chain.trim(parse_pairs(value))
    return chain


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sfxchain",
        description="Concatenate, mix, filter and trim audio with ffmpeg",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # Concatenate two files with half a second of silence between them
  sfxchain --add part1.mp3 --silence 500 --add part2.mp3 -o out.mp3

  # Mix in a background track for the length of the first one
  sfxchain --add voice.mp3 --mix music.mp3 duration=first -o out.mp3

  # Telephone effect, then loudness normalization to -3 dBTP
  sfxchain --add voice.mp3 --filter telephone --filter normalize tp=-3 -o out.mp3

  # Trim silence with 100ms padding and export to Opus
  sfxchain --add voice.mp3 --trim paddingStart=100 paddingEnd=100 \\
      -o out.ogg --output-option c:a=libopus --output-option b:a=32k

Filters: {", ".join(AVAILABLE_FILTERS)}
        """,
    )

    parser.add_argument(
        "--add", action=_StepAction, const="add", metavar="FILE",
        help="Append an audio file",
    )
    parser.add_argument(
        "--mix", action=_StepAction, const="mix", nargs="+",
        metavar="FILE [duration=POLICY]",
        help="Mix a file into the audio so far (duration: shortest, longest, first)",
    )
    parser.add_argument(
        "--silence", action=_StepAction, const="silence", type=float, metavar="MS",
        help="Append silence, in milliseconds",
    )
    parser.add_argument(
        "--filter", action=_StepAction, const="filter", nargs="+",
        metavar="NAME [KEY=VALUE ...]",
        help="Apply a named filter",
    )
    parser.add_argument(
        "--trim", action=_StepAction, const="trim", nargs="*",
        metavar="KEY=VALUE",
        help="Trim leading/trailing silence (startThreshold, paddingStart, ...)",
    )
    parser.add_argument(
        "--output", "-o",
        help="Output file; its extension selects the codec",
    )
    parser.add_argument(
        "--output-option", action="append", default=[], metavar="KEY=VALUE",
        help="Extra ffmpeg output option, e.g. c:a=libopus (repeatable)",
    )
    parser.add_argument(
        "--bitrate",
        default=None,
        help="Bitrate for intermediate files (default: detect from source)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Optional timeout (seconds) for each ffmpeg invocation",
    )
    parser.add_argument(
        "--ffmpeg", default="ffmpeg", help="ffmpeg executable (default: ffmpeg)",
    )
    parser.add_argument(
        "--ffprobe", default="ffprobe", help="ffprobe executable (default: ffprobe)",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar over the steps",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check that ffmpeg and ffprobe are available, then exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="sfxchain 0.1.0",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.check:
        return 0 if print_health_report(args.ffmpeg, args.ffprobe) else 1

    steps = getattr(args, "steps", None) or []
    if not steps:
        parser.error("at least one of --add, --mix or --silence is required")
    if not args.output:
        parser.error("--output is required")

    try:
        output_options = parse_pairs(args.output_option, "output option")
    except ValueError as e:
        parser.error(str(e))

    try:
        cfg = ChainConfig(
            ffmpeg_bin=args.ffmpeg,
            ffprobe_bin=args.ffprobe,
            bitrate=args.bitrate,
            timeout_s=args.timeout,
            show_progress=args.progress,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        with AudioChain(cfg, logger=logger) as chain:
            build_chain(chain, steps)
            output = chain.save(args.output, output_options)
    except SfxChainError as e:
        logger.error("Error during processing: %s", e)
        return 1

    logger.info("Saved %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
