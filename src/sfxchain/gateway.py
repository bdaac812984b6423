"""
Transcoding gateway: the boundary to the external audio engine.

The executor never builds command lines itself. It talks to a
:class:`TranscodeGateway`, and :class:`FFmpegGateway` is the implementation
that drives the ffmpeg and ffprobe CLIs through
:func:`sfxchain.subprocess_utils.run_checked`.

Every method either produces its output file or raises
:class:`~sfxchain.errors.EngineError`; none of them retries.

Codec defaults:
    When an output is written without explicit options, the codec is chosen
    from the output extension (see :data:`CODEC_BY_EXTENSION`):

    ========  ==============
    ``.mp3``  ``libmp3lame``
    ``.wav``  ``pcm_s16le``
    ``.ogg``  ``libvorbis``
    ``.opus`` ``libopus``
    ``.flac`` ``flac``
    ``.m4a``  ``aac``
    ``.aac``  ``aac``
    ========  ==============

    Unknown extensions are left to ffmpeg's own container defaults.

Example:
    >>> gateway = FFmpegGateway(timeout_s=60)
    >>> gateway.mix(Path("a.mp3"), Path("b.mp3"), Path("out.mp3"), "first")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from sfxchain.errors import EngineError
from sfxchain.resilience import resource_cleanup
from sfxchain.subprocess_utils import run_checked

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

CODEC_BY_EXTENSION: Dict[str, str] = {
    ".mp3": "libmp3lame",
    ".wav": "pcm_s16le",
    ".ogg": "libvorbis",
    ".opus": "libopus",
    ".flac": "flac",
    ".m4a": "aac",
    ".aac": "aac",
}

LOSSLESS_CODECS = frozenset({"pcm_s16le", "flac"})

CHANNEL_LAYOUTS = {1: "mono", 2: "stereo"}


@dataclass(frozen=True)
class AudioProbe:
    """Stream properties of an audio file.

    Attributes:
        channels: Number of channels.
        sample_rate: Sample rate in Hz.
        bitrate: Bit rate in bits per second, or None when unknown.
        duration: Duration in seconds, or None when unknown.
    """
    channels: int
    sample_rate: int
    bitrate: Optional[int] = None
    duration: Optional[float] = None

    @property
    def bitrate_arg(self) -> Optional[str]:
        """Bitrate formatted for ``-b:a`` (e.g. ``"128k"``)."""
        if not self.bitrate:
            return None
        return f"{max(1, round(self.bitrate / 1000))}k"


class TranscodeGateway(Protocol):
    """Operations the executor needs from the external engine."""

    def concatenate(self, inputs: Sequence[Path], output: Path) -> None: ...

    def mix(self, input_a: Path, input_b: Path, output: Path, duration: str) -> None: ...

    def generate_silence(
        self,
        duration_s: float,
        channels: int,
        sample_rate: int,
        bitrate: Optional[str],
        output: Path,
    ) -> None: ...

    def apply_filter_graph(
        self, input_path: Path, graph: str, bitrate: Optional[str], output: Path
    ) -> None: ...

    def reencode(
        self, input_path: Path, output: Path, output_options: Mapping[str, Any]
    ) -> None: ...

    def probe(self, path: Path) -> AudioProbe: ...


def codec_args(output: Path, bitrate: Optional[str] = None) -> List[str]:
    """Codec arguments implied by an output path's extension.

    Args:
        output: Output path.
        bitrate: Optional ``-b:a`` value, ignored for lossless codecs.

    Returns:
        ffmpeg arguments, possibly empty for unknown extensions.
    """
    codec = CODEC_BY_EXTENSION.get(Path(output).suffix.lower())
    if codec is None:
        return []
    args = ["-c:a", codec]
    if bitrate and codec not in LOSSLESS_CODECS:
        args += ["-b:a", str(bitrate)]
    return args


def options_to_args(output_options: Mapping[str, Any]) -> List[str]:
    """Turn ``{"c:a": "libopus", "b:a": "32k"}`` into ffmpeg arguments.

    Keys may be given with or without the leading dash. A value of None
    emits the bare flag.
    """
    args: List[str] = []
    for key, value in output_options.items():
        flag = key if key.startswith("-") else f"-{key}"
        args.append(flag)
        if value is not None:
            args.append(str(value))
    return args


def _concat_line(path: Path) -> str:
    # Concat demuxer list syntax: single quotes, with ' written as '\''
    escaped = str(path).replace("'", "'\\''")
    return f"file '{escaped}'"


class FFmpegGateway:
    """ffmpeg/ffprobe-backed :class:`TranscodeGateway`.

    Attributes:
        ffmpeg_bin: ffmpeg executable.
        ffprobe_bin: ffprobe executable.
        timeout_s: Optional per-invocation timeout in seconds. Expiry is
            reported as :class:`~sfxchain.errors.EngineError`.
    """

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout_s: Optional[float] = None,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout_s = timeout_s

    def _ffmpeg(self, args: Sequence[Any]) -> None:
        cmd = [self.ffmpeg_bin, "-hide_banner", "-nostdin", "-y", *args]
        logger.debug("Running ffmpeg with %d arguments", len(cmd) - 1)
        run_checked(cmd, timeout_s=self.timeout_s, tool_name="ffmpeg")

    def concatenate(self, inputs: Sequence[Path], output: Path) -> None:
        """Stream-copy concatenation of compatible inputs, in order."""
        output = Path(output)
        list_file = output.with_suffix(".txt")
        list_file.write_text(
            "\n".join(_concat_line(Path(p).resolve()) for p in inputs) + "\n",
            encoding="utf-8",
        )
        with resource_cleanup([list_file], cleanup_on_success=True):
            self._ffmpeg([
                "-f", "concat", "-safe", "0",
                "-i", list_file,
                "-c", "copy",
                output,
            ])

    def mix(self, input_a: Path, input_b: Path, output: Path, duration: str) -> None:
        """Two-input ``amix`` with the given duration policy."""
        self._ffmpeg([
            "-i", input_a,
            "-i", input_b,
            "-filter_complex", f"amix=inputs=2:duration={duration}",
            *codec_args(output),
            output,
        ])

    def generate_silence(
        self,
        duration_s: float,
        channels: int,
        sample_rate: int,
        bitrate: Optional[str],
        output: Path,
    ) -> None:
        """Render ``duration_s`` seconds of digital silence."""
        layout = CHANNEL_LAYOUTS.get(channels, f"{channels}c")
        self._ffmpeg([
            "-f", "lavfi",
            "-i", f"anullsrc=channel_layout={layout}:sample_rate={sample_rate}",
            "-t", f"{duration_s:.6f}".rstrip("0").rstrip("."),
            *codec_args(output, bitrate),
            output,
        ])
        if not Path(output).exists():
            raise EngineError(f"Failed to generate silence file: {output}")

    def apply_filter_graph(
        self, input_path: Path, graph: str, bitrate: Optional[str], output: Path
    ) -> None:
        """Run ``input_path`` through an ``-af`` graph."""
        self._ffmpeg([
            "-i", input_path,
            "-af", graph,
            *codec_args(output, bitrate),
            output,
        ])

    def reencode(
        self, input_path: Path, output: Path, output_options: Mapping[str, Any]
    ) -> None:
        """Re-encode into ``output``; codec from the extension if no options."""
        extra = options_to_args(output_options) if output_options else codec_args(output)
        self._ffmpeg(["-i", input_path, *extra, output])

    def probe(self, path: Path) -> AudioProbe:
        """Read channels, sample rate, bitrate and duration with ffprobe."""
        result = run_checked(
            [
                self.ffprobe_bin,
                "-v", "error",
                "-select_streams", "a:0",
                "-show_entries",
                "stream=channels,sample_rate,bit_rate:format=duration,bit_rate",
                "-of", "json",
                str(path),
            ],
            timeout_s=self.timeout_s,
            tool_name="ffprobe",
        )
        return parse_probe(result.stdout, path)


def parse_probe(payload: str, path: Optional[Path] = None) -> AudioProbe:
    """Parse ffprobe JSON output into an :class:`AudioProbe`.

    Raises:
        EngineError: If the payload has no usable audio stream.
    """
    try:
        data = json.loads(payload or "{}")
        stream = (data.get("streams") or [])[0]
        channels = int(stream["channels"])
        sample_rate = int(stream["sample_rate"])
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise EngineError(f"ffprobe found no audio stream in {path}") from exc

    fmt = data.get("format") or {}
    bitrate = stream.get("bit_rate") or fmt.get("bit_rate")
    duration = fmt.get("duration")
    return AudioProbe(
        channels=channels,
        sample_rate=sample_rate,
        bitrate=int(bitrate) if bitrate not in (None, "N/A") else None,
        duration=float(duration) if duration not in (None, "N/A") else None,
    )
