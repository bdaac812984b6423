"""
Tail analysis for detecting truncated audio.

A clip that was cut off mid-sound ends loud; a clip that ended naturally
fades into near-silence. :func:`detect_truncation` measures the RMS and
peak level of the last few milliseconds and flags the clip as truncated
when the tail RMS is above a threshold.

Dependencies:
    - pydub: decoding (through ffmpeg) and slicing by milliseconds
    - numpy: RMS/peak computation on the raw samples
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from pydub import AudioSegment

DEFAULT_TAIL_MS = 100
DEFAULT_THRESHOLD_DB = -40.0


@dataclass(frozen=True)
class TruncationReport:
    """Result of :func:`detect_truncation`.

    Attributes:
        truncated: Whether the tail RMS exceeds ``threshold``.
        tail_rms_db: RMS level of the tail in dBFS.
        tail_peak_db: Peak level of the tail in dBFS.
        duration: Duration of the whole clip in seconds.
        threshold: Threshold used, in dBFS.
        tail_duration_ms: Length of the analyzed tail in ms.
    """
    truncated: bool
    tail_rms_db: float
    tail_peak_db: float
    duration: float
    threshold: float
    tail_duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_db(value: float) -> float:
    if value <= 0:
        return -math.inf
    return round(20.0 * math.log10(value), 2)


def tail_levels(segment: AudioSegment, tail_ms: int) -> Tuple[float, float]:
    """RMS and peak (dBFS) of the last ``tail_ms`` of ``segment``."""
    tail = segment[-tail_ms:] if len(segment) > tail_ms else segment
    samples = np.array(tail.get_array_of_samples(), dtype=np.float64)
    if samples.size == 0:
        return -math.inf, -math.inf

    full_scale = float(1 << (8 * tail.sample_width - 1))
    samples /= full_scale
    rms = float(np.sqrt(np.mean(samples ** 2)))
    peak = float(np.max(np.abs(samples)))
    return _to_db(rms), _to_db(peak)


def detect_truncation(
    path: Union[str, Path],
    tail_ms: int = DEFAULT_TAIL_MS,
    threshold_db: float = DEFAULT_THRESHOLD_DB,
    ffmpeg_bin: Optional[str] = None,
) -> TruncationReport:
    """Decide whether an audio file ends abruptly.

    Args:
        path: Audio file to analyze (any format ffmpeg can decode).
        tail_ms: How much of the end to analyze, in milliseconds.
        threshold_db: Tail RMS level (dBFS) above which the clip counts
            as truncated.
        ffmpeg_bin: ffmpeg executable pydub should use for decoding.

    Returns:
        A :class:`TruncationReport`.

    Example:
        >>> report = detect_truncation("voice_line.mp3")
        >>> if report.truncated:
        ...     print(f"ends at {report.tail_rms_db} dBFS")
    """
    if tail_ms <= 0:
        raise ValueError("tail_ms must be positive")
    # pydub keeps the converter on the class; restore it for other callers.
    previous_converter = AudioSegment.converter
    if ffmpeg_bin:
        AudioSegment.converter = ffmpeg_bin
    try:
        segment = AudioSegment.from_file(str(path))
    finally:
        AudioSegment.converter = previous_converter
    rms_db, peak_db = tail_levels(segment, tail_ms)
    return TruncationReport(
        truncated=rms_db > threshold_db,
        tail_rms_db=rms_db,
        tail_peak_db=peak_db,
        duration=round(len(segment) / 1000.0, 3),
        threshold=threshold_db,
        tail_duration_ms=min(tail_ms, len(segment)),
    )
