"""
sfxchain - Fluent audio editing on top of ffmpeg

Describe a sequence of audio edits as a chain of operations and render it
into a single output file. Every step is one ffmpeg invocation; every
intermediate file lives in a private scratch directory that is cleaned up
as the chain advances and removed when the chain is disposed.

This package provides tools for:
- Concatenating audio files and inserting silence
- Mixing tracks with a configurable duration policy
- Named filters (normalize, telephone, echo, reverb, equalizer, tempo, ...)
- Trimming leading/trailing silence with optional padding
- Exporting to any container/codec ffmpeg supports
- Detecting truncated audio from its tail level
- Resilience helpers (retry with backoff, dependency health checks)
"""

__version__ = "0.1.0"

from sfxchain.chain import AudioChain
from sfxchain.config import ChainConfig, FilterDefaults
from sfxchain.actions import DurationPolicy, TrimOptions
from sfxchain.analysis import TruncationReport, detect_truncation
from sfxchain.errors import (
    AlreadyFinalized,
    Cancelled,
    EngineError,
    InvalidOption,
    InvalidOutputPath,
    MissingRequiredOption,
    NoAudioToFilter,
    NoAudioToTrim,
    NoBaseAudio,
    OutputWriteError,
    PipelineBusy,
    SfxChainError,
    SourceFileMissing,
    TempDirUnavailable,
    UnknownFilter,
)
from sfxchain.executor import ExecutionState
from sfxchain.filters import AVAILABLE_FILTERS, build_filter_chain, decompose_tempo
from sfxchain.gateway import AudioProbe, FFmpegGateway, TranscodeGateway
from sfxchain.resilience import run_all_health_checks, print_health_report

__all__ = [
    "AudioChain",
    "ChainConfig",
    "FilterDefaults",
    "DurationPolicy",
    "TrimOptions",
    "TruncationReport",
    "detect_truncation",
    "ExecutionState",
    "AVAILABLE_FILTERS",
    "build_filter_chain",
    "decompose_tempo",
    "AudioProbe",
    "FFmpegGateway",
    "TranscodeGateway",
    # Errors
    "SfxChainError",
    "UnknownFilter",
    "MissingRequiredOption",
    "InvalidOption",
    "NoBaseAudio",
    "NoAudioToFilter",
    "NoAudioToTrim",
    "SourceFileMissing",
    "EngineError",
    "AlreadyFinalized",
    "PipelineBusy",
    "Cancelled",
    "InvalidOutputPath",
    "OutputWriteError",
    "TempDirUnavailable",
    # Resilience utilities
    "run_all_health_checks",
    "print_health_report",
]
