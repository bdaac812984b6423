"""
Exception hierarchy for sfxchain.

Every error raised while building or materializing a chain derives from
:class:`SfxChainError`, so callers can catch the whole family at once or
pick out the specific failure they care about.

Propagation:
    All of these abort the in-progress ``save()`` call. The only failure
    that is never raised is exhaustion of temp-file deletion retries, which
    is logged by :mod:`sfxchain.tempfiles` instead.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class SfxChainError(Exception):
    """Base error for the sfxchain package."""


class UnknownFilter(SfxChainError):
    """Raised when a filter name has no filter-graph translation."""

    def __init__(self, name: str):
        super().__init__(f"Unknown filter: {name!r}")
        self.name = name


class MissingRequiredOption(SfxChainError):
    """Raised when a filter is missing one of its required options."""

    def __init__(self, filter_name: str, missing_key: str):
        super().__init__(
            f"Filter {filter_name!r} requires the {missing_key!r} option"
        )
        self.filter_name = filter_name
        self.missing_key = missing_key


class InvalidOption(SfxChainError, ValueError):
    """Raised when an option is present but has an unusable value."""

    def __init__(self, filter_name: str, key: str, value: object, reason: str):
        super().__init__(
            f"Option {key!r}={value!r} for {filter_name!r}: {reason}"
        )
        self.filter_name = filter_name
        self.key = key
        self.value = value


class NoBaseAudio(SfxChainError):
    """Raised when an action needs a working file but none exists yet."""

    default_message = "No audio to mix with. Add audio before mixing."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class NoAudioToFilter(NoBaseAudio):
    """Raised when ``filter`` runs before any audio was added."""

    default_message = "No audio to apply filter to. Add audio before applying filters."


class NoAudioToTrim(NoBaseAudio):
    """Raised when ``trim`` runs before any audio was added."""

    default_message = "No audio to trim. Add audio before trimming."


class SourceFileMissing(SfxChainError, FileNotFoundError):
    """Raised when a caller-supplied source path does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Source audio file not found: {path}")
        self.path = path


class EngineError(SfxChainError):
    """Raised when an ffmpeg/ffprobe invocation fails or times out.

    The command, return code and captured output are kept as attributes so
    that callers can log or inspect the engine's own diagnostics.
    """

    def __init__(
        self,
        message: str,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.cmd: List[str] = [str(c) for c in cmd] if cmd else []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class AlreadyFinalized(SfxChainError):
    """Raised when ``save`` is called twice without an intervening ``reset``."""

    def __init__(self):
        super().__init__(
            "This chain was already finalized; call reset() before reusing it."
        )


class PipelineBusy(SfxChainError):
    """Raised when a chain is finalized while another run is in flight."""


class Cancelled(SfxChainError):
    """Raised when a run is cancelled between two actions."""


class TempDirUnavailable(SfxChainError, OSError):
    """Raised when the scoped temp directory cannot be created or used.

    This is fatal: the chain that hit it cannot be used any further.
    """


class InvalidOutputPath(SfxChainError, ValueError):
    """Raised when the save destination cannot hold an audio file."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot write output to {path}: {reason}")
        self.path = path


class OutputWriteError(SfxChainError, OSError):
    """Raised when the rendered audio cannot be moved or copied to the output."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Failed to write output {path}: {cause}")
        self.path = path
        self.cause = cause
