"""
Configuration for sfxchain.

Provides frozen dataclasses for chain configuration. Every default that the
engine graph depends on (loudness targets, telephone band, echo taps,
fallback silence layout) is surfaced here instead of being buried in the
filter translation code, so callers can pin the values they rely on.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from sfxchain.resilience import RetryConfig


@dataclass(frozen=True)
class FilterDefaults:
    """
    Default values for optional filter parameters.

    Attributes:
        normalize_i: Target integrated loudness (LUFS) for ``normalize``.
        normalize_tp: Target true peak (dBTP) for ``normalize``.
        normalize_lra: Target loudness range (LU) for ``normalize``.
        telephone_low_freq: High-pass cutoff (Hz) for ``telephone``.
        telephone_high_freq: Low-pass cutoff (Hz) for ``telephone``.
        echo_in_gain: Input gain of the ``echo`` tap.
        echo_out_gain: Output gain of the ``echo`` tap.
        echo_delay: Delay (ms) of the ``echo`` tap.
        echo_decay: Decay of the ``echo`` tap.
        reverb_graph: Filter graph used for ``reverb``.
    """

    normalize_i: float = -16.0
    normalize_tp: float = -1.5
    normalize_lra: float = 11.0
    telephone_low_freq: float = 300.0
    telephone_high_freq: float = 3400.0
    echo_in_gain: float = 0.8
    echo_out_gain: float = 0.88
    echo_delay: float = 500.0
    echo_decay: float = 0.5
    reverb_graph: str = "aecho=0.8:0.9:40|50|70:0.4|0.3|0.2"


@dataclass(frozen=True)
class ChainConfig:
    """
    Configuration for an :class:`~sfxchain.chain.AudioChain`.

    This is a frozen dataclass so a running chain cannot have its
    configuration changed underneath it.

    Attributes:
        ffmpeg_bin: ffmpeg executable name or path.
        ffprobe_bin: ffprobe executable name or path.
        native_format: Container/extension of intermediate files. Outputs
            with the same extension and no output options are moved rather
            than re-encoded.
        bitrate: Nominal bitrate for re-encoded intermediates (e.g. "192k"),
            or None to auto-detect it from the working file.
        fallback_channels: Channel count for silence when there is no working
            file or probing it fails.
        fallback_sample_rate: Sample rate for silence in the same situation.
        temp_root: Parent directory for the scoped temp directory. None uses
            the system temp location.
        temp_prefix: Prefix for the scoped temp directory name.
        timeout_s: Optional timeout (seconds) for each engine invocation.
        delete_retries: Retry attempts when deleting a scratch file.
        delete_base_delay: First backoff delay (seconds) for deletes.
        delete_max_delay: Backoff cap (seconds) for deletes.
        show_progress: Show a tqdm progress bar over actions. None enables
            it only when stderr is a TTY.
        filter_defaults: Defaults for optional filter parameters.
    """

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    native_format: str = "mp3"
    bitrate: Optional[str] = None
    fallback_channels: int = 2
    fallback_sample_rate: int = 44100
    temp_root: Optional[Union[str, Path]] = None
    temp_prefix: str = "sfxchain_"
    timeout_s: Optional[float] = None
    delete_retries: int = 4
    delete_base_delay: float = 0.05
    delete_max_delay: float = 1.0
    show_progress: Optional[bool] = None
    filter_defaults: FilterDefaults = field(default_factory=FilterDefaults)

    def __post_init__(self) -> None:
        """Coerce paths and validate numeric settings."""
        # Since frozen=True, we use object.__setattr__ for initialization
        if isinstance(self.temp_root, str):
            object.__setattr__(self, "temp_root", Path(self.temp_root))
        object.__setattr__(
            self, "native_format", self.native_format.lstrip(".").lower()
        )

        if not self.native_format:
            raise ValueError("native_format must not be empty")
        if self.fallback_channels <= 0:
            raise ValueError("fallback_channels must be positive")
        if self.fallback_sample_rate <= 0:
            raise ValueError("fallback_sample_rate must be positive")
        if self.timeout_s is not None and self.timeout_s < 0:
            raise ValueError("timeout_s cannot be negative")
        if self.delete_retries < 0:
            raise ValueError("delete_retries cannot be negative")
        if self.delete_base_delay < 0 or self.delete_max_delay < 0:
            raise ValueError("delete delays cannot be negative")

    @property
    def native_suffix(self) -> str:
        """Suffix (with dot) of intermediate files."""
        return f".{self.native_format}"

    @property
    def delete_retry(self) -> RetryConfig:
        """Backoff settings used by the temp-file registry for deletes."""
        return RetryConfig(
            max_retries=self.delete_retries,
            base_delay=self.delete_base_delay,
            max_delay=self.delete_max_delay,
            exponential_base=2.0,
            jitter=0.1,
            retryable_exceptions=(PermissionError, OSError),
        )
