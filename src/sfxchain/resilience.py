"""
Resilience utilities for robust chain execution.

This module provides tools for making materialization more resilient:
- Retry decorators with exponential backoff
- Health checks for the external engine binaries
- Resource cleanup utilities

Audio operations themselves are never retried: a failed ffmpeg step is a
hard failure of the whole chain. Backoff is used where transient contention
is expected, such as deleting a scratch file that the just-exited engine
process may still hold open.

Example:
    >>> from sfxchain.resilience import retry_with_backoff
    >>>
    >>> @retry_with_backoff(max_retries=3, base_delay=0.05,
    ...                     retryable_exceptions=(PermissionError,))
    ... def unlink(path):
    ...     path.unlink()
"""

from __future__ import annotations

import functools
import logging
import shutil
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

F = TypeVar("F", bound=Callable[..., Any])


class RetryError(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries).
        base_delay: Initial delay between retries in seconds.
        max_delay: Maximum delay cap in seconds.
        exponential_base: Base for exponential backoff (e.g., 2.0 = double each time).
        jitter: Random jitter factor (0.0-1.0) to add to delays.
        retryable_exceptions: Tuple of exception types that trigger retries.
            Defaults to all OS-level errors.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: Tuple[Type[Exception], ...] = (OSError,)

    def decorate(self, func: F) -> F:
        """Wrap ``func`` with :func:`retry_with_backoff` using this config."""
        return retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
            retryable_exceptions=self.retryable_exceptions,
        )(func)


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: float,
) -> float:
    """Compute delay for a retry attempt with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed).
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        exponential_base: Base for exponential growth.
        jitter: Random jitter factor (0.0-1.0).

    Returns:
        Delay in seconds.
    """
    import random

    delay = base_delay * (exponential_base ** attempt)
    delay = min(delay, max_delay)

    if jitter > 0:
        jitter_amount = delay * jitter * random.random()
        delay += jitter_amount

    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: float = 0.1,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None,
) -> Callable[[F], F]:
    """Decorator for retry with exponential backoff.

    Retries a function on failure with exponentially increasing delays,
    sleeping between attempts instead of busy-waiting.

    Args:
        max_retries: Maximum retry attempts (0 = no retries).
        base_delay: Initial delay between retries in seconds.
        max_delay: Maximum delay cap in seconds.
        exponential_base: Multiplier for each retry (2.0 = double).
        jitter: Random factor (0-1) added to delays.
        retryable_exceptions: Exception types that trigger retries.
        on_retry: Optional callback(attempt, exception) called before each retry.

    Returns:
        Decorated function with retry logic.

    Raises:
        RetryError: From the decorated function once every attempt failed
            with a retryable exception. Non-retryable exceptions propagate
            immediately.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = compute_delay(
                            attempt, base_delay, max_delay, exponential_base, jitter
                        )

                        logger.warning(
                            "Attempt %d/%d failed for %s: %s. Retrying in %.2fs...",
                            attempt + 1,
                            max_retries + 1,
                            func.__name__,
                            str(e),
                            delay,
                        )

                        if on_retry:
                            on_retry(attempt, e)

                        time.sleep(delay)
                    else:
                        logger.error(
                            "All %d attempts failed for %s. Last error: %s",
                            max_retries + 1,
                            func.__name__,
                            str(e),
                        )
                        raise RetryError(
                            f"All {max_retries + 1} attempts failed for {func.__name__}",
                            attempts=max_retries + 1,
                            last_exception=e,
                        ) from e

            # Only reachable with a negative max_retries
            raise RetryError(
                f"Retry logic error in {func.__name__}",
                attempts=max_retries + 1,
                last_exception=last_exception,
            )

        return wrapper  # type: ignore

    return decorator


@dataclass
class HealthCheck:
    """Health check results for an engine binary.

    Attributes:
        name: Name of the dependency.
        available: Whether the dependency is available.
        version: Optional version string.
        details: Additional details or error message.
        check_time: Time when check was performed.
    """
    name: str
    available: bool
    version: Optional[str] = None
    details: str = ""
    check_time: float = field(default_factory=time.time)


def _check_binary_health(name: str, binary: str) -> HealthCheck:
    if shutil.which(binary) is None:
        return HealthCheck(
            name=name,
            available=False,
            details=f"{binary} command not found on PATH",
        )

    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except subprocess.TimeoutExpired:
        return HealthCheck(
            name=name,
            available=False,
            details=f"{binary} -version timed out",
        )
    except OSError as e:
        return HealthCheck(name=name, available=False, details=str(e))

    if result.returncode != 0:
        return HealthCheck(
            name=name,
            available=False,
            details=f"{binary} -version failed: {result.stderr.strip()}",
        )

    # First line looks like "ffmpeg version 6.1.1 Copyright ..."
    version = result.stdout.split("\n")[0] if result.stdout else None
    return HealthCheck(
        name=name,
        available=True,
        version=version,
        details="CLI available",
    )


def check_ffmpeg_health(binary: str = "ffmpeg") -> HealthCheck:
    """Check if ffmpeg is available and get version info."""
    return _check_binary_health("ffmpeg", binary)


def check_ffprobe_health(binary: str = "ffprobe") -> HealthCheck:
    """Check if ffprobe is available (used for probing and by pydub)."""
    return _check_binary_health("ffprobe", binary)


def run_all_health_checks(
    ffmpeg_bin: str = "ffmpeg",
    ffprobe_bin: str = "ffprobe",
) -> Dict[str, HealthCheck]:
    """Run all health checks and return results.

    Returns:
        Dictionary mapping dependency names to their health check results.
    """
    return {
        "ffmpeg": check_ffmpeg_health(ffmpeg_bin),
        "ffprobe": check_ffprobe_health(ffprobe_bin),
    }


def print_health_report(
    ffmpeg_bin: str = "ffmpeg",
    ffprobe_bin: str = "ffprobe",
) -> bool:
    """Print a formatted health check report to stdout.

    Returns:
        True when every dependency is available.
    """
    print("=" * 60)
    print("sfxchain - Dependency Health Check")
    print("=" * 60)

    results = run_all_health_checks(ffmpeg_bin, ffprobe_bin)

    for name, check in results.items():
        status = "✓" if check.available else "✗"
        print(f"\n{status} {name.upper()}")
        print(f"  Available: {check.available}")
        if check.version:
            print(f"  Version: {check.version}")
        print(f"  Details: {check.details}")

    available_count = sum(1 for c in results.values() if c.available)
    total_count = len(results)

    print("\n" + "=" * 60)
    print(f"Summary: {available_count}/{total_count} dependencies available")
    print("=" * 60)
    return available_count == total_count


@contextmanager
def resource_cleanup(
    paths: Optional[Sequence[Union[str, Path]]] = None,
    cleanup_on_error: bool = True,
    cleanup_on_success: bool = False,
):
    """Context manager for automatic resource cleanup.

    Ensures auxiliary files (such as ffmpeg concat lists) are removed after
    an engine call, even if the call fails.

    Args:
        paths: Paths to clean up (files or directories).
        cleanup_on_error: Whether to clean up if an exception occurs.
        cleanup_on_success: Whether to clean up on successful completion.

    Example:
        >>> with resource_cleanup([list_file], cleanup_on_success=True):
        ...     run_checked(cmd)
    """
    paths_to_clean: List[Path] = []
    if paths:
        paths_to_clean = [Path(p) for p in paths]

    error_occurred = False

    try:
        yield
    except BaseException:
        error_occurred = True
        raise
    finally:
        should_cleanup = (error_occurred and cleanup_on_error) or (
            not error_occurred and cleanup_on_success
        )

        if should_cleanup:
            for path in paths_to_clean:
                try:
                    if path.exists():
                        if path.is_dir():
                            shutil.rmtree(path)
                            logger.debug("Cleaned up directory: %s", path)
                        else:
                            path.unlink()
                            logger.debug("Cleaned up file: %s", path)
                except OSError as e:
                    logger.warning("Failed to clean up %s: %s", path, e)


__all__ = [
    "RetryError",
    "RetryConfig",
    "retry_with_backoff",
    "compute_delay",
    "HealthCheck",
    "check_ffmpeg_health",
    "check_ffprobe_health",
    "run_all_health_checks",
    "print_health_report",
    "resource_cleanup",
]
