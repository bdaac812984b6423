"""
Scoped temporary files for one chain.

``TempFileRegistry`` owns a private directory that holds every intermediate
file a chain produces. A path is pipeline-owned exactly when it lives
directly inside that directory; anything else (the caller's own sources)
is foreign and is never deleted.

Integration:
    Each :class:`~sfxchain.chain.AudioChain` creates one registry and
    registers it with :mod:`sfxchain.lifecycle`, so the directory is purged
    on ``cleanup()``, on interpreter exit and on SIGINT/SIGTERM.
"""

from __future__ import annotations

import itertools
import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Union

from sfxchain.errors import TempDirUnavailable
from sfxchain.resilience import RetryConfig, RetryError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Process-wide so names never collide across registries.
_counter = itertools.count(1)
_counter_lock = threading.Lock()


def _next_id() -> int:
    with _counter_lock:
        return next(_counter)


class TempFileRegistry:
    """Allocate, recognize and delete pipeline-owned scratch files.

    Attributes:
        temp_dir: Resolved path of the private scratch directory.

    Example:
        >>> registry = TempFileRegistry()
        >>> path = registry.allocate("concat")
        >>> registry.is_owned(path)
        True
        >>> registry.teardown()
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        prefix: str = "sfxchain_",
        retry: Optional[RetryConfig] = None,
    ):
        """Create the private scratch directory.

        Args:
            root: Parent directory; the system temp location when None.
            prefix: Directory name prefix.
            retry: Backoff used by :meth:`delete`.

        Raises:
            TempDirUnavailable: If the directory cannot be created.
        """
        try:
            if root is not None:
                Path(root).mkdir(parents=True, exist_ok=True)
            created = tempfile.mkdtemp(
                prefix=prefix, dir=str(root) if root is not None else None
            )
        except OSError as exc:
            raise TempDirUnavailable(
                f"Cannot create scratch directory under {root or tempfile.gettempdir()}: {exc}"
            ) from exc

        self.temp_dir = Path(created).resolve()
        self._closed = False
        self._retry = retry or RetryConfig(
            max_retries=4, base_delay=0.05, max_delay=1.0,
            retryable_exceptions=(OSError,),
        )
        self._unlink_with_retry = self._retry.decorate(self._unlink)
        logger.debug("Created scratch directory %s", self.temp_dir)

    @property
    def closed(self) -> bool:
        """Whether :meth:`teardown` already ran."""
        return self._closed

    def allocate(self, kind: str, suffix: str = ".mp3") -> Path:
        """Return a fresh, unused path inside the scratch directory.

        Args:
            kind: Tag describing the producer, e.g. ``concat`` or ``trim``.
            suffix: File extension including the dot.

        Raises:
            TempDirUnavailable: If the registry was torn down or the
                directory disappeared.
        """
        if self._closed or not self.temp_dir.is_dir():
            raise TempDirUnavailable(
                f"Scratch directory is not available: {self.temp_dir}"
            )
        return self.temp_dir / f"{kind}_{_next_id()}{suffix}"

    def is_owned(self, path: Union[str, Path, None]) -> bool:
        """Whether ``path`` lives directly inside the scratch directory."""
        if path is None:
            return False
        return Path(path).resolve().parent == self.temp_dir

    def delete(self, path: Union[str, Path, None]) -> bool:
        """Delete an owned file, retrying transient failures.

        Foreign paths are left alone. Exhausted retries are logged and
        swallowed: a leaked scratch file never changes the chain's result.

        Returns:
            True if the file is gone afterwards.
        """
        if path is None:
            return True
        path = Path(path)
        if not self.is_owned(path):
            logger.debug("Not deleting foreign file %s", path)
            return False
        try:
            self._unlink_with_retry(path)
        except RetryError as exc:
            logger.error(
                "Giving up deleting scratch file %s after %d attempts: %s",
                path,
                exc.attempts,
                exc.last_exception,
            )
            return False
        return True

    @staticmethod
    def _unlink(path: Path) -> None:
        path.unlink(missing_ok=True)

    def list_owned(self) -> List[Path]:
        """Files currently present in the scratch directory."""
        if not self.temp_dir.is_dir():
            return []
        return sorted(p for p in self.temp_dir.iterdir() if p.is_file())

    def teardown(self) -> None:
        """Remove the scratch directory and everything in it. Idempotent."""
        if self._closed:
            return
        self._closed = True
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        if self.temp_dir.exists():
            logger.warning("Scratch directory %s could not be fully removed", self.temp_dir)
        else:
            logger.debug("Removed scratch directory %s", self.temp_dir)
