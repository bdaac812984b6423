"""
Fluent audio-editing chain.

:class:`AudioChain` is the public entry point. Each fluent call records one
action and returns the same chain; :meth:`AudioChain.save` then drains the
recorded actions through a :class:`~sfxchain.executor.PipelineExecutor`,
which drives ffmpeg once per action.

Example:
    >>> from sfxchain import AudioChain
    >>> with AudioChain() as chain:
    ...     chain.add("part1.mp3") \\
    ...          .silence(2000) \\
    ...          .add("part2.mp3") \\
    ...          .mix("glitches.mp3", duration="first") \\
    ...          .filter("telephone") \\
    ...          .filter("normalize", tp=-3) \\
    ...          .save("out.mp3")

Reuse:
    A chain can be saved once. Call :meth:`AudioChain.reset` to record and
    save a new sequence of actions with the same scratch directory.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from sfxchain import lifecycle
from sfxchain.actions import (
    ActionQueue,
    FilterAction,
    MixOptions,
    SilenceAction,
    TrimAction,
)
from sfxchain.analysis import (
    DEFAULT_TAIL_MS,
    DEFAULT_THRESHOLD_DB,
    TruncationReport,
    detect_truncation,
)
from sfxchain.config import ChainConfig
from sfxchain.errors import PipelineBusy, TempDirUnavailable
from sfxchain.executor import ExecutionState, PipelineExecutor
from sfxchain.gateway import FFmpegGateway, TranscodeGateway
from sfxchain.tempfiles import TempFileRegistry

PathLike = Union[str, Path]


class AudioChain:
    """
    Record audio edits fluently and render them into one output file.

    Recording never validates anything; problems such as a missing source
    file or an unknown filter are raised by :meth:`save`.

    Attributes:
        cfg: Chain configuration.
        gateway: Engine gateway used for every step.
        registry: Scratch-file registry owning this chain's temp directory.
    """

    def __init__(
        self,
        cfg: Optional[ChainConfig] = None,
        gateway: Optional[TranscodeGateway] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Create a chain and its private scratch directory.

        Args:
            cfg: Chain configuration. Defaults to :class:`ChainConfig`.
            gateway: Engine gateway. Defaults to an :class:`FFmpegGateway`
                built from ``cfg``.
            logger: Optional logger; falls back to the module logger.

        Raises:
            TempDirUnavailable: If the scratch directory cannot be created.
        """
        self.cfg = cfg or ChainConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.gateway = gateway or FFmpegGateway(
            ffmpeg_bin=self.cfg.ffmpeg_bin,
            ffprobe_bin=self.cfg.ffprobe_bin,
            timeout_s=self.cfg.timeout_s,
        )
        self.registry = TempFileRegistry(
            root=self.cfg.temp_root,
            prefix=self.cfg.temp_prefix,
            retry=self.cfg.delete_retry,
        )
        lifecycle.register(self.registry)

        self._queue = ActionQueue()
        self._cancel = threading.Event()
        self._run_lock = threading.Lock()
        self._unusable: Optional[TempDirUnavailable] = None
        self._executor = PipelineExecutor(
            self.gateway,
            self.registry,
            self.cfg,
            cancel_event=self._cancel,
            logger=self.logger,
        )

    def __enter__(self) -> "AudioChain":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.cleanup()
        return False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def state(self) -> ExecutionState:
        """Execution state of the last (or current) run."""
        return self._executor.state

    @property
    def current_file(self) -> Optional[Path]:
        """Working file of the current run, if any."""
        return self._executor.current_file

    @property
    def step_timings(self) -> Dict[str, float]:
        """Seconds spent per step during the last run."""
        return dict(self._executor.step_timings)

    # ------------------------------------------------------------------
    # Fluent recording
    # ------------------------------------------------------------------

    def add(self, source: PathLike) -> "AudioChain":
        """Append ``source`` to the end of the audio."""
        self._queue.add(str(source))
        return self

    def mix(
        self,
        source: PathLike,
        options: Optional[Mapping[str, Any]] = None,
        *,
        duration: Optional[str] = None,
    ) -> "AudioChain":
        """Overlay ``source`` on the audio recorded so far.

        Args:
            source: Audio to mix in.
            options: Mapping form, e.g. ``{"duration": "first"}``.
            duration: ``shortest``, ``longest`` (default) or ``first``.

        Note:
            Mixing into an empty chain records an ``add`` instead.
        """
        policy = duration or (options or {}).get("duration") or "longest"
        self._queue.mix(str(source), MixOptions(duration=policy))
        return self

    def silence(self, milliseconds: float) -> "AudioChain":
        """Append ``milliseconds`` of silence."""
        self._queue.append(SilenceAction(milliseconds))
        return self

    def filter(
        self,
        name: str,
        options: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> "AudioChain":
        """Apply a named filter to the audio recorded so far.

        Options can be passed as a mapping, as keyword arguments, or both
        (keywords win). See :mod:`sfxchain.filters` for the filter list.
        """
        merged = dict(options or {})
        merged.update(kwargs)
        self._queue.append(FilterAction(name, merged))
        return self

    def trim(
        self,
        options: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> "AudioChain":
        """Trim leading and trailing silence, optionally padding afterwards.

        Accepts the fields of :class:`~sfxchain.actions.TrimOptions`, in
        snake_case or camelCase (``paddingStart=100``).
        """
        merged = dict(options or {})
        merged.update(kwargs)
        self._queue.append(TrimAction(merged))
        return self

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def save(
        self,
        output: PathLike,
        output_options: Optional[Mapping[str, Any]] = None,
    ) -> Path:
        """Render the recorded actions into ``output``.

        Args:
            output: Destination file. Its extension picks the codec unless
                ``output_options`` are given.
            output_options: ffmpeg output options such as
                ``{"c:a": "libopus", "b:a": "32k"}``.

        Returns:
            Absolute path of the written file.

        Raises:
            AlreadyFinalized: If this chain was already saved without reset.
            PipelineBusy: If another save is running on this chain.
            TempDirUnavailable: If the scratch directory is gone.
            SfxChainError: Any step failure, unchanged.
        """
        with self._exclusive():
            actions = self._queue.drain()
            return self._guard(lambda: self._executor.run(actions, output, output_options))

    finalize = save

    def is_truncated(
        self,
        tail_ms: int = DEFAULT_TAIL_MS,
        threshold_db: float = DEFAULT_THRESHOLD_DB,
    ) -> TruncationReport:
        """Render the recorded actions and check whether the audio ends abruptly.

        The rendered audio is discarded afterwards and the chain is reset,
        so it can immediately record the next sequence.

        Returns:
            A :class:`~sfxchain.analysis.TruncationReport`.
        """
        with self._exclusive():
            actions = self._queue.drain()
            try:
                working = self._guard(lambda: self._executor.materialize(actions))
                return detect_truncation(
                    working,
                    tail_ms=tail_ms,
                    threshold_db=threshold_db,
                    ffmpeg_bin=self.cfg.ffmpeg_bin,
                )
            finally:
                self._queue.clear()
                self._executor.reset()

    def cancel(self) -> None:
        """Ask a running save to stop before its next step."""
        self._cancel.set()

    def reset(self) -> "AudioChain":
        """Forget recorded actions and any working file so the chain can be reused."""
        if self._run_lock.locked():
            raise PipelineBusy("Cannot reset while a run is in progress")
        self._queue.clear()
        self._executor.reset()
        self._cancel.clear()
        return self

    def cleanup(self) -> None:
        """Remove the scratch directory. The chain cannot be saved afterwards."""
        self.registry.teardown()
        lifecycle.unregister(self.registry)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._unusable is not None:
            raise self._unusable
        if self.registry.closed:
            raise TempDirUnavailable("This chain was cleaned up; create a new one.")
        if not self._run_lock.acquire(blocking=False):
            raise PipelineBusy("A save is already running on this chain")
        try:
            yield
        finally:
            self._run_lock.release()

    def _guard(self, run):
        try:
            return run()
        except TempDirUnavailable as exc:
            self._unusable = exc
            raise

