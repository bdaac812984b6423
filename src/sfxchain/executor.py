"""
Sequential materialization of an action queue.

``PipelineExecutor`` walks a drained action tuple in order, keeps a single
"working file" reference, and asks the :class:`~sfxchain.gateway.TranscodeGateway`
for exactly one engine invocation per action. Scratch files come from the
chain's :class:`~sfxchain.tempfiles.TempFileRegistry`; every superseded
pipeline-owned file is deleted at the step boundary that superseded it.

States::

    EMPTY -> RUNNING -> SUCCEEDED
                     -> FAILED     (any step error)
                     -> CANCELLED  (cancel flag seen between steps)

On failure the current owned working file and any half-written step output
are deleted before the error propagates unchanged, so the scratch directory
never holds orphaned intermediates.
"""

import errno
import logging
import os
import shutil
import sys
import threading
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence

from tqdm import tqdm

from sfxchain.actions import (
    Action,
    AddAction,
    DurationPolicy,
    FilterAction,
    MixAction,
    SilenceAction,
    TrimAction,
    TrimOptions,
    action_kind,
)
from sfxchain.config import ChainConfig
from sfxchain.errors import (
    Cancelled,
    EngineError,
    InvalidOption,
    InvalidOutputPath,
    NoAudioToFilter,
    NoAudioToTrim,
    NoBaseAudio,
    OutputWriteError,
    PipelineBusy,
    SourceFileMissing,
)
from sfxchain.filters import build_filter_chain, build_trim_chain
from sfxchain.gateway import CODEC_BY_EXTENSION, AudioProbe, TranscodeGateway
from sfxchain.tempfiles import TempFileRegistry

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class ExecutionState(str, Enum):
    EMPTY = "empty"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _resolve_progress_enabled(explicit: Optional[bool]) -> bool:
    if explicit is not None:
        return explicit
    try:
        return sys.stderr.isatty()
    except (AttributeError, ValueError):
        return False


class _ExecutionStep:
    """Lightweight context manager to log step start/completion with duration."""

    def __init__(self, log: logging.Logger, name: str, timings_dict: Optional[Dict[str, float]] = None):
        self.log = log
        self.name = name
        self.start_time = 0.0
        self.timings_dict = timings_dict

    def __enter__(self) -> "_ExecutionStep":
        self.start_time = time.time()
        self.log.info(self.name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        duration = time.time() - self.start_time

        if self.timings_dict is not None:
            # "Step 2: mix" -> "step_2_mix"
            key = self.name.lower().replace(":", "").replace(" ", "_")
            while "__" in key:
                key = key.replace("__", "_")
            self.timings_dict[key] = round(duration, 3)

        if exc_type is None:
            self.log.info("%s completed in %.2fs", self.name, duration)
        else:
            self.log.error("%s failed after %.2fs: %s", self.name, duration, exc_val)
        return False


class PipelineExecutor:
    """Apply actions one engine call at a time and produce the output.

    Attributes:
        state: Current :class:`ExecutionState`.
        current_file: Absolute path of the working file, or None.
        step_timings: Seconds spent per step during the last run.
    """

    def __init__(
        self,
        gateway: TranscodeGateway,
        registry: TempFileRegistry,
        cfg: Optional[ChainConfig] = None,
        cancel_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.registry = registry
        self.cfg = cfg or ChainConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.logger = logger or logging.getLogger(__name__)

        self.state = ExecutionState.EMPTY
        self.current_file: Optional[Path] = None
        self.step_timings: Dict[str, float] = {}
        self._probes: Dict[Path, Optional[AudioProbe]] = {}
        self._handlers: Dict[type, Callable[[Any], None]] = {
            AddAction: self._apply_add,
            MixAction: self._apply_mix,
            SilenceAction: self._apply_silence,
            FilterAction: self._apply_filter,
            TrimAction: self._apply_trim,
        }

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run(
        self,
        actions: Sequence[Action],
        output: os.PathLike,
        output_options: Optional[Mapping[str, Any]] = None,
    ) -> Path:
        """Materialize ``actions`` into ``output``.

        Args:
            actions: Drained actions, applied in order.
            output: Destination path; its directory is created if needed.
            output_options: Extra ffmpeg output options. Non-empty options
                force a final re-encode.

        Returns:
            Absolute path of the written output.

        Raises:
            InvalidOutputPath: If ``output`` is an existing directory.
            OutputWriteError: If the result cannot be written to ``output``.
            SfxChainError: Whatever step failed, unchanged.
        """
        with self._running():
            target = Path(output).expanduser().absolute()
            if target.is_dir():
                raise InvalidOutputPath(str(target), "is a directory")
            self._apply_all(actions)
            self._check_cancelled("finalizing")
            with self._step("Finalize output"):
                return self._finalize(target, dict(output_options or {}))

    def materialize(self, actions: Sequence[Action]) -> Path:
        """Apply ``actions`` and return the resulting working file.

        The working file stays in place until :meth:`release` is called.

        Raises:
            NoBaseAudio: If the actions produced no audio at all.
        """
        with self._running():
            self._apply_all(actions)
            if self.current_file is None:
                raise NoBaseAudio("Nothing to analyze: no audio was added.")
            return self.current_file

    def release(self) -> None:
        """Delete the owned working file (if any) and forget it."""
        self.registry.delete(self.current_file)
        self.current_file = None

    def reset(self) -> None:
        """Return to ``EMPTY`` so another queue can be executed."""
        if self.state is ExecutionState.RUNNING:
            raise PipelineBusy("Cannot reset while a run is in progress")
        self.release()
        self._probes.clear()
        self.step_timings = {}
        self.state = ExecutionState.EMPTY

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    @contextmanager
    def _running(self) -> Iterator[None]:
        if self.state is ExecutionState.RUNNING:
            raise PipelineBusy("A run is already in progress for this chain")
        self.state = ExecutionState.RUNNING
        self.step_timings = {}
        try:
            yield
        except BaseException as exc:
            self.state = (
                ExecutionState.CANCELLED
                if isinstance(exc, Cancelled)
                else ExecutionState.FAILED
            )
            if self.current_file is not None:
                self.logger.debug("Discarding working file %s", self.current_file)
            self.release()
            raise
        else:
            self.state = ExecutionState.SUCCEEDED

    def _check_cancelled(self, where: str) -> None:
        if self.cancel_event.is_set():
            raise Cancelled(f"Run cancelled before {where}")

    def _step(self, name: str) -> _ExecutionStep:
        return _ExecutionStep(self.logger, name, self.step_timings)

    def _apply_all(self, actions: Sequence[Action]) -> None:
        total = len(actions)
        self.logger.info("Materializing %d action(s)", total)
        progress = tqdm(
            actions,
            total=total,
            desc="sfxchain",
            unit="step",
            disable=not _resolve_progress_enabled(self.cfg.show_progress),
        )
        try:
            for index, action in enumerate(progress, 1):
                kind = type(action).__name__.replace("Action", "").lower()
                self._check_cancelled(f"step {index} ({kind})")
                with self._step(f"Step {index}: {kind}"):
                    self._handlers[type(action)](action)
        finally:
            progress.close()

    # ------------------------------------------------------------------
    # Working-file helpers
    # ------------------------------------------------------------------

    def _resolve_source(self, source: str) -> Path:
        path = Path(source).expanduser()
        if not path.is_file():
            raise SourceFileMissing(str(source))
        return path.resolve()

    def _scratch_suffix(self) -> str:
        """Suffix for stream-copied scratch files (concat, silence)."""
        if self.current_file is not None:
            suffix = self.current_file.suffix.lower()
            if suffix in CODEC_BY_EXTENSION:
                return suffix
        return self.cfg.native_suffix

    def _produce(self, kind: str, suffix: str, render: Callable[[Path], None]) -> Path:
        """Allocate a scratch path, render into it, clean up on failure."""
        out = self.registry.allocate(kind, suffix)
        try:
            render(out)
        except BaseException:
            self.registry.delete(out)
            raise
        if not out.exists():
            raise EngineError(f"Engine reported success but produced no file: {out}")
        return out

    def _replace_current(self, new_file: Path) -> None:
        old = self.current_file
        self.current_file = new_file
        if old is not None and self.registry.is_owned(old):
            self.registry.delete(old)
            self._probes.pop(old, None)

    def _probe(self, path: Path) -> Optional[AudioProbe]:
        if path not in self._probes:
            try:
                self._probes[path] = self.gateway.probe(path)
            except EngineError as exc:
                self.logger.warning("Could not probe %s: %s", path, exc)
                self._probes[path] = None
        return self._probes[path]

    def _bitrate(self) -> Optional[str]:
        if self.cfg.bitrate:
            return self.cfg.bitrate
        if self.current_file is None:
            return None
        probe = self._probe(self.current_file)
        return probe.bitrate_arg if probe else None

    def _require_current(self, error: type) -> Path:
        if self.current_file is None:
            raise error()
        return self.current_file

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _apply_add(self, action: AddAction) -> None:
        source = self._resolve_source(action.source)
        if self.current_file is None:
            self.current_file = source
            return
        current = self.current_file
        out = self._produce(
            "concat",
            self._scratch_suffix(),
            lambda dst: self.gateway.concatenate([current, source], dst),
        )
        self._replace_current(out)

    def _apply_mix(self, action: MixAction) -> None:
        current = self._require_current(NoBaseAudio)
        try:
            policy = DurationPolicy(action.options.duration)
        except ValueError:
            raise InvalidOption(
                "mix", "duration", action.options.duration,
                "expected one of shortest, longest, first",
            ) from None
        source = self._resolve_source(action.source)
        out = self._produce(
            "mix",
            self.cfg.native_suffix,
            lambda dst: self.gateway.mix(current, source, dst, policy.value),
        )
        self._replace_current(out)

    def _apply_silence(self, action: SilenceAction) -> None:
        try:
            duration_ms = float(action.duration_ms)
        except (TypeError, ValueError):
            raise InvalidOption(
                "silence", "duration_ms", action.duration_ms, "expected a number"
            ) from None
        if duration_ms <= 0:
            raise InvalidOption(
                "silence", "duration_ms", action.duration_ms, "must be positive"
            )

        channels = self.cfg.fallback_channels
        sample_rate = self.cfg.fallback_sample_rate
        if self.current_file is not None:
            probe = self._probe(self.current_file)
            if probe is not None:
                channels, sample_rate = probe.channels, probe.sample_rate

        bitrate = self._bitrate()
        silence_file = self._produce(
            "silence",
            self._scratch_suffix(),
            lambda dst: self.gateway.generate_silence(
                duration_ms / 1000.0, channels, sample_rate, bitrate, dst
            ),
        )
        if self.current_file is None:
            self.current_file = silence_file
            return

        current = self.current_file
        try:
            out = self._produce(
                "concat",
                self._scratch_suffix(),
                lambda dst: self.gateway.concatenate([current, silence_file], dst),
            )
        finally:
            self.registry.delete(silence_file)
        self._replace_current(out)

    def _apply_filter(self, action: FilterAction) -> None:
        current = self._require_current(NoAudioToFilter)
        graph = build_filter_chain(action.name, action.options, self.cfg.filter_defaults)
        self.logger.debug("Filter %s -> %s", action.name, graph)
        bitrate = self._bitrate()
        out = self._produce(
            action_kind(action),
            self.cfg.native_suffix,
            lambda dst: self.gateway.apply_filter_graph(current, graph, bitrate, dst),
        )
        self._replace_current(out)

    def _apply_trim(self, action: TrimAction) -> None:
        current = self._require_current(NoAudioToTrim)
        graph = build_trim_chain(TrimOptions.from_mapping(action.options))
        self.logger.debug("Trim -> %s", graph)
        bitrate = self._bitrate()
        out = self._produce(
            action_kind(action),
            self.cfg.native_suffix,
            lambda dst: self.gateway.apply_filter_graph(current, graph, bitrate, dst),
        )
        self._replace_current(out)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _finalize(self, output: Path, output_options: Dict[str, Any]) -> Path:
        if self.current_file is None:
            raise NoBaseAudio("Nothing to save: no audio was added.")
        current = self.current_file
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output), exc) from exc

        needs_reencode = bool(output_options) or (
            output.suffix.lower() != current.suffix.lower()
        )
        if needs_reencode:
            # Encode into scratch first so a failed encode never leaves a
            # partial file at the destination.
            encoded = self._produce(
                "output",
                output.suffix or self.cfg.native_suffix,
                lambda dst: self.gateway.reencode(current, dst, output_options),
            )
            try:
                self._deliver(encoded, output, move=True)
            except BaseException:
                self.registry.delete(encoded)
                raise
        elif self.registry.is_owned(current):
            self._deliver(current, output, move=True)
        elif current.resolve() == output.resolve():
            self.logger.info("Output %s is the source itself; nothing to write", output)
        else:
            self._deliver(current, output, move=False)

        self.release()
        self.logger.info("Wrote %s", output)
        return output

    def _deliver(self, src: Path, dst: Path, move: bool) -> None:
        try:
            if move:
                self._move(src, dst)
            else:
                shutil.copyfile(src, dst)
        except OSError as exc:
            raise OutputWriteError(str(dst), exc) from exc

    def _move(self, src: Path, dst: Path) -> None:
        try:
            os.replace(src, dst)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            self.logger.debug("Rename %s -> %s crosses devices; copying", src, dst)
            try:
                shutil.copyfile(src, dst)
            except OSError:
                dst.unlink(missing_ok=True)
                raise
            self.registry.delete(src)
