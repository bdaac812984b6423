"""Pytest configuration and shared fixtures.

We add the repository root to sys.path so tests can import top-level folders
like `examples/` without requiring them to be installed as packages.

``FakeGateway`` stands in for ffmpeg in executor and chain tests. It writes
small text files whose content records what produced them, so tests can
check ordering and data flow without decoding audio.
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pytest

from sfxchain.errors import EngineError
from sfxchain.gateway import AudioProbe

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


class FakeGateway:
    """In-memory ``TranscodeGateway`` that records every call.

    Attributes:
        calls: ``(method, args)`` tuples in call order.
        fail_on: Method names that raise :class:`EngineError`.
        probe_result: What :meth:`probe` returns; None makes probing fail.
    """

    def __init__(self, probe_result: Optional[AudioProbe] = None):
        self.calls: List[Tuple[str, tuple]] = []
        self.fail_on: set = set()
        self.partial_on_failure = True
        self.probe_result = probe_result or AudioProbe(
            channels=1, sample_rate=22050, bitrate=96000, duration=1.0
        )

    def _maybe_fail(self, method: str, output: Optional[Path] = None) -> None:
        if method in self.fail_on:
            if output is not None and self.partial_on_failure:
                Path(output).write_text("partial")
            raise EngineError(f"{method} failed", cmd=["ffmpeg", method], returncode=1)

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def concatenate(self, inputs: Sequence[Path], output: Path) -> None:
        self.calls.append(("concatenate", (list(inputs), output)))
        self._maybe_fail("concatenate", output)
        Path(output).write_text("".join(Path(p).read_text() for p in inputs))

    def mix(self, input_a: Path, input_b: Path, output: Path, duration: str) -> None:
        self.calls.append(("mix", (input_a, input_b, output, duration)))
        self._maybe_fail("mix", output)
        Path(output).write_text(
            f"mix({Path(input_a).read_text()},{Path(input_b).read_text()},{duration})"
        )

    def generate_silence(
        self,
        duration_s: float,
        channels: int,
        sample_rate: int,
        bitrate: Optional[str],
        output: Path,
    ) -> None:
        self.calls.append(
            ("generate_silence", (duration_s, channels, sample_rate, bitrate, output))
        )
        self._maybe_fail("generate_silence", output)
        Path(output).write_text(f"<{duration_s:g}s>")

    def apply_filter_graph(
        self, input_path: Path, graph: str, bitrate: Optional[str], output: Path
    ) -> None:
        self.calls.append(("apply_filter_graph", (input_path, graph, bitrate, output)))
        self._maybe_fail("apply_filter_graph", output)
        Path(output).write_text(f"[{Path(input_path).read_text()}|{graph}]")

    def reencode(
        self, input_path: Path, output: Path, output_options: Mapping[str, Any]
    ) -> None:
        self.calls.append(("reencode", (input_path, output, dict(output_options))))
        self._maybe_fail("reencode", output)
        shutil.copyfile(input_path, output)

    def probe(self, path: Path) -> AudioProbe:
        self.calls.append(("probe", (path,)))
        if "probe" in self.fail_on or self.probe_result is None:
            raise EngineError(f"cannot probe {path}")
        return self.probe_result


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sources(tmp_path: Path):
    """Three caller-owned "audio" files with distinguishable content."""
    src = tmp_path / "src"
    src.mkdir()
    paths = {}
    for name in ("a", "b", "c"):
        path = src / f"{name}.mp3"
        path.write_text(name.upper())
        paths[name] = path
    return paths


def make_tone(
    duration_s: float,
    sample_rate: int = 44100,
    freq: float = 440.0,
    amplitude: float = 0.5,
    channels: int = 1,
) -> np.ndarray:
    """Float32 sine tone, shaped ``(n,)`` or ``(n, channels)``."""
    t = np.arange(int(sample_rate * duration_s)) / sample_rate
    audio = (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    if channels == 1:
        return audio
    return np.column_stack([audio] * channels)


def make_silence(duration_s: float, sample_rate: int = 44100, channels: int = 1) -> np.ndarray:
    n = int(sample_rate * duration_s)
    if channels == 1:
        return np.zeros(n, dtype=np.float32)
    return np.zeros((n, channels), dtype=np.float32)
