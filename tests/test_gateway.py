"""
Tests for the ffmpeg gateway: argument building, probing and command lines.

``subprocess.run`` is monkeypatched, so these tests need no ffmpeg install.
"""

import json
import subprocess
from pathlib import Path

import pytest

from sfxchain.errors import EngineError
from sfxchain.gateway import (
    AudioProbe,
    FFmpegGateway,
    codec_args,
    options_to_args,
    parse_probe,
)


class _Recorder:
    """Replacement for ``subprocess.run`` that records commands."""

    def __init__(self, returncode=0, stdout="", stderr="", touch_output=True):
        self.commands = []
        self.list_files = {}
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.touch_output = touch_output

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if "concat" in cmd:
            list_file = Path(cmd[cmd.index("-i") + 1])
            self.list_files[str(list_file)] = list_file.read_text()
        if self.touch_output and self.returncode == 0 and cmd[0].endswith("ffmpeg"):
            Path(cmd[-1]).write_bytes(b"")
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def recorder(monkeypatch):
    rec = _Recorder()
    monkeypatch.setattr(subprocess, "run", rec)
    return rec


class TestCodecArgs:
    """Tests for extension-based codec selection."""

    @pytest.mark.parametrize("suffix,codec", [
        (".mp3", "libmp3lame"),
        (".wav", "pcm_s16le"),
        (".ogg", "libvorbis"),
        (".opus", "libopus"),
        (".flac", "flac"),
        (".m4a", "aac"),
        (".aac", "aac"),
        (".MP3", "libmp3lame"),
    ])
    def test_known_extensions(self, suffix, codec):
        assert codec_args(Path(f"out{suffix}")) == ["-c:a", codec]

    def test_unknown_extension(self):
        assert codec_args(Path("out.xyz")) == []

    def test_bitrate_for_lossy_only(self):
        assert codec_args(Path("o.mp3"), "128k") == ["-c:a", "libmp3lame", "-b:a", "128k"]
        assert codec_args(Path("o.wav"), "128k") == ["-c:a", "pcm_s16le"]


class TestOptionsToArgs:
    """Tests for output option translation."""

    def test_mapping_to_flags(self):
        assert options_to_args({"c:a": "libopus", "b:a": "32k"}) == [
            "-c:a", "libopus", "-b:a", "32k",
        ]

    def test_leading_dash_and_bare_flags(self):
        assert options_to_args({"-vn": None, "ar": 48000}) == ["-vn", "-ar", "48000"]


class TestParseProbe:
    """Tests for ffprobe JSON parsing."""

    def test_full_payload(self):
        payload = json.dumps({
            "streams": [{"channels": 2, "sample_rate": "44100", "bit_rate": "192000"}],
            "format": {"duration": "3.500000", "bit_rate": "193000"},
        })
        probe = parse_probe(payload)
        assert probe == AudioProbe(channels=2, sample_rate=44100, bitrate=192000, duration=3.5)
        assert probe.bitrate_arg == "192k"

    def test_falls_back_to_format_bitrate(self):
        payload = json.dumps({
            "streams": [{"channels": 1, "sample_rate": "22050"}],
            "format": {"bit_rate": "64000"},
        })
        probe = parse_probe(payload)
        assert probe.bitrate == 64000
        assert probe.duration is None

    def test_not_available_values(self):
        payload = json.dumps({
            "streams": [{"channels": 1, "sample_rate": "8000", "bit_rate": "N/A"}],
            "format": {"duration": "N/A"},
        })
        probe = parse_probe(payload)
        assert probe.bitrate is None
        assert probe.bitrate_arg is None

    @pytest.mark.parametrize("payload", ["", "{}", '{"streams": []}', "not json"])
    def test_no_audio_stream(self, payload):
        with pytest.raises(EngineError):
            parse_probe(payload, Path("x.mp3"))


class TestFFmpegGateway:
    """Tests for the command lines the gateway runs."""

    def test_concatenate(self, recorder, tmp_path):
        a, b = tmp_path / "a.mp3", tmp_path / "it's b.mp3"
        out = tmp_path / "concat_1.mp3"
        FFmpegGateway().concatenate([a, b], out)

        cmd = recorder.commands[0]
        assert cmd[:4] == ["ffmpeg", "-hide_banner", "-nostdin", "-y"]
        assert cmd[4:8] == ["-f", "concat", "-safe", "0"]
        assert cmd[-3:] == ["-c", "copy", str(out)]

        listing = recorder.list_files[str(out.with_suffix(".txt"))]
        assert listing.splitlines() == [
            f"file '{a.resolve()}'",
            "file '" + str(b.resolve()).replace("'", "'\\''") + "'",
        ]
        assert not out.with_suffix(".txt").exists()

    def test_concatenate_failure_removes_list_file(self, monkeypatch, tmp_path):
        monkeypatch.setattr(subprocess, "run", _Recorder(returncode=1, stderr="boom"))
        out = tmp_path / "concat_1.mp3"
        with pytest.raises(EngineError) as exc_info:
            FFmpegGateway().concatenate([tmp_path / "a.mp3"], out)
        assert exc_info.value.returncode == 1
        assert exc_info.value.stderr == "boom"
        assert not out.with_suffix(".txt").exists()

    def test_mix(self, recorder, tmp_path):
        out = tmp_path / "mix_1.mp3"
        FFmpegGateway(ffmpeg_bin="/opt/ffmpeg").mix(
            tmp_path / "a.mp3", tmp_path / "b.mp3", out, "first"
        )
        cmd = recorder.commands[0]
        assert cmd[0] == "/opt/ffmpeg"
        assert cmd[cmd.index("-filter_complex") + 1] == "amix=inputs=2:duration=first"
        assert cmd[-3:] == ["-c:a", "libmp3lame", str(out)]

    def test_generate_silence(self, recorder, tmp_path):
        out = tmp_path / "silence_1.wav"
        FFmpegGateway().generate_silence(0.25, 1, 22050, "96k", out)
        cmd = recorder.commands[0]
        assert cmd[cmd.index("-i") + 1] == "anullsrc=channel_layout=mono:sample_rate=22050"
        assert cmd[cmd.index("-t") + 1] == "0.25"
        assert "-b:a" not in cmd

    def test_generate_silence_whole_seconds(self, recorder, tmp_path):
        FFmpegGateway().generate_silence(2.0, 2, 44100, None, tmp_path / "s.mp3")
        cmd = recorder.commands[0]
        assert cmd[cmd.index("-t") + 1] == "2"
        assert "channel_layout=stereo" in cmd[cmd.index("-i") + 1]

    def test_generate_silence_missing_output(self, monkeypatch, tmp_path):
        monkeypatch.setattr(subprocess, "run", _Recorder(touch_output=False))
        with pytest.raises(EngineError, match="Failed to generate silence"):
            FFmpegGateway().generate_silence(1.0, 2, 44100, None, tmp_path / "s.mp3")

    def test_apply_filter_graph(self, recorder, tmp_path):
        out = tmp_path / "filter_1.mp3"
        FFmpegGateway().apply_filter_graph(tmp_path / "in.mp3", "volume=2", "128k", out)
        cmd = recorder.commands[0]
        assert cmd[cmd.index("-af") + 1] == "volume=2"
        assert cmd[-5:] == ["-c:a", "libmp3lame", "-b:a", "128k", str(out)]

    def test_reencode_with_options(self, recorder, tmp_path):
        out = tmp_path / "out.ogg"
        FFmpegGateway().reencode(tmp_path / "in.mp3", out, {"c:a": "libopus", "b:a": "32k"})
        assert recorder.commands[0][-5:] == ["-c:a", "libopus", "-b:a", "32k", str(out)]

    def test_reencode_infers_codec(self, recorder, tmp_path):
        out = tmp_path / "out.flac"
        FFmpegGateway().reencode(tmp_path / "in.mp3", out, {})
        assert recorder.commands[0][-3:] == ["-c:a", "flac", str(out)]

    def test_probe(self, monkeypatch, tmp_path):
        payload = json.dumps({
            "streams": [{"channels": 2, "sample_rate": "48000", "bit_rate": "128000"}],
            "format": {"duration": "1.0"},
        })
        rec = _Recorder(stdout=payload)
        monkeypatch.setattr(subprocess, "run", rec)

        probe = FFmpegGateway(ffprobe_bin="ffprobe7").probe(tmp_path / "x.mp3")
        assert probe.channels == 2
        assert probe.sample_rate == 48000
        assert rec.commands[0][0] == "ffprobe7"
        assert rec.commands[0][-1] == str(tmp_path / "x.mp3")

    def test_timeout_is_engine_error(self, monkeypatch, tmp_path):
        def slow(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(subprocess, "run", slow)
        with pytest.raises(EngineError, match="timed out"):
            FFmpegGateway(timeout_s=0.1).reencode(tmp_path / "a.mp3", tmp_path / "b.mp3", {})
