"""
Tests for subprocess helpers.
"""

import subprocess
import sys

import pytest

from sfxchain.errors import EngineError
from sfxchain.subprocess_utils import CommandResult, format_cmd, run_checked


class TestFormatCmd:
    def test_quotes_arguments(self):
        assert format_cmd(["ffmpeg", "-i", "my file.mp3"]) == "ffmpeg -i 'my file.mp3'"

    def test_non_string_tokens(self):
        assert format_cmd(["ffmpeg", "-t", 2]) == "ffmpeg -t 2"


class TestRunChecked:
    """Tests for run_checked error reporting."""

    def test_success(self):
        result = run_checked([sys.executable, "-c", "print('ok')"])
        assert isinstance(result, CommandResult)
        assert result.returncode == 0
        assert result.stdout.strip() == "ok"

    def test_nonzero_exit(self):
        with pytest.raises(EngineError) as exc_info:
            run_checked(
                [sys.executable, "-c", "import sys; sys.stderr.write('bad input'); sys.exit(3)"],
                tool_name="ffmpeg",
            )
        err = exc_info.value
        assert err.returncode == 3
        assert err.stderr == "bad input"
        assert "ffmpeg failed with exit code 3" in str(err)
        assert "bad input" in str(err)
        assert err.cmd[0] == sys.executable

    def test_command_not_found(self):
        with pytest.raises(EngineError, match="not found"):
            run_checked(["no-such-binary-for-sfxchain"], tool_name="ffmpeg")

    def test_timeout(self, monkeypatch):
        def slow(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", slow)
        with pytest.raises(EngineError, match="timed out after 1.5s"):
            run_checked(["ffmpeg"], timeout_s=1.5, tool_name="ffmpeg")
