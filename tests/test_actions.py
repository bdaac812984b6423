"""
Tests for action values and the action queue.
"""

import pytest

from sfxchain.actions import (
    ActionQueue,
    AddAction,
    DurationPolicy,
    FilterAction,
    MixAction,
    MixOptions,
    SilenceAction,
    TrimAction,
    TrimOptions,
    action_kind,
)
from sfxchain.errors import AlreadyFinalized, InvalidOption


class TestActionQueue:
    """Tests for recording and draining actions."""

    def test_append_preserves_order(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        queue.append(SilenceAction(500))
        queue.add("b.mp3")

        actions = queue.drain()
        assert actions == (
            AddAction("a.mp3"),
            SilenceAction(500),
            AddAction("b.mp3"),
        )

    def test_mix_on_empty_queue_becomes_add(self):
        queue = ActionQueue()
        queue.mix("a.mp3", MixOptions(duration="first"))
        assert queue.drain() == (AddAction("a.mp3"),)

    def test_mix_after_audio_is_kept(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        queue.mix("b.mp3", MixOptions(duration=DurationPolicy.SHORTEST))
        _, mix = queue.drain()
        assert isinstance(mix, MixAction)
        assert mix.options.duration == DurationPolicy.SHORTEST

    def test_mix_after_silence_is_kept(self):
        """Silence counts as recorded audio."""
        queue = ActionQueue()
        queue.append(SilenceAction(100))
        queue.mix("b.mp3")
        assert isinstance(queue.drain()[1], MixAction)

    def test_drain_twice_raises(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        queue.drain()
        assert queue.consumed
        with pytest.raises(AlreadyFinalized):
            queue.drain()

    def test_append_after_drain_raises(self):
        queue = ActionQueue()
        queue.drain()
        with pytest.raises(AlreadyFinalized):
            queue.add("a.mp3")

    def test_clear_allows_reuse(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        queue.drain()
        queue.clear()

        assert not queue.consumed
        assert queue.is_empty
        queue.add("b.mp3")
        assert queue.drain() == (AddAction("b.mp3"),)

    def test_drain_returns_snapshot(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        actions = queue.drain()
        queue.clear()
        queue.add("b.mp3")
        assert actions == (AddAction("a.mp3"),)

    def test_len_and_iter(self):
        queue = ActionQueue()
        queue.add("a.mp3")
        queue.append(FilterAction("reverb"))
        assert len(queue) == 2
        assert [action_kind(a) for a in queue] == ["concat", "filter"]


class TestActionValues:
    """Tests for immutability of recorded actions."""

    def test_filter_options_are_snapshotted(self):
        options = {"tp": -3}
        action = FilterAction("normalize", options)
        options["tp"] = 0
        assert action.options["tp"] == -3

    def test_filter_options_read_only(self):
        action = FilterAction("normalize", {"tp": -3})
        with pytest.raises(TypeError):
            action.options["tp"] = 0

    def test_trim_options_default_empty(self):
        assert dict(TrimAction().options) == {}
        assert dict(TrimAction(None).options) == {}

    def test_action_kind(self):
        assert action_kind(AddAction("x")) == "concat"
        assert action_kind(MixAction("x")) == "mix"
        assert action_kind(SilenceAction(1)) == "silence"
        assert action_kind(TrimAction()) == "trim"


class TestTrimOptions:
    """Tests for TrimOptions.from_mapping."""

    def test_defaults(self):
        opts = TrimOptions.from_mapping(None)
        assert opts == TrimOptions()
        assert opts.start_threshold == -50.0
        assert opts.padding_start == 0

    def test_camel_case_aliases(self):
        opts = TrimOptions.from_mapping({"paddingStart": 100, "stopThreshold": -45})
        assert opts.padding_start == 100.0
        assert opts.stop_threshold == -45.0

    def test_snake_case(self):
        opts = TrimOptions.from_mapping({"start_duration": "0.2"})
        assert opts.start_duration == 0.2

    def test_none_keeps_default(self):
        assert TrimOptions.from_mapping({"paddingEnd": None}).padding_end == 0

    def test_unknown_key(self):
        with pytest.raises(InvalidOption) as exc_info:
            TrimOptions.from_mapping({"padding": 100})
        assert exc_info.value.key == "padding"

    def test_non_numeric(self):
        with pytest.raises(InvalidOption):
            TrimOptions.from_mapping({"paddingStart": "lots"})
