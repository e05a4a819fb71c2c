import pytest

from parley.agent.directive import (
    RecentMentionPolicy,
    TurnIntervalPolicy,
    get_directive_policy,
)
from parley.utils.errors import ConfigError


class TestRecentMentionPolicy:

    def test_empty_directive_never_injected(self):
        assert not RecentMentionPolicy().should_inject("", "")

    def test_missing_directive_is_injected(self):
        assert RecentMentionPolicy().should_inject("no rules here", "Be terse.")

    def test_recent_mention_suppresses_injection(self):
        prompt = "x" * 100 + "Be terse." + "y" * 100
        assert not RecentMentionPolicy(window=2000).should_inject(prompt, "Be terse.")

    def test_mention_outside_window_is_ignored(self):
        prompt = "Be terse." + "y" * 2000
        assert RecentMentionPolicy(window=2000).should_inject(prompt, "Be terse.")

    def test_mention_straddling_window_edge_is_ignored(self):
        # Only the last 4 characters of the directive fall inside the window
        prompt = "Be terse." + "y" * 6
        assert RecentMentionPolicy(window=10).should_inject(prompt, "Be terse.")


class TestTurnIntervalPolicy:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ConfigError):
            TurnIntervalPolicy(every=0)

    def test_injects_on_schedule(self):
        policy = TurnIntervalPolicy(every=3)
        policy.record("D", injected=True)
        decisions = []
        for _ in range(6):
            inject = policy.should_inject("", "D")
            decisions.append(inject)
            policy.record("D", injected=inject)
        assert decisions == [False, False, True, False, False, True]

    def test_unknown_history_scans_prompt_once(self):
        policy = TurnIntervalPolicy(every=2)
        assert not policy.should_inject("...D...", "D")
        policy.record("D", injected=False)
        assert policy.should_inject("...D...", "D")

    def test_unknown_history_without_mention_injects(self):
        assert TurnIntervalPolicy(every=5).should_inject("nothing", "D")

    def test_changed_directive_injects_immediately(self):
        policy = TurnIntervalPolicy(every=10)
        policy.record("old", injected=True)
        assert policy.should_inject("", "new")

    def test_reset_forgets_history(self):
        policy = TurnIntervalPolicy(every=10)
        policy.record("D", injected=True)
        policy.reset()
        assert policy.should_inject("", "D")

    def test_empty_directive_never_injected(self):
        assert not TurnIntervalPolicy(every=1).should_inject("", "")


def test_get_directive_policy():
    recent = get_directive_policy("recent_mention", window=50, every=3)
    assert isinstance(recent, RecentMentionPolicy)
    assert recent.window == 50

    interval = get_directive_policy("turn_interval", window=50, every=3)
    assert isinstance(interval, TurnIntervalPolicy)
    assert interval.every == 3


def test_get_directive_policy_unknown():
    with pytest.raises(ConfigError):
        get_directive_policy("always")
