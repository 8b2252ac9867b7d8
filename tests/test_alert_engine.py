"""Tests for the alert decision engine.

Covers:
- One alert per tier per climb
- Hysteresis reset below the lowest tier
- Tier gaps from coarse polling
- Sibling window context
- Rolling back undelivered tiers
"""

from alerts.engine import (
    AlertDecision,
    decide,
    pending_baseline,
    record_alert,
    state_key,
)
from conftest import claude_snapshot, make_snapshot, make_window

FIVE_HOUR = state_key("claude", "5-hour")
SEVEN_DAY = state_key("claude", "7-day")


class TestDecide:
    """Tests for decide()."""

    def test_first_crossing_alerts(self):
        decision = decide(claude_snapshot(five_hour=45.0), {})

        assert len(decision.alerts) == 1
        assert decision.alerts[0].tier == 40
        assert decision.alerts[0].key == FIVE_HOUR
        assert decision.state == {FIVE_HOUR: {40}}

    def test_idempotent_on_same_snapshot(self):
        """Second call with the resulting state produces no duplicate."""
        snapshot = claude_snapshot(five_hour=65.0, seven_day=30.0)

        first = decide(snapshot, {})
        second = decide(snapshot, first.state)

        assert len(first.alerts) == 2
        assert second.alerts == []
        assert second.state == first.state

    def test_climb_alerts_each_tier_once(self):
        state = {}
        tiers_sent = []
        for utilization in [25, 30, 45, 50, 62, 85, 90]:
            decision = decide(claude_snapshot(five_hour=utilization), state)
            tiers_sent.extend(a.tier for a in decision.alerts)
            state = decision.state

        assert tiers_sent == [20, 40, 60, 80]
        assert state[FIVE_HOUR] == {20, 40, 60, 80}

    def test_hysteresis_clears_state(self):
        state = {FIVE_HOUR: {80, 60, 40, 20}}

        decision = decide(claude_snapshot(five_hour=15.0), state)

        assert decision.alerts == []
        assert decision.state[FIVE_HOUR] == set()

    def test_reclimb_after_hysteresis(self):
        cleared = decide(claude_snapshot(five_hour=15.0), {FIVE_HOUR: {80, 60, 40, 20}}).state

        decision = decide(claude_snapshot(five_hour=85.0), cleared)

        assert [(a.key, a.tier) for a in decision.alerts] == [(FIVE_HOUR, 80)]
        assert decision.state == {FIVE_HOUR: {80}}

    def test_gap_fires_only_current_tier(self):
        """Jumping from below 20% to above 80% skips 60/40/20."""
        decision = decide(claude_snapshot(five_hour=92.0), {})

        assert [a.tier for a in decision.alerts] == [80]
        assert decision.state == {FIVE_HOUR: {80}}

    def test_drop_within_tiers_does_not_realert(self):
        """Falling from 85% to 65% re-enters an already-alerted tier."""
        state = {FIVE_HOUR: {20, 40, 60, 80}}

        decision = decide(claude_snapshot(five_hour=65.0), state)

        assert decision.alerts == []

    def test_drop_to_unalerted_lower_tier_alerts(self):
        """After a gap jump the lower tiers were never sent."""
        state = {FIVE_HOUR: {80}}

        decision = decide(claude_snapshot(five_hour=45.0), state)

        assert [a.tier for a in decision.alerts] == [40]
        assert decision.state[FIVE_HOUR] == {80, 40}

    def test_low_window_gets_no_entry(self):
        decision = decide(claude_snapshot(seven_day=5.0), {})

        assert decision.alerts == []
        assert SEVEN_DAY not in decision.state

    def test_input_state_not_mutated(self):
        state = {FIVE_HOUR: {20}}

        decide(claude_snapshot(five_hour=50.0), state)
        decide(claude_snapshot(five_hour=5.0), state)

        assert state == {FIVE_HOUR: {20}}

    def test_over_100_passes_through(self):
        decision = decide(claude_snapshot(five_hour=104.0), {})

        assert decision.alerts[0].tier == 80
        assert decision.alerts[0].window.utilization == 104.0

    def test_keys_are_per_provider(self):
        snapshot = make_snapshot(make_window("primary", 50.0), provider="openai")

        decision = decide(snapshot, {FIVE_HOUR: {40}})

        assert decision.alerts[0].key == "openai:primary"
        assert decision.state == {FIVE_HOUR: {40}, "openai:primary": {40}}

    def test_end_to_end_scenario(self):
        """82% 5-hour and 15% 7-day from empty state."""
        decision = decide(claude_snapshot(five_hour=82.0, seven_day=15.0), {})

        assert len(decision.alerts) == 1
        alert = decision.alerts[0]
        assert alert.window.period == "5-hour"
        assert alert.tier == 80
        assert decision.state == {FIVE_HOUR: {80}}
        assert SEVEN_DAY not in decision.state


class TestSibling:
    """Alerts on a short window carry the long window for context."""

    def test_short_window_gets_long_sibling(self):
        decision = decide(claude_snapshot(five_hour=82.0, seven_day=15.0), {})

        assert decision.alerts[0].sibling is not None
        assert decision.alerts[0].sibling.period == "7-day"

    def test_long_window_has_no_sibling(self):
        decision = decide(claude_snapshot(five_hour=5.0, seven_day=45.0), {})

        assert decision.alerts[0].window.period == "7-day"
        assert decision.alerts[0].sibling is None

    def test_unknown_lengths_have_no_sibling(self):
        snapshot = make_snapshot(make_window("a", 50.0), make_window("b", 10.0))

        decision = decide(snapshot, {})

        assert decision.alerts[0].sibling is None


class TestCommitHelpers:
    """Tests for record_alert() and pending_baseline()."""

    def test_baseline_drops_new_keys(self):
        decision = decide(claude_snapshot(five_hour=82.0), {})

        assert pending_baseline(decision, {}) == {}

    def test_baseline_keeps_existing_keys_and_tiers(self):
        previous = {FIVE_HOUR: {20, 40}}
        decision = decide(claude_snapshot(five_hour=65.0), previous)

        baseline = pending_baseline(decision, previous)

        assert baseline == {FIVE_HOUR: {20, 40}}

    def test_baseline_keeps_hysteresis_reset(self):
        previous = {FIVE_HOUR: {20, 40}, SEVEN_DAY: {20}}
        decision = decide(claude_snapshot(five_hour=10.0, seven_day=45.0), previous)

        baseline = pending_baseline(decision, previous)

        assert baseline == {FIVE_HOUR: set(), SEVEN_DAY: {20}}

    def test_record_then_baseline_matches_decision(self):
        previous = {}
        decision = decide(claude_snapshot(five_hour=82.0, seven_day=45.0), previous)

        state = pending_baseline(decision, previous)
        for alert in decision.alerts:
            state = record_alert(state, alert)

        assert state == decision.state

    def test_record_does_not_mutate(self):
        decision = decide(claude_snapshot(five_hour=82.0), {})
        state = {}

        record_alert(state, decision.alerts[0])

        assert state == {}

    def test_decision_is_dataclass(self):
        decision = decide(claude_snapshot(), {})
        assert isinstance(decision, AlertDecision)
        assert decision.alerts == []
