"""Alert decision engine.

Compares each window of a snapshot against the tiers already alerted for
its current climb and decides what to send. Nothing here reads the clock
or touches disk; the caller owns delivery and persistence.
"""

from dataclasses import dataclass
from typing import Optional

from providers.models import QuotaSnapshot, QuotaWindow
from .thresholds import LOWEST_TIER, classify

AlertState = dict[str, set[int]]


def state_key(provider: str, period: str) -> str:
    """Key for one window in the alert state, e.g. ``"claude:5-hour"``."""
    return f"{provider}:{period}"


@dataclass(frozen=True)
class PendingAlert:
    """A tier crossing that has not been delivered yet."""
    provider: str
    window: QuotaWindow
    tier: int
    sibling: Optional[QuotaWindow] = None

    @property
    def key(self) -> str:
        return state_key(self.provider, self.window.period)


@dataclass
class AlertDecision:
    """Alerts to send and the state that results if they are all delivered."""
    alerts: list[PendingAlert]
    state: AlertState


def copy_state(state: AlertState) -> AlertState:
    return {key: set(tiers) for key, tiers in state.items()}


def decide(snapshot: QuotaSnapshot, state: AlertState) -> AlertDecision:
    """Decide which windows need a new alert.

    For each window the current tier is alerted once per climb. Dropping
    below the lowest tier clears the window's history so the next climb
    alerts again. A window that jumps several tiers between polls only
    alerts for the tier it lands in.

    The input ``state`` is not modified.
    """
    new_state = copy_state(state)
    alerts = []

    for provider_snapshot, window in snapshot.iter_windows():
        key = state_key(provider_snapshot.provider, window.period)
        tier = classify(window.utilization)

        if tier is not None:
            already_alerted = new_state.get(key, set())
            if tier not in already_alerted:
                alerts.append(PendingAlert(
                    provider=provider_snapshot.provider,
                    window=window,
                    tier=tier,
                    sibling=provider_snapshot.longer_sibling(window),
                ))
                new_state[key] = already_alerted | {tier}

        # Hysteresis: usage fell back below every tier
        if window.utilization < LOWEST_TIER and key in new_state:
            new_state[key] = set()

    return AlertDecision(alerts=alerts, state=new_state)


def record_alert(state: AlertState, alert: PendingAlert) -> AlertState:
    """State with ``alert``'s tier marked as sent."""
    new_state = copy_state(state)
    new_state[alert.key] = new_state.get(alert.key, set()) | {alert.tier}
    return new_state


def pending_baseline(decision: AlertDecision, previous: AlertState) -> AlertState:
    """Decided state with every pending tier rolled back.

    Hysteresis resets are kept. Keys the previous state already held stay
    present even if empty; keys created only for an undelivered alert are
    dropped.
    """
    state = copy_state(decision.state)
    for alert in decision.alerts:
        state[alert.key] = state.get(alert.key, set()) - {alert.tier}
        if not state[alert.key] and alert.key not in previous:
            del state[alert.key]
    return state
