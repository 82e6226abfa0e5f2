# MIT License
# Copyright (c) 2025 Hashborn

"""
EventBus Tests

Tests:
- Subscribe / emit / unsubscribe
- Listener failures are isolated
- Metrics counters bound to vault events
"""
import pytest

from stakevault.vault.core.events import EventBus, DEPOSIT, REWARDS_CLAIMED, WITHDRAWN
from stakevault.vault.observability import metrics


# ═══════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def clean_event_bus():
    """Provide a clean EventBus for each test."""
    bus = EventBus()
    yield bus
    bus.clear()


# ═══════════════════════════════════════════════════════════════════
# EVENTBUS TESTS
# ═══════════════════════════════════════════════════════════════════

def test_eventbus_subscribe_and_emit(clean_event_bus):
    bus = clean_event_bus
    callback_data = []

    def callback(**data):
        callback_data.append(data)

    bus.subscribe(DEPOSIT, callback)
    bus.emit(DEPOSIT, account="alice", amount=42)

    assert callback_data == [{"account": "alice", "amount": 42}]


def test_eventbus_multiple_listeners(clean_event_bus):
    bus = clean_event_bus
    called = []

    bus.subscribe(DEPOSIT, lambda **data: called.append("first"))
    bus.subscribe(DEPOSIT, lambda **data: called.append("second"))
    bus.emit(DEPOSIT)

    assert called == ["first", "second"]


def test_eventbus_unsubscribe(clean_event_bus):
    bus = clean_event_bus
    called = []

    def callback(**data):
        called.append(True)

    bus.subscribe(DEPOSIT, callback)
    bus.emit(DEPOSIT)
    bus.unsubscribe(DEPOSIT, callback)
    bus.emit(DEPOSIT)
    # Unknown callback is ignored
    bus.unsubscribe(DEPOSIT, callback)

    assert len(called) == 1


def test_eventbus_error_handling(clean_event_bus):
    """Errors in callbacks don't break event emission."""
    bus = clean_event_bus
    good_callback_called = []

    def bad_callback(**data):
        raise ValueError("Test error")

    bus.subscribe(WITHDRAWN, bad_callback)
    bus.subscribe(WITHDRAWN, lambda **data: good_callback_called.append(True))

    bus.emit(WITHDRAWN)
    assert len(good_callback_called) == 1


def test_eventbus_clear(clean_event_bus):
    bus = clean_event_bus
    called = []
    bus.subscribe(DEPOSIT, lambda **data: called.append(DEPOSIT))
    bus.subscribe(WITHDRAWN, lambda **data: called.append(WITHDRAWN))

    bus.clear(DEPOSIT)
    bus.emit(DEPOSIT)
    bus.emit(WITHDRAWN)
    assert called == [WITHDRAWN]

    bus.clear()
    bus.emit(WITHDRAWN)
    assert called == [WITHDRAWN]


# ═══════════════════════════════════════════════════════════════════
# METRICS TESTS
# ═══════════════════════════════════════════════════════════════════

def _sample(name, **labels):
    return metrics.metrics_registry.get_sample_value(name, labels) or 0


def test_metrics_follow_events(clean_event_bus):
    bus = clean_event_bus
    metrics.bind_event_metrics(bus)

    deposits = _sample("stakevault_deposits_total")
    deposited = _sample("stakevault_deposited_amount_total")
    paid = _sample("stakevault_rewards_paid_total")
    withdrawals = _sample("stakevault_withdrawals_total")

    bus.emit(DEPOSIT, account="alice", amount=100)
    bus.emit(REWARDS_CLAIMED, account="alice", amount=7)
    bus.emit(REWARDS_CLAIMED, account="alice", amount=0)
    bus.emit(WITHDRAWN, account="alice", principal=100, reward=3, amount=103)

    assert _sample("stakevault_deposits_total") == deposits + 1
    assert _sample("stakevault_deposited_amount_total") == deposited + 100
    assert _sample("stakevault_rewards_paid_total") == paid + 10
    assert _sample("stakevault_withdrawals_total") == withdrawals + 1


def test_render_metrics():
    output = metrics.render_metrics().decode()
    assert "stakevault_total_deposited" in output
    assert "stakevault_failed_calls_total" in output
