# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports vault metrics in Prometheus format.

Metrics:
- Total deposited principal, number of stakers
- Staking phase and reward reserve
- Deposits, paid rewards and withdrawals (fed from the event bus)
- Rejected operations by error type
"""

from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# VAULT STATE METRICS
# ═══════════════════════════════════════════════════════════════════

total_deposited = Gauge(
    'stakevault_total_deposited',
    'Sum of all deposited principal in base units',
    registry=metrics_registry
)

stakers = Gauge(
    'stakevault_stakers',
    'Number of accounts with non-zero principal',
    registry=metrics_registry
)

staking_started = Gauge(
    'stakevault_staking_started',
    'Whether staking has started (0 or 1)',
    registry=metrics_registry
)

reward_reserve = Gauge(
    'stakevault_reward_reserve',
    'Custody balance available for reward payouts',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

deposits_total = Counter(
    'stakevault_deposits_total',
    'Total number of deposits',
    registry=metrics_registry
)

deposited_amount_total = Counter(
    'stakevault_deposited_amount_total',
    'Total amount deposited in base units',
    registry=metrics_registry
)

rewards_paid_total = Counter(
    'stakevault_rewards_paid_total',
    'Total reward paid out in base units (claims and withdrawals)',
    registry=metrics_registry
)

withdrawals_total = Counter(
    'stakevault_withdrawals_total',
    'Total number of full withdrawals',
    registry=metrics_registry
)

failed_calls_total = Counter(
    'stakevault_failed_calls_total',
    'Rejected vault operations',
    ['error'],
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# UPDATE FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def update_metrics(controller):
    """
    Refresh state gauges from a vault.

    Args:
        controller: VaultController instance
    """
    status = controller.status()
    total_deposited.set(status["total_deposited"])
    stakers.set(status["stakers"])
    staking_started.set(1 if status["staking_started_at"] is not None else 0)
    reward_reserve.set(status["reward_reserve"])


def _on_deposit(account, amount, **_):
    deposits_total.inc()
    deposited_amount_total.inc(amount)


def _on_rewards_claimed(account, amount, **_):
    if amount:
        rewards_paid_total.inc(amount)


def _on_withdrawn(account, reward, **_):
    withdrawals_total.inc()
    if reward:
        rewards_paid_total.inc(reward)


def bind_event_metrics(bus):
    """
    Subscribe operation counters to a vault's event bus.

    Args:
        bus: EventBus instance
    """
    bus.subscribe("deposit", _on_deposit)
    bus.subscribe("rewards_claimed", _on_rewards_claimed)
    bus.subscribe("withdrawn", _on_withdrawn)


def render_metrics() -> bytes:
    return generate_latest(metrics_registry)
