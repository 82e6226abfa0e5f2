# MIT License
# Copyright (c) 2025 Hashborn

"""
Vault notifications.

The controller buffers notifications while an operation runs and hands
them to the bus only after it committed; the token ledger publishes its
transfer/approval notifications directly.
"""
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional
import logging

logger = logging.getLogger(__name__)

# Vault
DEPOSIT = "deposit"                      # account, amount
STAKING_STARTED = "staking_started"      # started_at, unlock_time
REWARDS_CLAIMED = "rewards_claimed"      # account, amount, deferred
WITHDRAWN = "withdrawn"                  # account, principal, reward, amount, deferred
REWARDS_FUNDED = "rewards_funded"        # account, amount
OWNERSHIP_TRANSFERRED = "ownership_transferred"  # previous_owner, new_owner

# Token ledger
TRANSFER = "transfer"                    # token, sender, to, amount
APPROVAL = "approval"                    # token, owner, spender, amount


class EventBus:
    """
    Synchronous pub/sub keyed by event name.

    Listeners are called in subscription order with the event payload as
    keyword arguments. A listener that raises is logged and skipped.
    """

    def __init__(self):
        self.listeners: DefaultDict[str, List[Callable[..., Any]]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Callable[..., Any]) -> None:
        self.listeners[event_type].append(callback)
        logger.debug(f"{getattr(callback, '__name__', callback)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable[..., Any]) -> None:
        callbacks = self.listeners.get(event_type)
        if not callbacks or callback not in callbacks:
            logger.warning(f"Unsubscribe of unknown listener for {event_type}")
            return
        callbacks.remove(callback)

    def emit(self, event_type: str, **data: Any) -> int:
        """Delivers one event. Returns how many listeners handled it."""
        delivered = 0
        for callback in tuple(self.listeners.get(event_type, ())):
            try:
                callback(**data)
                delivered += 1
            except Exception as e:
                logger.error(f"Listener for {event_type} failed: {e}", exc_info=True)
        logger.debug(f"{event_type} delivered to {delivered} listener(s)")
        return delivered

    def clear(self, event_type: Optional[str] = None) -> None:
        """Drops listeners of one event type, or all of them."""
        if event_type is None:
            self.listeners.clear()
        else:
            self.listeners.pop(event_type, None)
