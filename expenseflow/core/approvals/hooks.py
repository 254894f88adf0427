"""Approval event bus.

ApprovalEngine publishes an event after the transaction behind it has
committed; subscribers never see a decision that was rolled back.

    from core.approvals import hooks

    hooks.on('expense.approved', notify_owner)
    hooks.fire('expense.approved', {'expense_id': 42, 'step_order': 2})

Only the events in EVENTS exist. Subscribing to or publishing anything
else is a programming error and raises ValueError.
"""

import logging
from typing import Callable, Dict, List

logger = logging.getLogger('expenseflow.core.approvals.hooks')

EVENTS = (
    'approval.requested',       # requests created for a step
    'approval.decided',         # one approver recorded a decision
    'approval.step_advanced',   # step completed, next step's requests created
    'approval.overridden',      # admin forced a terminal status
    'expense.approved',
    'expense.rejected',
)

_subscribers: Dict[str, List[Callable[[dict], None]]] = {event: [] for event in EVENTS}


def _callbacks(event_type: str) -> list:
    try:
        return _subscribers[event_type]
    except KeyError:
        raise ValueError(f'Unknown approval event: {event_type}') from None


def _name(callback) -> str:
    return getattr(callback, '__name__', repr(callback))


def on(event_type: str, callback):
    """Subscribe callback(payload) to an event. Returns the callback."""
    _callbacks(event_type).append(callback)
    logger.debug(f'{_name(callback)} subscribed to {event_type}')
    return callback


def fire(event_type: str, payload: dict) -> int:
    """Deliver a copy of payload to each subscriber, in subscription order.

    A subscriber that raises is logged and skipped. Returns how many
    subscribers completed.
    """
    delivered = 0
    for callback in list(_callbacks(event_type)):
        try:
            callback(dict(payload))
        except Exception:
            logger.exception(f'Subscriber {_name(callback)} failed on {event_type}')
        else:
            delivered += 1
    return delivered


def subscribers(event_type: str) -> tuple:
    return tuple(_callbacks(event_type))


def clear():
    """Drop every subscriber."""
    for callbacks in _subscribers.values():
        callbacks.clear()
