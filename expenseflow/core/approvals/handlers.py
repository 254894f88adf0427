"""Approval audit trail: one structured log line per approval event.

Registered at app startup via register_approval_hooks().
"""

import logging

from core.utils.logging_config import log_with_context
from . import hooks

logger = logging.getLogger('expenseflow.core.approvals.audit')

_registered = False


def register_approval_hooks():
    """Subscribe the audit logger to every approval event. Later calls are no-ops."""
    global _registered
    if _registered:
        return
    for event_type in hooks.EVENTS:
        hooks.on(event_type, _audit(event_type))
    _registered = True

    logger.info('Approval audit hooks registered')


def _audit(event_type):
    level = logging.WARNING if event_type == 'approval.overridden' else logging.INFO

    def handler(payload):
        log_with_context(logger, level, event_type, **payload)
    handler.__name__ = f"audit_{event_type.replace('.', '_')}"
    return handler
