"""Rule evaluator — rolls per-approver decisions up to a step outcome.

Used by the engine after every decision, over all requests of the
expense's current step.

Example:
    flow = {"rule_type": "PERCENTAGE", "percentage_threshold": 60}
    requests = [{"status": "APPROVED"}, {"status": "APPROVED"}, {"status": "PENDING"}]
    RuleEvaluator.evaluate(flow, requests) → 'APPROVED'

Rule types:
    UNANIMOUS: any rejection rejects; every approver must approve
    PERCENTAGE: ⌈T/100 × N⌉ approvals approve; rejects as soon as the
                threshold can no longer be reached
    SPECIFIC: the specific approver's decision is the outcome
    HYBRID: PERCENTAGE or SPECIFIC, approval checked first

A SPECIFIC step without a request for the specific approver is evaluated
as UNANIMOUS; a HYBRID one only by its percentage.
"""

import logging
import math
from decimal import Decimal

logger = logging.getLogger('expenseflow.core.approvals.rules')

PENDING = 'PENDING'
APPROVED = 'APPROVED'
REJECTED = 'REJECTED'

UNANIMOUS = 'UNANIMOUS'
PERCENTAGE = 'PERCENTAGE'
SPECIFIC = 'SPECIFIC'
HYBRID = 'HYBRID'

RULE_TYPES = (UNANIMOUS, PERCENTAGE, SPECIFIC, HYBRID)


def required_approvals(threshold, total: int) -> int:
    """Number of approvals needed to reach threshold percent of total."""
    if total <= 0:
        return 0
    needed = math.ceil(Decimal(str(threshold)) * total / 100)
    return max(1, min(needed, total))


class RuleEvaluator:

    @staticmethod
    def evaluate(flow: dict, step_requests: list) -> str:
        """Return APPROVED, REJECTED or PENDING for one step."""
        rule_type = flow.get('rule_type') or UNANIMOUS
        counts = RuleEvaluator._count(step_requests)

        if rule_type == UNANIMOUS:
            return RuleEvaluator._unanimous(counts)

        if rule_type == PERCENTAGE:
            return RuleEvaluator._percentage(counts, flow.get('percentage_threshold'))

        specific = RuleEvaluator._specific_decision(flow, step_requests)

        if rule_type == SPECIFIC:
            if specific is None:
                return RuleEvaluator._unanimous(counts)
            return specific

        if rule_type == HYBRID:
            by_percentage = RuleEvaluator._percentage(counts, flow.get('percentage_threshold'))
            if specific == APPROVED or by_percentage == APPROVED:
                return APPROVED
            if specific == REJECTED or by_percentage == REJECTED:
                return REJECTED
            return PENDING

        raise ValueError(f'Unknown rule type: {rule_type}')

    @staticmethod
    def _count(step_requests):
        counts = {'total': 0, APPROVED: 0, REJECTED: 0, PENDING: 0}
        for req in step_requests:
            counts['total'] += 1
            counts[req['status']] += 1
        return counts

    @staticmethod
    def _unanimous(counts):
        if counts[REJECTED] > 0:
            return REJECTED
        if counts['total'] and counts[APPROVED] == counts['total']:
            return APPROVED
        return PENDING

    @staticmethod
    def _percentage(counts, threshold):
        needed = required_approvals(threshold, counts['total'])
        if counts['total'] == 0:
            return PENDING
        if counts[APPROVED] >= needed:
            return APPROVED
        if counts[APPROVED] + counts[PENDING] < needed:
            return REJECTED
        return PENDING

    @staticmethod
    def _specific_decision(flow, step_requests):
        """Status of the specific approver's request at this step, or None if absent."""
        approver_id = flow.get('specific_approver_id')
        if approver_id is None:
            return None
        for req in step_requests:
            if req['approver_id'] == approver_id:
                return req['status']
        logger.debug(f"Specific approver {approver_id} has no request at this step")
        return None
