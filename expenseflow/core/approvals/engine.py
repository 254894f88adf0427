"""ApprovalEngine — core orchestrator for the expense approval workflow.

All approval logic flows through this class. Routes and the expense service
NEVER manipulate approval tables directly.

Repositories are injected; by default the PostgreSQL ones are used and
decisions run inside database.transaction() with the expense row locked.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

import database
from core.auth.repositories import UserRepository
from expenses.repositories import ExpenseRepository
from core.utils.pagination import normalize_page, build_pagination
from . import hooks
from .approvers import rule_for_step, resolve_approvers, describe
from .exceptions import (
    ApprovalError, NotFoundError, NoApprovalFlowError, ApprovalValidationError,
    InvalidStateError, NotAuthorizedError, ConflictError,
)
from .repositories import FlowRepository, RequestRepository
from .rules import RuleEvaluator, PENDING, APPROVED, REJECTED
from .validation import normalize_flow_definition, check_rule_settings

logger = logging.getLogger('expenseflow.core.approvals.engine')

__all__ = [
    'ApprovalEngine', 'ApprovalError', 'NotFoundError', 'NoApprovalFlowError',
    'ApprovalValidationError', 'InvalidStateError', 'NotAuthorizedError',
    'ConflictError',
]

_ACTION_ALIASES = {
    'approve': APPROVED, 'approved': APPROVED,
    'reject': REJECTED, 'rejected': REJECTED,
}


def normalize_action(action):
    """Map approve/reject (any case) to APPROVED/REJECTED."""
    normalized = _ACTION_ALIASES.get(str(action or '').strip().lower())
    if normalized is None:
        raise ApprovalValidationError('Action must be approve or reject')
    return normalized


class ApprovalEngine:

    def __init__(self, flow_repo=None, request_repo=None, expense_repo=None,
                 user_repo=None, transaction=None):
        self._flow_repo = flow_repo or FlowRepository()
        self._request_repo = request_repo or RequestRepository()
        self._expense_repo = expense_repo or ExpenseRepository()
        self._user_repo = user_repo or UserRepository()
        self._transaction = transaction or database.transaction

    # ════════════════════════════════════════════
    # Request generation
    # ════════════════════════════════════════════

    def create_approval_requests(self, expense_id, company_id):
        """Create PENDING requests for the first step of the company's active flow.

        Raises NoApprovalFlowError when the company has no usable flow; the
        caller decides what an unflowed expense means.
        """
        flow = self._flow_repo.get_active_flow_for_company(company_id)
        if not flow or not flow.get('steps'):
            raise NoApprovalFlowError(company_id)

        with self._atomic():
            expense = self._expense_repo.lock_for_update(expense_id)
            if not expense:
                raise NotFoundError(f'Expense {expense_id} not found')
            created = self._generate_step_requests(expense_id, company_id, flow, flow['steps'][0])

        hooks.fire('approval.requested', {
            'expense_id': expense_id, 'flow_id': flow['id'],
            'step_order': flow['steps'][0]['step_order'],
            'approver_ids': [r['approver_id'] for r in created],
        })
        return created

    # ════════════════════════════════════════════
    # Decisions
    # ════════════════════════════════════════════

    def process_approval_decision(self, request_id, action, comment=None):
        """Record one approver's decision and recompute the expense status.

        Returns {'expense_status', 'message'}.
        """
        action = normalize_action(action)
        events = []

        with self._atomic():
            req = self._request_repo.get_by_id(request_id)
            if not req:
                raise NotFoundError(f'Approval request {request_id} not found')

            expense = self._expense_repo.lock_for_update(req['expense_id'])
            if not expense:
                raise NotFoundError(f"Expense {req['expense_id']} not found")

            # Re-read under the expense lock
            req = self._request_repo.get_by_id(request_id)
            self._check_decidable(req, expense)

            if not self._request_repo.mark_decided(
                    request_id, action, comment, datetime.now(timezone.utc)):
                raise ConflictError(f'Approval request {request_id} was decided concurrently')

            flow = self._flow_repo.get_flow_with_steps(expense['flow_id']) if expense.get('flow_id') else None
            if not flow:
                raise NotFoundError(f"Approval flow of expense {expense['id']} not found")

            step_order = req['step_order']
            step_requests = self._request_repo.get_for_expense_step(expense['id'], step_order)
            outcome = RuleEvaluator.evaluate(flow, step_requests)

            events.append(('approval.decided', {
                'request_id': request_id, 'expense_id': expense['id'],
                'approver_id': req['approver_id'], 'decision': action,
                'step_order': step_order,
            }))
            result = self._apply_outcome(expense, flow, step_order, outcome, action, events)

        logger.info(
            f"Request #{request_id} {action.lower()}: expense #{req['expense_id']} "
            f"is {result['expense_status']}")
        for event_type, payload in events:
            hooks.fire(event_type, payload)
        return result

    def can_user_approve(self, user_id, request_id):
        """True if the user is the assigned approver of an actionable request."""
        req = self._request_repo.get_by_id(request_id)
        if not req or req['approver_id'] != user_id or req['status'] != PENDING:
            return False
        expense = self._expense_repo.get_by_id(req['expense_id'])
        if not expense or expense['status'] != PENDING:
            return False
        return req['step_order'] == expense.get('current_step')

    def decide(self, request_id, user_id, action, comment=None):
        """Decision made by an approver through the API.

        Only the assigned approver may decide (403). A request that is no
        longer actionable fails with InvalidStateError in
        process_approval_decision().
        """
        req = self._request_repo.get_by_id(request_id)
        if not req:
            raise NotFoundError(f'Approval request {request_id} not found')
        if req['approver_id'] != user_id:
            raise NotAuthorizedError(f'Not authorized to decide approval request {request_id}')
        return self.process_approval_decision(request_id, action, comment=comment)

    def admin_override(self, request_id, action, comment=None, company_id=None):
        """Force the request and its expense to a terminal status.

        Only a PENDING expense can be overridden. Other pending requests of
        the expense are left untouched; they stop being actionable because the
        expense is no longer PENDING. With company_id, requests of other
        companies are reported as not found.
        """
        action = normalize_action(action)

        with self._atomic():
            req = self._request_repo.get_by_id(request_id)
            if not req:
                raise NotFoundError(f'Approval request {request_id} not found')

            expense = self._expense_repo.lock_for_update(req['expense_id'])
            if not expense or (company_id is not None and expense['company_id'] != company_id):
                raise NotFoundError(f"Expense {req['expense_id']} not found")

            req = self._request_repo.get_by_id(request_id)
            if req['status'] != PENDING:
                raise InvalidStateError(f"Approval request {request_id} is already {req['status']}")
            if expense['status'] != PENDING:
                raise InvalidStateError(f"Expense {expense['id']} is already {expense['status']}")

            comment = comment or f'Admin override: {action.lower()}'
            if not self._request_repo.mark_decided(
                    request_id, action, comment, datetime.now(timezone.utc)):
                raise ConflictError(f'Approval request {request_id} was decided concurrently')
            self._set_expense_status(expense, action)

        logger.info(f"Admin override on request #{request_id}: expense #{expense['id']} {action}")
        hooks.fire('approval.overridden', {
            'request_id': request_id, 'expense_id': expense['id'], 'decision': action,
        })
        hooks.fire(f'expense.{action.lower()}', {
            'expense_id': expense['id'], 'request_id': request_id, 'override': True,
        })
        return {
            'message': f'Expense {action.lower()} by admin override',
            'expense_status': action,
        }

    # ════════════════════════════════════════════
    # Queries
    # ════════════════════════════════════════════

    def get_pending_for_user(self, user_id, page=1, limit=10, include_all=False):
        """Requests assigned to the user. Only actionable ones unless include_all."""
        page, limit, offset = normalize_page(page, limit)
        pending_only = not include_all
        approvals = self._request_repo.get_for_approver(
            user_id, pending_only=pending_only, limit=limit, offset=offset)
        total = self._request_repo.count_for_approver(user_id, pending_only=pending_only)
        return {'approvals': approvals, 'pagination': build_pagination(page, limit, total)}

    def get_history_for_expense(self, expense_id):
        return self._request_repo.get_history_for_expense(expense_id)

    def get_company_approvals(self, company_id, status=None, page=1, limit=10):
        page, limit, offset = normalize_page(page, limit)
        approvals = self._request_repo.list_for_company(
            company_id, status=status, limit=limit, offset=offset)
        total = self._request_repo.count_for_company(company_id, status=status)
        return {'approvals': approvals, 'pagination': build_pagination(page, limit, total)}

    def get_company_stats(self, company_id):
        stats = self._request_repo.get_company_stats(company_id) or {}
        return {
            'total_approvals': stats.get('total', 0),
            'pending_approvals': stats.get('pending', 0),
            'inactive_approvals': stats.get('inactive', 0),
            'approved_approvals': stats.get('approved', 0),
            'rejected_approvals': stats.get('rejected', 0),
        }

    # ════════════════════════════════════════════
    # Flow definitions
    # ════════════════════════════════════════════

    def create_flow(self, company_id, data):
        cleaned = normalize_flow_definition(data)
        check_rule_settings(
            cleaned['rule_type'], cleaned['percentage_threshold'], cleaned['specific_approver_id'])
        self._check_flow_users(company_id, cleaned['specific_approver_id'], cleaned['steps'])
        return self._flow_repo.create_flow(
            company_id, cleaned['name'], cleaned['rule_type'], cleaned['steps'],
            percentage_threshold=cleaned['percentage_threshold'],
            specific_approver_id=cleaned['specific_approver_id'],
        )

    def list_flows(self, company_id, active_only=False):
        return self._flow_repo.list_flows_for_company(company_id, active_only=active_only)

    def get_flow(self, company_id, flow_id):
        flow = self._flow_repo.get_flow_for_company(company_id, flow_id)
        if not flow:
            raise NotFoundError(f'Approval flow {flow_id} not found')
        return flow

    def update_flow(self, company_id, flow_id, data):
        """Partial update; a 'steps' list replaces all steps."""
        existing = self.get_flow(company_id, flow_id)
        cleaned = normalize_flow_definition(data, partial=True)

        merged = {**existing, **{k: v for k, v in cleaned.items() if k != 'steps'}}
        check_rule_settings(
            merged['rule_type'], merged.get('percentage_threshold'), merged.get('specific_approver_id'))
        self._check_flow_users(
            company_id, cleaned.get('specific_approver_id'), cleaned.get('steps') or [])

        steps = cleaned.pop('steps', None)
        self._flow_repo.update_flow(flow_id, steps=steps, **cleaned)
        logger.info(f'Approval flow #{flow_id} updated (fields: {sorted(cleaned)}, steps replaced: {steps is not None})')
        return self.get_flow(company_id, flow_id)

    def delete_flow(self, company_id, flow_id):
        """Deactivate a flow. Expenses already running through it keep using it."""
        self.get_flow(company_id, flow_id)
        return self._flow_repo.deactivate_flow(flow_id)

    # ════════════════════════════════════════════
    # Internal
    # ════════════════════════════════════════════

    @contextmanager
    def _atomic(self):
        try:
            with self._transaction():
                yield
        except database.TransactionConflict as e:
            raise ConflictError('A concurrent decision on this expense was recorded, please retry') from e

    def _generate_step_requests(self, expense_id, company_id, flow, step):
        rule = rule_for_step(step)
        approvers = resolve_approvers(rule, company_id, self._user_repo)
        if not approvers:
            raise ApprovalValidationError(
                f"No eligible approvers for step {step['step_order']} ({describe(rule)})")

        created = [
            self._request_repo.create(expense_id, approver['id'], step['step_order'])
            for approver in approvers
        ]
        self._expense_repo.assign_flow(expense_id, flow['id'], step['step_order'])
        logger.info(
            f"Expense #{expense_id}: {len(created)} approval request(s) created "
            f"for step {step['step_order']} of flow #{flow['id']}")
        return created

    def _check_decidable(self, req, expense):
        if req['status'] != PENDING:
            raise InvalidStateError(f"Approval request {req['id']} already processed ({req['status']})")
        if expense['status'] != PENDING:
            raise InvalidStateError(f"Expense {expense['id']} is already {expense['status']}")
        if req['step_order'] != expense.get('current_step'):
            raise InvalidStateError(
                f"Approval request {req['id']} belongs to step {req['step_order']}, "
                f"expense is at step {expense.get('current_step')}")

    def _apply_outcome(self, expense, flow, step_order, outcome, action, events):
        expense_id = expense['id']

        if outcome == REJECTED:
            self._set_expense_status(expense, REJECTED)
            events.append(('expense.rejected', {'expense_id': expense_id, 'step_order': step_order}))
            return {'expense_status': REJECTED, 'message': 'Expense rejected'}

        if outcome == APPROVED:
            next_step = _next_step(flow['steps'], step_order)
            if next_step is not None:
                created = self._generate_step_requests(
                    expense_id, expense['company_id'], flow, next_step)
                events.append(('approval.step_advanced', {
                    'expense_id': expense_id, 'from_step': step_order,
                    'to_step': next_step['step_order'],
                    'approver_ids': [r['approver_id'] for r in created],
                }))
                return {
                    'expense_status': PENDING,
                    'message': f"Step {step_order} approved, advanced to step {next_step['step_order']}",
                }
            self._set_expense_status(expense, APPROVED)
            events.append(('expense.approved', {'expense_id': expense_id, 'step_order': step_order}))
            return {'expense_status': APPROVED, 'message': 'Expense approved - all approvals received'}

        recorded = 'Approval' if action == APPROVED else 'Rejection'
        return {
            'expense_status': PENDING,
            'message': f'{recorded} recorded, waiting for remaining approvals',
        }

    def _set_expense_status(self, expense, status):
        if expense['status'] != status:
            self._expense_repo.update_status(expense['id'], status)

    def _check_flow_users(self, company_id, specific_approver_id, steps):
        """Referenced users must be active members of the company."""
        user_ids = [s['specific_user_id'] for s in steps if s.get('specific_user_id') is not None]
        if specific_approver_id is not None:
            user_ids.append(specific_approver_id)
        missing = sorted({uid for uid in user_ids
                          if not self._user_repo.get_company_user(company_id, uid)})
        if missing:
            raise ApprovalValidationError(
                'Validation failed',
                details=[f'User {uid} is not an active member of this company' for uid in missing])


def _next_step(steps, after_order):
    for step in steps:
        if step['step_order'] > after_order:
            return step
    return None
