"""Expense Service — business logic for expense submission and upkeep.

Routes call this service; the service coordinates the expense repository,
currency conversion and the approval engine. Approval state itself is only
ever changed through ApprovalEngine.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List

import database
from core.approvals.exceptions import (
    NotFoundError, NoApprovalFlowError, ApprovalValidationError,
    InvalidStateError, NotAuthorizedError,
)
from core.approvals.rules import PENDING, APPROVED, REJECTED
from core.organization.repositories import CompanyRepository
from core.utils.pagination import normalize_page, build_pagination
from ..repositories import ExpenseRepository

logger = logging.getLogger('expenseflow.expenses.service')


class ExpenseService:
    """Orchestrates expense operations across repositories and the approval engine."""

    def __init__(self, engine, expense_repo=None, company_repo=None,
                 currency_service=None, transaction=None):
        self.engine = engine
        self.expense_repo = expense_repo or ExpenseRepository()
        self.company_repo = company_repo or CompanyRepository()
        self.currency_service = currency_service
        self._transaction = transaction or database.transaction

    # ============== Public Methods ==============

    def create_expense(self, user, data: Dict[str, Any]) -> Dict[str, Any]:
        """Store a new expense and start its approval.

        The expense and its first approval requests are written in one
        transaction. A company without an approval flow gets the expense
        APPROVED straight away.
        """
        cleaned = validate_expense(data)
        company = self._get_company(user.company_id)
        converted = self._convert(cleaned['amount'], cleaned['currency'], company)

        with self._transaction():
            expense = self.expense_repo.create(
                company_id=user.company_id,
                user_id=user.id,
                amount=cleaned['amount'],
                currency=cleaned['currency'],
                amount_in_company_currency=converted,
                category=cleaned['category'],
                description=cleaned['description'],
                expense_date=cleaned['expense_date'],
                line_items=cleaned['line_items'],
            )
            try:
                self.engine.create_approval_requests(expense['id'], user.company_id)
            except NoApprovalFlowError:
                self.expense_repo.update_status(expense['id'], APPROVED)
                logger.info(f"Expense #{expense['id']} auto-approved: company {user.company_id} has no approval flow")

        logger.info(f"Expense #{expense['id']} submitted by user {user.id}")
        return self.expense_repo.get_by_id(expense['id'])

    def get_expense(self, user, expense_id: int) -> Dict[str, Any]:
        """Expense with its approval history. Owner, managers and admins of the company."""
        expense = self.get_visible_expense(user, expense_id)
        expense['approval_requests'] = self.engine.get_history_for_expense(expense_id)
        return expense

    def get_visible_expense(self, user, expense_id: int) -> Dict[str, Any]:
        expense = self.expense_repo.get_by_id(expense_id)
        if not expense or expense['company_id'] != user.company_id:
            raise NotFoundError(f'Expense {expense_id} not found')
        if expense['user_id'] != user.id and not user.is_manager:
            raise NotAuthorizedError('Access denied')
        return expense

    def list_user_expenses(self, user, status: Optional[str] = None, page=1, limit=10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        expenses = self.expense_repo.list_for_user(user.id, status=status, limit=limit, offset=offset)
        total = self.expense_repo.count_for_user(user.id, status=status)
        return {'expenses': expenses, 'pagination': build_pagination(page, limit, total)}

    def list_company_expenses(self, company_id: int, status: Optional[str] = None,
                              page=1, limit=10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        expenses = self.expense_repo.list_for_company(company_id, status=status, limit=limit, offset=offset)
        total = self.expense_repo.count_for_company(company_id, status=status)
        return {'expenses': expenses, 'pagination': build_pagination(page, limit, total)}

    def update_expense(self, user, expense_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Edit an expense that no approver has acted on yet.

        The editable check and the write run under the expense row lock, so a
        decision recorded in between cannot be overwritten.
        """
        expense = self._get_owned(user, expense_id, 'Cannot update this expense')
        cleaned = validate_expense(data, partial=True)
        if 'amount' in cleaned or 'currency' in cleaned:
            amount = cleaned.get('amount', expense['amount'])
            currency = cleaned.get('currency', expense['currency'])
            company = self._get_company(user.company_id)
            cleaned['amount_in_company_currency'] = self._convert(amount, currency, company)

        with self._transaction():
            expense = self._lock(expense_id)
            requests = self.engine.get_history_for_expense(expense_id)
            editable = (
                (expense['status'] == PENDING and all(r['status'] == PENDING for r in requests))
                or (expense['status'] == APPROVED and not requests)
            )
            if not editable:
                raise InvalidStateError('Expense can no longer be updated')
            if cleaned:
                self.expense_repo.update(expense_id, **cleaned)

        if cleaned:
            logger.info(f'Expense #{expense_id} updated by user {user.id}: {sorted(cleaned)}')
        return self.expense_repo.get_by_id(expense_id)

    def delete_expense(self, user, expense_id: int) -> bool:
        """Delete a PENDING expense; its approval requests cascade."""
        self._get_owned(user, expense_id, 'Cannot delete this expense')
        with self._transaction():
            if self._lock(expense_id)['status'] != PENDING:
                raise InvalidStateError('Only pending expenses can be deleted')
            deleted = self.expense_repo.delete(expense_id)
        logger.info(f'Expense #{expense_id} deleted by user {user.id}')
        return deleted

    def get_statistics(self, company_id: int) -> Dict[str, Any]:
        """Expense counts by status and the approved total in the company currency.

        'this_month' covers expenses created since the first of the current
        month (UTC).
        """
        month_start = datetime.now(timezone.utc).date().replace(day=1)
        overall = self.expense_repo.get_status_summary(company_id)
        monthly = self.expense_repo.get_status_summary(company_id, since=month_start)
        return {
            'total_expenses': sum(row['count'] for row in overall.values()),
            'pending_expenses': overall.get(PENDING, {}).get('count', 0),
            'approved_expenses': overall.get(APPROVED, {}).get('count', 0),
            'rejected_expenses': overall.get(REJECTED, {}).get('count', 0),
            'approved_amount': float(overall.get(APPROVED, {}).get('amount') or 0),
            'this_month': {
                status: {
                    'count': monthly.get(status, {}).get('count', 0),
                    'amount': float(monthly.get(status, {}).get('amount') or 0),
                }
                for status in (PENDING, APPROVED, REJECTED)
            },
        }

    # ============== Private Helpers ==============

    def _get_owned(self, user, expense_id, message):
        expense = self.expense_repo.get_by_id(expense_id)
        if not expense or expense['company_id'] != user.company_id:
            raise NotFoundError(f'Expense {expense_id} not found')
        if expense['user_id'] != user.id:
            raise NotAuthorizedError(message)
        return expense

    def _lock(self, expense_id):
        expense = self.expense_repo.lock_for_update(expense_id)
        if not expense:
            raise NotFoundError(f'Expense {expense_id} not found')
        return expense

    def _get_company(self, company_id):
        company = self.company_repo.get_by_id(company_id)
        if not company:
            raise NotFoundError(f'Company {company_id} not found')
        return company

    def _convert(self, amount, currency, company) -> Optional[Decimal]:
        """Amount in the company currency, or None when no rate is available."""
        if currency == company['currency']:
            return Decimal(str(amount))
        if self.currency_service is None:
            return None
        return self.currency_service.convert(amount, currency, company['currency'])


# ============== Validation ==============

def validate_expense(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate an expense payload; with partial=True only present keys are checked.

    Raises ApprovalValidationError listing every problem found.
    """
    errors: List[str] = []
    cleaned: Dict[str, Any] = {}

    if not partial or 'amount' in data:
        amount = _positive_amount(data.get('amount'))
        if amount is None:
            errors.append('Amount must be a positive number')
        cleaned['amount'] = amount

    if not partial or 'currency' in data:
        currency = str(data.get('currency') or '').strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            errors.append('Currency must be a 3-letter code')
        cleaned['currency'] = currency

    if not partial or 'category' in data:
        category = _text(data.get('category'), 'Category', errors)
        if category == '':
            errors.append('Category is required')
        cleaned['category'] = category

    if not partial or 'description' in data:
        cleaned['description'] = _text(data.get('description'), 'Description', errors) or None

    if not partial or 'expense_date' in data or 'date' in data:
        raw_date = data.get('expense_date') or data.get('date')
        try:
            cleaned['expense_date'] = date.fromisoformat(str(raw_date)[:10]).isoformat()
        except (TypeError, ValueError):
            errors.append('Date must be an ISO date (YYYY-MM-DD)')

    if not partial or 'line_items' in data:
        cleaned['line_items'] = _clean_line_items(data.get('line_items') or [], errors)

    if errors:
        raise ApprovalValidationError('Validation failed', details=errors)
    return cleaned


def _positive_amount(value) -> Optional[Decimal]:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _text(value, label, errors) -> Optional[str]:
    """Stripped string; '' when missing, None (with an error) when not a string."""
    if value is None:
        return ''
    if not isinstance(value, str):
        errors.append(f'{label} must be text')
        return None
    return value.strip()


def _clean_line_items(items, errors) -> List[Dict[str, Any]]:
    if not isinstance(items, list):
        errors.append('Line items must be a list')
        return []
    cleaned = []
    for i, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            errors.append(f'Line item {i} must be an object')
            continue
        amount = _positive_amount(item.get('amount'))
        if amount is None:
            errors.append(f'Line item {i}: amount must be a positive number')
        description = _text(item.get('description'), f'Line item {i}: description', errors)
        if amount is not None and description is not None:
            cleaned.append({'amount': float(amount), 'description': description})
    return cleaned
