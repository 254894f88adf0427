"""Expense Repository - Data access layer for expense operations."""
import json
from typing import Optional, Dict, Any, List

from core.base_repository import BaseRepository

_UPDATABLE = (
    'amount', 'currency', 'amount_in_company_currency', 'category',
    'description', 'expense_date', 'line_items',
)


class ExpenseRepository(BaseRepository):
    """Repository for the expenses table."""

    def get_by_id(self, expense_id: int) -> Optional[Dict[str, Any]]:
        """Get an expense with its submitter."""
        return self.query_one('''
            SELECT e.*, u.name as submitted_by_name, u.email as submitted_by_email
            FROM expenses e
            JOIN users u ON u.id = e.user_id
            WHERE e.id = %s
        ''', (expense_id,))

    def lock_for_update(self, expense_id: int) -> Optional[Dict[str, Any]]:
        """Select the expense row FOR UPDATE. Only meaningful inside transaction()."""
        return self.query_one(
            'SELECT * FROM expenses WHERE id = %s FOR UPDATE', (expense_id,))

    def create(self, company_id: int, user_id: int, amount, currency: str,
               amount_in_company_currency, category: str, description: Optional[str],
               expense_date: str, line_items: Optional[list] = None,
               status: str = 'PENDING') -> Dict[str, Any]:
        return self.execute('''
            INSERT INTO expenses
                (company_id, user_id, amount, currency, amount_in_company_currency,
                 category, description, expense_date, line_items, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s)
            RETURNING *
        ''', (
            company_id, user_id, amount, currency, amount_in_company_currency,
            category, description, expense_date, json.dumps(line_items or []), status,
        ), returning=True)

    def update(self, expense_id: int, **kwargs) -> bool:
        """Update editable expense fields. Unknown keys are ignored."""
        updates = []
        params = []
        for key, val in kwargs.items():
            if key not in _UPDATABLE:
                continue
            if key == 'line_items':
                updates.append(f'{key} = %s::jsonb')
                params.append(json.dumps(val or []))
            else:
                updates.append(f'{key} = %s')
                params.append(val)
        if not updates:
            return False
        updates.append('updated_at = NOW()')
        params.append(expense_id)
        return self.execute(
            f'UPDATE expenses SET {", ".join(updates)} WHERE id = %s', params
        ) > 0

    def update_status(self, expense_id: int, status: str) -> bool:
        return self.execute('''
            UPDATE expenses SET status = %s, updated_at = NOW()
            WHERE id = %s
        ''', (status, expense_id)) > 0

    def assign_flow(self, expense_id: int, flow_id: int, current_step: int) -> bool:
        """Record the flow an expense runs through and its active step."""
        return self.execute('''
            UPDATE expenses SET flow_id = %s, current_step = %s, updated_at = NOW()
            WHERE id = %s
        ''', (flow_id, current_step, expense_id)) > 0

    def delete(self, expense_id: int) -> bool:
        return self.execute('DELETE FROM expenses WHERE id = %s', (expense_id,)) > 0

    # --- Listings ---

    def list_for_user(self, user_id: int, status: Optional[str] = None,
                      limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        params = [user_id]
        status_filter = ''
        if status:
            status_filter = 'AND e.status = %s'
            params.append(status)
        params.extend([limit, offset])
        return self.query_all(f'''
            SELECT e.* FROM expenses e
            WHERE e.user_id = %s {status_filter}
            ORDER BY e.created_at DESC, e.id DESC
            LIMIT %s OFFSET %s
        ''', params)

    def count_for_user(self, user_id: int, status: Optional[str] = None) -> int:
        params = [user_id]
        status_filter = ''
        if status:
            status_filter = 'AND status = %s'
            params.append(status)
        row = self.query_one(
            f'SELECT COUNT(*) as total FROM expenses WHERE user_id = %s {status_filter}', params)
        return row['total'] if row else 0

    def list_for_company(self, company_id: int, status: Optional[str] = None,
                         limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        params = [company_id]
        status_filter = ''
        if status:
            status_filter = 'AND e.status = %s'
            params.append(status)
        params.extend([limit, offset])
        return self.query_all(f'''
            SELECT e.*, u.name as submitted_by_name, u.email as submitted_by_email
            FROM expenses e
            JOIN users u ON u.id = e.user_id
            WHERE e.company_id = %s {status_filter}
            ORDER BY e.created_at DESC, e.id DESC
            LIMIT %s OFFSET %s
        ''', params)

    def count_for_company(self, company_id: int, status: Optional[str] = None) -> int:
        params = [company_id]
        status_filter = ''
        if status:
            status_filter = 'AND status = %s'
            params.append(status)
        row = self.query_one(
            f'SELECT COUNT(*) as total FROM expenses WHERE company_id = %s {status_filter}', params)
        return row['total'] if row else 0

    def get_status_summary(self, company_id: int, since=None) -> Dict[str, Dict[str, Any]]:
        """Count and company-currency sum per status, optionally from a date on.

        Returns {'APPROVED': {'count': 3, 'amount': Decimal('120.00')}, ...};
        statuses without expenses are absent.
        """
        params = [company_id]
        since_filter = ''
        if since is not None:
            since_filter = 'AND created_at >= %s'
            params.append(since)
        rows = self.query_all(f'''
            SELECT status, COUNT(*) as count,
                   COALESCE(SUM(amount_in_company_currency), 0) as amount
            FROM expenses
            WHERE company_id = %s {since_filter}
            GROUP BY status
        ''', params)
        return {row['status']: {'count': row['count'], 'amount': row['amount']} for row in rows}
