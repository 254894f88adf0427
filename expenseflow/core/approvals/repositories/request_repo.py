"""Repository for approval_requests table."""

import logging
from core.base_repository import BaseRepository

logger = logging.getLogger('expenseflow.core.approvals.request_repo')

_QUEUE_SELECT = '''
    SELECT r.*,
           e.amount, e.currency, e.amount_in_company_currency, e.category,
           e.description, e.expense_date, e.status as expense_status,
           e.current_step as expense_current_step,
           u.id as submitted_by_id, u.name as submitted_by_name,
           u.email as submitted_by_email
    FROM approval_requests r
    JOIN expenses e ON e.id = r.expense_id
    JOIN users u ON u.id = e.user_id
'''

# Pending requests the approver can still act on
_ACTIONABLE = '''
    r.status = 'PENDING'
    AND e.status = 'PENDING'
    AND r.step_order = e.current_step
'''


class RequestRepository(BaseRepository):

    def get_by_id(self, request_id):
        return self.query_one(
            'SELECT * FROM approval_requests WHERE id = %s', (request_id,))

    def create(self, expense_id, approver_id, step_order):
        return self.execute('''
            INSERT INTO approval_requests (expense_id, approver_id, step_order)
            VALUES (%s, %s, %s)
            RETURNING *
        ''', (expense_id, approver_id, step_order), returning=True)

    def get_for_expense_step(self, expense_id, step_order):
        return self.query_all('''
            SELECT * FROM approval_requests
            WHERE expense_id = %s AND step_order = %s
            ORDER BY id
        ''', (expense_id, step_order))

    def mark_decided(self, request_id, status, comment, decided_at):
        """Set a PENDING request to a terminal status.

        Returns False when the row was no longer PENDING (decided concurrently).
        """
        return self.execute('''
            UPDATE approval_requests
            SET status = %s, comment = %s, decided_at = %s
            WHERE id = %s AND status = 'PENDING'
        ''', (status, comment, decided_at, request_id)) > 0

    # ── Queues ──

    def get_for_approver(self, approver_id, pending_only=True, limit=10, offset=0):
        """Requests assigned to an approver; pending_only keeps the actionable ones."""
        where = f'r.approver_id = %s AND {_ACTIONABLE}' if pending_only else 'r.approver_id = %s'
        order = 'r.created_at DESC' if pending_only else 'r.decided_at DESC NULLS FIRST, r.created_at DESC'
        return self.query_all(f'''
            {_QUEUE_SELECT}
            WHERE {where}
            ORDER BY {order}, r.id DESC
            LIMIT %s OFFSET %s
        ''', (approver_id, limit, offset))

    def count_for_approver(self, approver_id, pending_only=True):
        where = f'r.approver_id = %s AND {_ACTIONABLE}' if pending_only else 'r.approver_id = %s'
        row = self.query_one(f'''
            SELECT COUNT(*) as total
            FROM approval_requests r
            JOIN expenses e ON e.id = r.expense_id
            WHERE {where}
        ''', (approver_id,))
        return row['total'] if row else 0

    def get_history_for_expense(self, expense_id):
        """All requests of an expense with approver identity, in step order."""
        return self.query_all('''
            SELECT r.*,
                   a.name as approver_name, a.email as approver_email,
                   a.role as approver_role
            FROM approval_requests r
            JOIN users a ON a.id = r.approver_id
            WHERE r.expense_id = %s
            ORDER BY r.step_order, r.decided_at NULLS LAST, r.id
        ''', (expense_id,))

    # ── Company-wide ──

    def list_for_company(self, company_id, status=None, limit=10, offset=0):
        """Requests of a company. status='PENDING' keeps the actionable ones."""
        status_filter, params = _company_filter(company_id, status)
        params.extend([limit, offset])
        return self.query_all(f'''
            SELECT r.*,
                   e.amount, e.currency, e.category, e.status as expense_status,
                   u.id as submitted_by_id, u.name as submitted_by_name,
                   u.email as submitted_by_email,
                   a.name as approver_name, a.email as approver_email,
                   a.role as approver_role
            FROM approval_requests r
            JOIN expenses e ON e.id = r.expense_id
            JOIN users u ON u.id = e.user_id
            JOIN users a ON a.id = r.approver_id
            WHERE e.company_id = %s {status_filter}
            ORDER BY r.created_at DESC, r.id DESC
            LIMIT %s OFFSET %s
        ''', params)

    def count_for_company(self, company_id, status=None):
        status_filter, params = _company_filter(company_id, status)
        row = self.query_one(f'''
            SELECT COUNT(*) as total
            FROM approval_requests r
            JOIN expenses e ON e.id = r.expense_id
            WHERE e.company_id = %s {status_filter}
        ''', params)
        return row['total'] if row else 0

    def get_company_stats(self, company_id):
        """Count requests of a company by outcome.

        'pending' counts actionable requests only. PENDING requests left behind
        on a closed expense or a passed step are counted as 'inactive'.
        """
        return self.query_one(f'''
            SELECT
                COUNT(*) as total,
                COUNT(*) FILTER (WHERE {_ACTIONABLE}) as pending,
                COUNT(*) FILTER (WHERE r.status = 'PENDING' AND NOT ({_ACTIONABLE})) as inactive,
                COUNT(*) FILTER (WHERE r.status = 'APPROVED') as approved,
                COUNT(*) FILTER (WHERE r.status = 'REJECTED') as rejected
            FROM approval_requests r
            JOIN expenses e ON e.id = r.expense_id
            WHERE e.company_id = %s
        ''', (company_id,))


def _company_filter(company_id, status):
    """WHERE fragment and params for the company-wide request queries."""
    params = [company_id]
    if status == 'PENDING':
        return f'AND {_ACTIONABLE}', params
    if status:
        params.append(status)
        return 'AND r.status = %s', params
    return '', params
