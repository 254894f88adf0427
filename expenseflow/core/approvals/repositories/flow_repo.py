"""Repository for approval_flows and approval_flow_steps tables."""

import logging
from core.base_repository import BaseRepository
from database import dict_from_row

logger = logging.getLogger('expenseflow.core.approvals.flow_repo')

_UPDATABLE = ('name', 'rule_type', 'percentage_threshold', 'specific_approver_id', 'is_active')


class FlowRepository(BaseRepository):

    # ── Flows ──

    def get_flow_with_steps(self, flow_id):
        flow = self.query_one('SELECT * FROM approval_flows WHERE id = %s', (flow_id,))
        if flow:
            flow['steps'] = self.get_steps_for_flow(flow_id)
        return flow

    def get_flow_for_company(self, company_id, flow_id):
        """Flow with steps, only if it belongs to the company."""
        flow = self.query_one('''
            SELECT * FROM approval_flows
            WHERE id = %s AND company_id = %s
        ''', (flow_id, company_id))
        if flow:
            flow['steps'] = self.get_steps_for_flow(flow_id)
        return flow

    def get_active_flow_for_company(self, company_id):
        """Newest active flow of the company, with steps."""
        flow = self.query_one('''
            SELECT * FROM approval_flows
            WHERE company_id = %s AND is_active = TRUE
            ORDER BY created_at DESC, id DESC
            LIMIT 1
        ''', (company_id,))
        if flow:
            flow['steps'] = self.get_steps_for_flow(flow['id'])
        return flow

    def list_flows_for_company(self, company_id, active_only=False):
        active_filter = 'AND is_active = TRUE' if active_only else ''
        flows = self.query_all(f'''
            SELECT * FROM approval_flows
            WHERE company_id = %s {active_filter}
            ORDER BY created_at DESC, id DESC
        ''', (company_id,))
        for flow in flows:
            flow['steps'] = self.get_steps_for_flow(flow['id'])
        return flows

    def create_flow(self, company_id, name, rule_type, steps,
                    percentage_threshold=None, specific_approver_id=None):
        """Insert a flow and its steps in one transaction. Returns the flow with steps."""
        def _work(cursor):
            cursor.execute('''
                INSERT INTO approval_flows
                    (company_id, name, rule_type, percentage_threshold, specific_approver_id)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING *
            ''', (company_id, name, rule_type, percentage_threshold, specific_approver_id))
            flow = dict_from_row(cursor.fetchone())
            flow['steps'] = _insert_steps(cursor, flow['id'], steps)
            return flow

        flow = self.execute_many(_work)
        logger.info(f"Approval flow #{flow['id']} created for company {company_id}")
        return flow

    def update_flow(self, flow_id, steps=None, **kwargs):
        """Update flow columns; steps, when given, replace the existing ones."""
        updates = []
        params = []
        for key, val in kwargs.items():
            if key in _UPDATABLE:
                updates.append(f'{key} = %s')
                params.append(val)

        def _work(cursor):
            if updates:
                cursor.execute(
                    f'UPDATE approval_flows SET {", ".join(updates)}, updated_at = NOW() WHERE id = %s',
                    params + [flow_id]
                )
                if cursor.rowcount == 0:
                    return False
            if steps is not None:
                cursor.execute('DELETE FROM approval_flow_steps WHERE flow_id = %s', (flow_id,))
                _insert_steps(cursor, flow_id, steps)
            return True

        return self.execute_many(_work)

    def deactivate_flow(self, flow_id):
        return self.execute('''
            UPDATE approval_flows SET is_active = FALSE, updated_at = NOW()
            WHERE id = %s
        ''', (flow_id,)) > 0

    # ── Steps ──

    def get_steps_for_flow(self, flow_id):
        return self.query_all('''
            SELECT * FROM approval_flow_steps
            WHERE flow_id = %s
            ORDER BY step_order
        ''', (flow_id,))


def _insert_steps(cursor, flow_id, steps):
    created = []
    for step in steps:
        cursor.execute('''
            INSERT INTO approval_flow_steps (flow_id, step_order, role, specific_user_id)
            VALUES (%s, %s, %s, %s)
            RETURNING *
        ''', (flow_id, step['step_order'], step.get('role'), step.get('specific_user_id')))
        created.append(dict_from_row(cursor.fetchone()))
    return created
