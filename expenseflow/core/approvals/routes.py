"""API routes for the approval engine."""

import logging
from flask import jsonify, request
from flask_login import login_required, current_user

from . import approvals_bp
from .rules import PENDING, APPROVED, REJECTED
from core.utils.api_helpers import (
    admin_required, get_json_or_error, get_int_arg,
    handle_api_errors, get_container,
)

logger = logging.getLogger('expenseflow.core.approvals.routes')


def _engine():
    return get_container().approval_engine


# ════════════════════════════════════════════
# Flow definitions (admin)
# ════════════════════════════════════════════

@approvals_bp.route('/api/flows', methods=['POST'])
@login_required
@admin_required
@handle_api_errors
def api_create_flow():
    """Create an approval flow for the admin's company."""
    data, error = get_json_or_error()
    if error:
        return error
    flow = _engine().create_flow(current_user.company_id, data)
    logger.info(f"Approval flow #{flow['id']} created by user {current_user.id}")
    return jsonify({
        'success': True,
        'message': 'Approval flow created successfully',
        'flow': _serialize_flow(flow),
    }), 201


@approvals_bp.route('/api/flows', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_list_flows():
    active_only = request.args.get('active_only', 'false').lower() == 'true'
    flows = _engine().list_flows(current_user.company_id, active_only=active_only)
    return jsonify({'flows': [_serialize_flow(f) for f in flows]})


@approvals_bp.route('/api/flows/<int:flow_id>', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_get_flow(flow_id):
    flow = _engine().get_flow(current_user.company_id, flow_id)
    return jsonify({'flow': _serialize_flow(flow)})


@approvals_bp.route('/api/flows/<int:flow_id>', methods=['PUT'])
@login_required
@admin_required
@handle_api_errors
def api_update_flow(flow_id):
    """Update a flow. A 'steps' list replaces all existing steps."""
    data, error = get_json_or_error()
    if error:
        return error
    flow = _engine().update_flow(current_user.company_id, flow_id, data)
    return jsonify({
        'success': True,
        'message': 'Approval flow updated successfully',
        'flow': _serialize_flow(flow),
    })


@approvals_bp.route('/api/flows/<int:flow_id>', methods=['DELETE'])
@login_required
@admin_required
@handle_api_errors
def api_delete_flow(flow_id):
    """Deactivate a flow. Expenses already in it keep their requests."""
    _engine().delete_flow(current_user.company_id, flow_id)
    logger.info(f'Approval flow #{flow_id} deactivated by user {current_user.id}')
    return jsonify({'success': True, 'message': 'Approval flow deactivated'})


# ════════════════════════════════════════════
# Approver queue & decisions
# ════════════════════════════════════════════

@approvals_bp.route('/api/flows/pending', methods=['GET'])
@login_required
@handle_api_errors
def api_pending_approvals():
    """Requests the current user can act on now (include_all=true for all of theirs)."""
    result = _engine().get_pending_for_user(
        current_user.id,
        page=get_int_arg('page', 1),
        limit=get_int_arg('limit', get_container().config.DEFAULT_PAGE_SIZE),
        include_all=request.args.get('include_all', 'false').lower() == 'true',
    )
    return jsonify({
        'approvals': [_serialize_queue_item(r) for r in result['approvals']],
        'pagination': result['pagination'],
    })


@approvals_bp.route('/api/flows/<int:request_id>/approve', methods=['POST'])
@login_required
@handle_api_errors
def api_approve(request_id):
    return _decide(request_id, APPROVED)


@approvals_bp.route('/api/flows/<int:request_id>/reject', methods=['POST'])
@login_required
@handle_api_errors
def api_reject(request_id):
    return _decide(request_id, REJECTED)


@approvals_bp.route('/api/flows/<int:request_id>/override', methods=['POST'])
@login_required
@admin_required
@handle_api_errors
def api_override(request_id):
    """Force approve/reject an expense through one of its pending requests."""
    data, error = get_json_or_error()
    if error:
        return error
    result = _engine().admin_override(
        request_id, data.get('action'),
        comment=data.get('comment'), company_id=current_user.company_id)
    logger.info(f'Request #{request_id} overridden by admin {current_user.id}')
    return jsonify({'success': True, **result})


def _decide(request_id, action):
    data = request.get_json(silent=True) or {}
    result = _engine().decide(request_id, current_user.id, action, comment=data.get('comment'))
    return jsonify({'success': True, **result})


# ════════════════════════════════════════════
# History & reporting
# ════════════════════════════════════════════

@approvals_bp.route('/api/flows/history/<int:expense_id>', methods=['GET'])
@login_required
@handle_api_errors
def api_expense_history(expense_id):
    """Approval trail of an expense. Owner, managers and admins of the company."""
    get_container().expense_service.get_visible_expense(current_user, expense_id)
    history = _engine().get_history_for_expense(expense_id)
    return jsonify({'approval_history': [_serialize_request(r) for r in history]})


@approvals_bp.route('/api/flows/company', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_company_approvals():
    status = (request.args.get('status') or '').upper() or None
    if status and status not in (PENDING, APPROVED, REJECTED):
        return jsonify({'success': False, 'error': 'Invalid status filter'}), 400
    result = _engine().get_company_approvals(
        current_user.company_id,
        status=status,
        page=get_int_arg('page', 1),
        limit=get_int_arg('limit', get_container().config.DEFAULT_PAGE_SIZE),
    )
    return jsonify({
        'approvals': [_serialize_queue_item(r) for r in result['approvals']],
        'pagination': result['pagination'],
    })


@approvals_bp.route('/api/flows/stats', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_company_stats():
    return jsonify(_engine().get_company_stats(current_user.company_id))


# ════════════════════════════════════════════
# Serializers
# ════════════════════════════════════════════

def _dt(val):
    """Dates come back as ISO strings from repositories; pass datetimes through isoformat."""
    if val is None:
        return None
    return val.isoformat() if hasattr(val, 'isoformat') else str(val)


def _num(val):
    return float(val) if val is not None else None


def _serialize_flow(f):
    return {
        'id': f['id'],
        'company_id': f.get('company_id'),
        'name': f['name'],
        'rule_type': f['rule_type'],
        'percentage_threshold': _num(f.get('percentage_threshold')),
        'specific_approver_id': f.get('specific_approver_id'),
        'is_active': f.get('is_active', True),
        'steps': [_serialize_step(s) for s in f.get('steps') or []],
        'created_at': _dt(f.get('created_at')),
        'updated_at': _dt(f.get('updated_at')),
    }


def _serialize_step(s):
    return {
        'id': s.get('id'),
        'step_order': s['step_order'],
        'role': s.get('role'),
        'specific_user_id': s.get('specific_user_id'),
    }


def _serialize_request(r):
    return {
        'id': r['id'],
        'expense_id': r['expense_id'],
        'approver_id': r['approver_id'],
        'approver_name': r.get('approver_name'),
        'approver_email': r.get('approver_email'),
        'approver_role': r.get('approver_role'),
        'step_order': r['step_order'],
        'status': r['status'],
        'comment': r.get('comment'),
        'decided_at': _dt(r.get('decided_at')),
        'created_at': _dt(r.get('created_at')),
    }


def _serialize_queue_item(r):
    item = _serialize_request(r)
    item['expense'] = {
        'id': r['expense_id'],
        'amount': _num(r.get('amount')),
        'currency': r.get('currency'),
        'amount_in_company_currency': _num(r.get('amount_in_company_currency')),
        'category': r.get('category'),
        'description': r.get('description'),
        'expense_date': _dt(r.get('expense_date')),
        'status': r.get('expense_status'),
        'submitted_by': {
            'id': r.get('submitted_by_id'),
            'name': r.get('submitted_by_name'),
            'email': r.get('submitted_by_email'),
        },
    }
    return item
