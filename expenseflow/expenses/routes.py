"""Expense API routes."""
import logging

from flask import jsonify, request
from flask_login import login_required, current_user

from . import expenses_bp
from core.utils.api_helpers import (
    admin_required, manager_required, get_json_or_error, get_int_arg, handle_api_errors,
    get_container,
)

logger = logging.getLogger('expenseflow.expenses.routes')

_STATUSES = ('PENDING', 'APPROVED', 'REJECTED')


def _service():
    return get_container().expense_service


def _status_filter():
    status = (request.args.get('status') or '').upper() or None
    if status and status not in _STATUSES:
        raise ValueError('Invalid status filter')
    return status


def _page_args():
    return {
        'page': get_int_arg('page', 1),
        'limit': get_int_arg('limit', get_container().config.DEFAULT_PAGE_SIZE),
    }


@expenses_bp.route('', methods=['POST'])
@login_required
@handle_api_errors
def api_create_expense():
    """Submit an expense; approval requests are created immediately."""
    data, error = get_json_or_error()
    if error:
        return error
    expense = _service().create_expense(current_user, data)
    return jsonify({
        'success': True,
        'message': 'Expense submitted successfully',
        'expense': _serialize_expense(expense),
    }), 201


@expenses_bp.route('', methods=['GET'])
@login_required
@handle_api_errors
def api_list_my_expenses():
    result = _service().list_user_expenses(current_user, status=_status_filter(), **_page_args())
    return jsonify({
        'expenses': [_serialize_expense(e) for e in result['expenses']],
        'pagination': result['pagination'],
    })


@expenses_bp.route('/company', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_list_company_expenses():
    result = _service().list_company_expenses(
        current_user.company_id, status=_status_filter(), **_page_args())
    return jsonify({
        'expenses': [_serialize_expense(e) for e in result['expenses']],
        'pagination': result['pagination'],
    })


@expenses_bp.route('/company/statistics', methods=['GET'])
@login_required
@manager_required
@handle_api_errors
def api_company_expense_statistics():
    """Company expense counts and approved totals (managers and admins)."""
    return jsonify(_service().get_statistics(current_user.company_id))


@expenses_bp.route('/<int:expense_id>', methods=['GET'])
@login_required
@handle_api_errors
def api_get_expense(expense_id):
    expense = _service().get_expense(current_user, expense_id)
    return jsonify({'expense': _serialize_expense(expense)})


@expenses_bp.route('/<int:expense_id>', methods=['PUT'])
@login_required
@handle_api_errors
def api_update_expense(expense_id):
    data, error = get_json_or_error()
    if error:
        return error
    expense = _service().update_expense(current_user, expense_id, data)
    return jsonify({
        'success': True,
        'message': 'Expense updated successfully',
        'expense': _serialize_expense(expense),
    })


@expenses_bp.route('/<int:expense_id>', methods=['DELETE'])
@login_required
@handle_api_errors
def api_delete_expense(expense_id):
    _service().delete_expense(current_user, expense_id)
    return jsonify({'success': True, 'message': 'Expense deleted successfully'})


def _serialize_expense(e):
    result = {
        'id': e['id'],
        'company_id': e['company_id'],
        'user_id': e['user_id'],
        'amount': _num(e.get('amount')),
        'currency': e['currency'],
        'amount_in_company_currency': _num(e.get('amount_in_company_currency')),
        'category': e['category'],
        'description': e.get('description'),
        'expense_date': _dt(e.get('expense_date')),
        'line_items': e.get('line_items') or [],
        'status': e['status'],
        'flow_id': e.get('flow_id'),
        'current_step': e.get('current_step'),
        'created_at': _dt(e.get('created_at')),
        'updated_at': _dt(e.get('updated_at')),
    }
    if e.get('submitted_by_name') is not None:
        result['submitted_by'] = {
            'id': e['user_id'],
            'name': e.get('submitted_by_name'),
            'email': e.get('submitted_by_email'),
        }
    if 'approval_requests' in e:
        result['approval_requests'] = [
            {
                'id': r['id'],
                'approver_id': r['approver_id'],
                'approver_name': r.get('approver_name'),
                'step_order': r['step_order'],
                'status': r['status'],
                'comment': r.get('comment'),
                'decided_at': _dt(r.get('decided_at')),
            }
            for r in e['approval_requests']
        ]
    return result


def _dt(val):
    if val is None:
        return None
    return val.isoformat() if hasattr(val, 'isoformat') else str(val)


def _num(val):
    return float(val) if val is not None else None
