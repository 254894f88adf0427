"""User management routes (/api/users)."""
import logging

from flask import jsonify
from flask_login import login_required, current_user

from . import users_bp
from core.utils.api_helpers import (
    admin_required, manager_required, get_json_or_error, handle_api_errors, get_container,
)

logger = logging.getLogger('expenseflow.core.auth.user_routes')


def _service():
    return get_container().user_service


@users_bp.route('', methods=['POST'])
@login_required
@admin_required
@handle_api_errors
def api_create_user():
    """Create a user in the admin's company."""
    data, error = get_json_or_error()
    if error:
        return error
    user = _service().create_user(current_user, data)
    return jsonify({
        'success': True,
        'message': 'User created successfully',
        'user': _serialize_user(user),
    }), 201


@users_bp.route('', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_list_users():
    users = _service().list_users(current_user.company_id)
    return jsonify({'users': [_serialize_user(u) for u in users]})


@users_bp.route('/team/members', methods=['GET'])
@login_required
@manager_required
@handle_api_errors
def api_team_members():
    """Users reporting to the current manager."""
    members = _service().get_team_members(current_user)
    return jsonify({'team_members': [_serialize_user(u) for u in members]})


@users_bp.route('/<int:user_id>', methods=['GET'])
@login_required
@admin_required
@handle_api_errors
def api_get_user(user_id):
    user = _service().get_user(current_user.company_id, user_id)
    return jsonify({'user': _serialize_user(user)})


@users_bp.route('/<int:user_id>/role', methods=['PUT'])
@login_required
@admin_required
@handle_api_errors
def api_change_role(user_id):
    data, error = get_json_or_error()
    if error:
        return error
    user = _service().change_role(current_user, user_id, data.get('role'))
    return jsonify({
        'success': True,
        'message': 'User role updated successfully',
        'user': _serialize_user(user),
    })


@users_bp.route('/<int:user_id>/manager', methods=['POST'])
@login_required
@admin_required
@handle_api_errors
def api_assign_manager(user_id):
    """Assign a manager; {"manager_id": null} clears it."""
    data, error = get_json_or_error()
    if error:
        return error
    if 'manager_id' not in data:
        return jsonify({'success': False, 'error': 'manager_id is required'}), 400
    user = _service().assign_manager(current_user, user_id, data['manager_id'])
    return jsonify({
        'success': True,
        'message': 'Manager assigned successfully',
        'user': _serialize_user(user),
    })


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@login_required
@admin_required
@handle_api_errors
def api_delete_user(user_id):
    _service().delete_user(current_user, user_id)
    return jsonify({'success': True, 'message': 'User deleted successfully'})


def _serialize_user(u):
    """Public user fields (no password hash)."""
    created_at = u.get('created_at')
    return {
        'id': u['id'],
        'company_id': u['company_id'],
        'email': u['email'],
        'name': u['name'],
        'role': u['role'],
        'manager_id': u.get('manager_id'),
        'manager_name': u.get('manager_name'),
        'created_at': created_at.isoformat() if hasattr(created_at, 'isoformat') else created_at,
    }
