"""Company settings routes."""
import logging

from flask import jsonify
from flask_login import login_required, current_user

from . import org_bp
from core.utils.api_helpers import admin_required, get_json_or_error, handle_api_errors, get_container

logger = logging.getLogger('expenseflow.core.organization.routes')


def _service():
    return get_container().company_service


@org_bp.route('/api/company/settings', methods=['GET'])
@login_required
@handle_api_errors
def api_get_company_settings():
    company = _service().get_settings(current_user.company_id)
    return jsonify({'company': _serialize_company(company)})


@org_bp.route('/api/company/settings', methods=['PUT'])
@login_required
@admin_required
@handle_api_errors
def api_update_company_settings():
    """Update name, country and/or currency of the admin's company."""
    data, error = get_json_or_error()
    if error:
        return error
    company = _service().update_settings(current_user.company_id, data)
    logger.info(f'Company #{company["id"]} settings updated by admin {current_user.id}')
    return jsonify({
        'success': True,
        'message': 'Company settings updated successfully',
        'company': _serialize_company(company),
    })


def _serialize_company(c):
    updated_at = c.get('updated_at')
    return {
        'id': c['id'],
        'name': c['name'],
        'country': c.get('country'),
        'currency': c['currency'],
        'updated_at': updated_at.isoformat() if hasattr(updated_at, 'isoformat') else updated_at,
    }
