"""Shared API utilities — role decorators, JSON body parsing, error translation, rate limiting."""
import time
import logging
from collections import defaultdict
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user

logger = logging.getLogger('expenseflow.api')

CONTAINER_KEY = 'expenseflow'


def get_container():
    """Service container of the running app (see core.container)."""
    return current_app.extensions[CONTAINER_KEY]


# ============== Decorators ==============

def _role_required(check, message):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Authentication required'}), 401
            if not check(current_user):
                return jsonify({'success': False, 'error': message}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


admin_required = _role_required(lambda u: u.is_admin, 'Admin access required')
admin_required.__doc__ = 'Require an authenticated ADMIN.'

manager_required = _role_required(lambda u: u.is_manager, 'Manager access required')
manager_required.__doc__ = 'Require an authenticated MANAGER or ADMIN.'


def handle_api_errors(f):
    """Translate engine/service errors into {'success': False, 'error': ...} responses."""
    from core.approvals.exceptions import ApprovalError

    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ApprovalError as e:
            return error_response(e)
        except Exception as e:
            return safe_error_response(e)
    return decorated


# ============== Request Validation ==============

def get_json_or_error():
    """Get JSON from request body with null check.

    Returns (data, error_response) tuple. Caller pattern:
        data, error = get_json_or_error()
        if error:
            return error
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({
            'success': False,
            'error': 'Invalid or missing JSON body',
        }), 400)
    return data, None


def get_int_arg(name, default=None):
    """Query-string integer, or default when absent or malformed."""
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


# ============== Error Handling ==============

def error_response(e):
    """JSON error for an ApprovalError, using its status_code."""
    from core.approvals.exceptions import ApprovalValidationError

    body = {'success': False, 'error': str(e)}
    if isinstance(e, ApprovalValidationError) and e.details:
        body['details'] = e.details
    if e.status_code >= 500:
        logger.exception('Approval error in API route')
    return jsonify(body), e.status_code


def safe_error_response(e, status_code=500):
    """Return error response without leaking DB internals.

    - ValueError/KeyError: returns str(e) as 400 (business validation, safe to expose)
    - Everything else: logs full exception, returns generic message
    """
    if isinstance(e, (ValueError, KeyError)):
        return jsonify({'success': False, 'error': str(e)}), 400

    logger.exception('Unhandled error in API route')
    return jsonify({'success': False, 'error': 'An internal error occurred'}), status_code


# ============== Rate Limiter ==============

class RateLimiter:
    """In-memory sliding-window limiter, per worker process."""

    def __init__(self):
        self._hits = defaultdict(list)

    def is_allowed(self, key, max_requests=10, window_seconds=60):
        """Record a hit for key. Returns (allowed, retry_after_seconds)."""
        now = time.time()
        hits = [ts for ts in self._hits[key] if ts > now - window_seconds]
        self._hits[key] = hits

        if len(hits) >= max_requests:
            return False, max(1, int(hits[0] + window_seconds - now) + 1)

        hits.append(now)
        return True, 0
