"""Auth module routes: session login, signup, logout and the current user."""
import logging

from flask import jsonify, request
from flask_login import login_required, login_user, logout_user, current_user

from . import auth_bp
from .models import User
from core.utils.api_helpers import RateLimiter, get_json_or_error, handle_api_errors, get_container

logger = logging.getLogger('expenseflow.core.auth.routes')

_auth_limiter = RateLimiter()


@auth_bp.route('/login', methods=['POST'])
def api_login():
    """Log in with email/password (JSON or form body)."""
    allowed, retry_after = _auth_limiter.is_allowed(
        f'login:{request.remote_addr}', max_requests=10, window_seconds=300)
    if not allowed:
        return jsonify({
            'success': False,
            'error': f'Too many login attempts. Try again in {retry_after} seconds.',
        }), 429

    data = request.get_json(silent=True) or request.form
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'success': False, 'error': 'Email and password are required'}), 400

    user_repo = get_container().user_repo
    user_data = user_repo.authenticate(email, password)
    if not user_data:
        logger.warning(f'Failed login attempt for {email}')
        return jsonify({'success': False, 'error': 'Invalid email or password'}), 401

    user = User(user_data)
    login_user(user, remember=bool(data.get('remember')))
    user_repo.update_last_login(user.id)
    logger.info(f'User {email} logged in')
    return jsonify({'success': True, 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def api_logout():
    logger.info(f'User {current_user.email} logged out')
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me', methods=['GET'])
@login_required
def api_me():
    return jsonify({'user': current_user.to_dict()})


@auth_bp.route('/signup', methods=['POST'])
@handle_api_errors
def api_signup():
    """Create a company with its first ADMIN user and log that user in."""
    allowed, retry_after = _auth_limiter.is_allowed(
        f'signup:{request.remote_addr}', max_requests=5, window_seconds=3600)
    if not allowed:
        return jsonify({
            'success': False,
            'error': f'Too many signup attempts. Try again in {retry_after} seconds.',
        }), 429

    data, error = get_json_or_error()
    if error:
        return error
    result = get_container().company_service.signup(data)

    user = User(result['user'])
    login_user(user)
    company = result['company']
    return jsonify({
        'success': True,
        'message': 'Company created successfully',
        'user': user.to_dict(),
        'company': {
            'id': company['id'],
            'name': company['name'],
            'country': company.get('country'),
            'currency': company['currency'],
        },
    }), 201
