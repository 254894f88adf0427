"""ExpenseFlow Core Authentication Module.

Session login and signup for the JSON API, the User model Flask-Login
works with, and company user management.
"""
from flask import Blueprint

auth_bp = Blueprint('auth', __name__)
users_bp = Blueprint('users', __name__)

from . import routes, user_routes  # noqa: E402, F401
