"""ExpenseFlow Core Auth Models.

User model for Flask-Login authentication.
"""
from flask_login import UserMixin

ROLE_ADMIN = 'ADMIN'
ROLE_MANAGER = 'MANAGER'
ROLE_EMPLOYEE = 'EMPLOYEE'

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_EMPLOYEE)


class User(UserMixin):
    """User class for Flask-Login."""

    def __init__(self, user_data):
        self.id = user_data['id']
        self.email = user_data['email']
        self.name = user_data['name']
        self.company_id = user_data['company_id']
        self.role = user_data.get('role', ROLE_EMPLOYEE)
        self.manager_id = user_data.get('manager_id')
        self.is_active_user = user_data.get('is_active', True)

    @property
    def is_active(self):
        return self.is_active_user

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self):
        """Managers and admins both act as approvers."""
        return self.role in (ROLE_MANAGER, ROLE_ADMIN)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'company_id': self.company_id,
            'role': self.role,
            'manager_id': self.manager_id,
        }
