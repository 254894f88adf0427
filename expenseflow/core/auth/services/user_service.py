"""User Service - Business logic for managing a company's users.

Admins create users, change roles, assign managers and remove users.
Managers list the members of their team. Every lookup is scoped to the
caller's company; a user of another company is reported as not found.
"""
import logging
from typing import Optional, Dict, Any, List

from core.approvals.exceptions import NotFoundError, ApprovalValidationError
from ..models import ROLES, ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_MANAGER
from ..repositories.user_repository import UserRepository

logger = logging.getLogger('expenseflow.core.auth.service')

MIN_PASSWORD_LENGTH = 8


class UserService:
    """Service for user management business logic."""

    def __init__(self, user_repo=None):
        self.user_repo = user_repo or UserRepository()

    def list_users(self, company_id: int) -> List[Dict[str, Any]]:
        return self.user_repo.list_for_company(company_id)

    def get_user(self, company_id: int, user_id: int) -> Dict[str, Any]:
        user = self.user_repo.get_company_user(company_id, user_id)
        if not user:
            raise NotFoundError(f'User {user_id} not found')
        return user

    def create_user(self, admin, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a user in the admin's company.

        Args:
            admin: The acting admin (current_user)
            data: email, name, password, optional role (default EMPLOYEE)
                and manager_id

        Raises:
            ApprovalValidationError listing every problem found
        """
        cleaned = validate_new_user(data)
        if self.user_repo.get_by_email(cleaned['email']):
            raise ApprovalValidationError('User already exists')
        manager_id = data.get('manager_id')
        if manager_id is not None:
            self._get_manager(admin.company_id, manager_id)

        user = self.user_repo.create(
            company_id=admin.company_id,
            email=cleaned['email'],
            name=cleaned['name'],
            password=cleaned['password'],
            role=cleaned['role'],
            manager_id=manager_id,
        )
        logger.info(f"User #{user['id']} ({user['role']}) created by admin {admin.id}")
        return user

    def change_role(self, admin, user_id: int, role) -> Dict[str, Any]:
        """Set a user's role. The company always keeps one active admin."""
        if role not in ROLES:
            raise ApprovalValidationError(f"Role must be one of {', '.join(ROLES)}")
        user = self.get_user(admin.company_id, user_id)
        if user['role'] == ROLE_ADMIN and role != ROLE_ADMIN:
            self._check_not_last_admin(admin.company_id, 'Cannot remove the last admin user')
        self.user_repo.update_role(user_id, role)
        logger.info(f'User #{user_id} role {user["role"]} -> {role} by admin {admin.id}')
        return self.user_repo.get_by_id(user_id)

    def assign_manager(self, admin, user_id: int, manager_id: Optional[int]) -> Dict[str, Any]:
        """Point a user at a MANAGER or ADMIN of the same company (None clears it)."""
        self.get_user(admin.company_id, user_id)
        if manager_id is not None:
            if manager_id == user_id:
                raise ApprovalValidationError('A user cannot be their own manager')
            self._get_manager(admin.company_id, manager_id)
        self.user_repo.set_manager(user_id, manager_id)
        logger.info(f'User #{user_id} manager set to {manager_id} by admin {admin.id}')
        return self.user_repo.get_by_id(user_id)

    def get_team_members(self, manager) -> List[Dict[str, Any]]:
        return self.user_repo.get_team_members(manager.id)

    def delete_user(self, admin, user_id: int) -> bool:
        """Deactivate a user; their approval history is kept."""
        user = self.get_user(admin.company_id, user_id)
        if user['role'] == ROLE_ADMIN:
            self._check_not_last_admin(admin.company_id, 'Cannot delete the last admin user')
        deleted = self.user_repo.deactivate(user_id)
        logger.info(f'User #{user_id} deactivated by admin {admin.id}')
        return deleted

    # ============== Private Helpers ==============

    def _get_manager(self, company_id, manager_id):
        if not isinstance(manager_id, int) or isinstance(manager_id, bool):
            raise ApprovalValidationError('manager_id must be a user ID')
        manager = self.user_repo.get_company_user(company_id, manager_id)
        if not manager:
            raise NotFoundError(f'Manager {manager_id} not found')
        if manager['role'] not in (ROLE_MANAGER, ROLE_ADMIN):
            raise ApprovalValidationError('Manager must have the MANAGER or ADMIN role')
        return manager

    def _check_not_last_admin(self, company_id, message):
        if self.user_repo.count_admins(company_id) <= 1:
            raise ApprovalValidationError(message)


# ============== Validation ==============

def validate_new_user(data: Dict[str, Any], default_role: str = ROLE_EMPLOYEE) -> Dict[str, Any]:
    """Validate email, name, password and role of a new user.

    Raises ApprovalValidationError listing every problem found.
    """
    errors = []
    email = data.get('email')
    name = data.get('name')
    password = data.get('password')
    role = data.get('role') or default_role

    if not isinstance(email, str) or '@' not in email.strip():
        errors.append('A valid email is required')
    if not isinstance(name, str) or not name.strip():
        errors.append('Name is required')
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if role not in ROLES:
        errors.append(f"Role must be one of {', '.join(ROLES)}")

    if errors:
        raise ApprovalValidationError('Validation failed', details=errors)
    return {
        'email': email.strip().lower(),
        'name': name.strip(),
        'password': password,
        'role': role,
    }
