"""User Repository - Data access layer for user operations.

This module handles all database operations related to users,
including authentication, user management and the approver
lookups used by the approval engine.
"""
from typing import Optional, Dict, Any, List
from werkzeug.security import generate_password_hash, check_password_hash

from core.base_repository import BaseRepository

_USER_COLUMNS = '''
    u.id, u.company_id, u.email, u.name, u.role, u.manager_id,
    u.is_active, u.password_hash, u.last_login, u.created_at
'''


class UserRepository(BaseRepository):
    """Repository for user data access operations."""

    def get_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get a user by ID."""
        return self.query_one(f'''
            SELECT {_USER_COLUMNS}
            FROM users u
            WHERE u.id = %s
        ''', (user_id,))

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Get a user by email address."""
        return self.query_one(f'''
            SELECT {_USER_COLUMNS}
            FROM users u
            WHERE LOWER(u.email) = LOWER(%s)
        ''', (email,))

    def get_company_users_by_role(self, company_id: int, role: str) -> List[Dict[str, Any]]:
        """Get active users of a company holding the given role, ordered by ID."""
        return self.query_all(f'''
            SELECT {_USER_COLUMNS}
            FROM users u
            WHERE u.company_id = %s AND u.role = %s AND u.is_active = TRUE
            ORDER BY u.id
        ''', (company_id, role))

    def get_company_user(self, company_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """Get an active user only if it belongs to the company."""
        return self.query_one(f'''
            SELECT {_USER_COLUMNS}
            FROM users u
            WHERE u.id = %s AND u.company_id = %s AND u.is_active = TRUE
        ''', (user_id, company_id))

    def update_last_login(self, user_id: int) -> bool:
        """Update the last login timestamp for a user."""
        return self.execute('''
            UPDATE users SET last_login = CURRENT_TIMESTAMP
            WHERE id = %s
        ''', (user_id,)) > 0

    # --- Authentication Methods ---

    def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Authenticate user by email and password."""
        user = self.get_by_email(email)
        if not user or not user.get('is_active', False) or not user.get('password_hash'):
            return None
        if not check_password_hash(user['password_hash'], password):
            return None
        return user

    # --- User Management ---

    def list_for_company(self, company_id: int) -> List[Dict[str, Any]]:
        """Active users of a company with their manager's name, ordered by ID."""
        return self.query_all(f'''
            SELECT {_USER_COLUMNS}, m.name as manager_name
            FROM users u
            LEFT JOIN users m ON m.id = u.manager_id
            WHERE u.company_id = %s AND u.is_active = TRUE
            ORDER BY u.id
        ''', (company_id,))

    def get_team_members(self, manager_id: int) -> List[Dict[str, Any]]:
        """Active users reporting to the manager."""
        return self.query_all(f'''
            SELECT {_USER_COLUMNS}
            FROM users u
            WHERE u.manager_id = %s AND u.is_active = TRUE
            ORDER BY u.name
        ''', (manager_id,))

    def count_admins(self, company_id: int) -> int:
        row = self.query_one('''
            SELECT COUNT(*) as total FROM users
            WHERE company_id = %s AND role = 'ADMIN' AND is_active = TRUE
        ''', (company_id,))
        return row['total'] if row else 0

    def create(self, company_id: int, email: str, name: str, password: str,
               role: str = 'EMPLOYEE', manager_id: int = None) -> Dict[str, Any]:
        """Create a user with a hashed password. Returns the new user."""
        try:
            row = self.execute('''
                INSERT INTO users (company_id, email, name, password_hash, role, manager_id)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
            ''', (company_id, email, name, generate_password_hash(password), role, manager_id),
                returning=True)
        except Exception as e:
            if 'unique' in str(e).lower() or 'duplicate' in str(e).lower():
                raise ValueError(f"User with email '{email}' already exists")
            raise
        return self.get_by_id(row['id'])

    def update_role(self, user_id: int, role: str) -> bool:
        return self.execute('''
            UPDATE users SET role = %s, updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
        ''', (role, user_id)) > 0

    def set_manager(self, user_id: int, manager_id: Optional[int]) -> bool:
        return self.execute('''
            UPDATE users SET manager_id = %s, updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
        ''', (manager_id, user_id)) > 0

    def deactivate(self, user_id: int) -> bool:
        """Deactivate a user and detach their reports.

        The row stays so approval history keeps its approver.
        """
        def _work(cursor):
            cursor.execute('''
                UPDATE users SET manager_id = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE manager_id = %s
            ''', (user_id,))
            cursor.execute('''
                UPDATE users SET is_active = FALSE, updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND is_active = TRUE
            ''', (user_id,))
            return cursor.rowcount > 0
        return self.execute_many(_work)
