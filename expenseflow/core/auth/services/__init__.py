"""Auth services."""
from .user_service import UserService, validate_new_user

__all__ = ['UserService', 'validate_new_user']
