"""Expense services."""
from .expense_service import ExpenseService, validate_expense

__all__ = ['ExpenseService', 'validate_expense']
