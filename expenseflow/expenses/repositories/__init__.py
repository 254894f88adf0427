"""Expense repositories package."""
from .expense_repository import ExpenseRepository

__all__ = ['ExpenseRepository']
