"""Shared services used across ExpenseFlow sections."""
