"""ExpenseFlow Core Platform Module.

This module contains shared infrastructure used across all ExpenseFlow sections:
- The BaseRepository all repositories build on
- Authentication (users, roles)
- Organization (companies)
- The approval engine (flows, requests, decisions)
- Shared services (currency conversion)
"""
