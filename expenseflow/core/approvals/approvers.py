"""Approver rules — who may act at a flow step.

A step names either a role ("anyone holding MANAGER") or one user. Both are
resolved against the company through the user repository.
"""

from dataclasses import dataclass
from typing import Union

from .exceptions import ApprovalValidationError


@dataclass(frozen=True)
class RoleRule:
    role: str


@dataclass(frozen=True)
class UserRule:
    user_id: int


ApproverRule = Union[RoleRule, UserRule]


def rule_for_step(step: dict) -> ApproverRule:
    """Build the approver rule of a step row."""
    if step.get('specific_user_id') is not None:
        return UserRule(step['specific_user_id'])
    if step.get('role'):
        return RoleRule(step['role'])
    raise ApprovalValidationError(
        f"Step {step.get('step_order')} defines neither a role nor a specific user")


def resolve_approvers(rule: ApproverRule, company_id: int, user_repo) -> list:
    """Return the active company users eligible under the rule, ordered by ID."""
    if isinstance(rule, UserRule):
        user = user_repo.get_company_user(company_id, rule.user_id)
        return [user] if user else []
    if isinstance(rule, RoleRule):
        return user_repo.get_company_users_by_role(company_id, rule.role)
    raise TypeError(f'Unknown approver rule: {rule!r}')


def describe(rule: ApproverRule) -> str:
    if isinstance(rule, UserRule):
        return f'user #{rule.user_id}'
    return f'role {rule.role}'
