"""Validation of approval flow definitions submitted by admins."""

from core.auth.models import ROLES
from .exceptions import ApprovalValidationError
from .rules import RULE_TYPES, UNANIMOUS, PERCENTAGE, SPECIFIC, HYBRID


def normalize_flow_definition(data: dict, partial: bool = False) -> dict:
    """Validate a flow payload and return the cleaned fields.

    With partial=True only the keys present are validated (updates). The
    company membership of referenced users is checked by the engine.
    Raises ApprovalValidationError listing every problem found.
    """
    errors = []
    cleaned = {}

    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            errors.append('Name is required')
        cleaned['name'] = name

    if not partial or 'rule_type' in data:
        rule_type = (data.get('rule_type') or UNANIMOUS).strip().upper()
        if rule_type not in RULE_TYPES:
            errors.append(f"Rule type must be one of {', '.join(RULE_TYPES)}")
        cleaned['rule_type'] = rule_type

    if not partial or 'percentage_threshold' in data:
        threshold = data.get('percentage_threshold')
        if threshold is not None:
            try:
                threshold = float(threshold)
            except (TypeError, ValueError):
                errors.append('Percentage threshold must be a number')
                threshold = None
            else:
                if not 0 < threshold <= 100:
                    errors.append('Percentage threshold must be greater than 0 and at most 100')
        cleaned['percentage_threshold'] = threshold

    if not partial or 'specific_approver_id' in data:
        approver_id = data.get('specific_approver_id')
        if approver_id is not None:
            try:
                approver_id = int(approver_id)
            except (TypeError, ValueError):
                errors.append('Specific approver must be a user ID')
                approver_id = None
        cleaned['specific_approver_id'] = approver_id

    if not partial or 'steps' in data:
        steps = data.get('steps')
        if not isinstance(steps, list) or not steps:
            errors.append('At least one step is required')
            steps = []
        cleaned['steps'] = [_clean_step(step, i + 1, errors) for i, step in enumerate(steps)]

    if 'is_active' in data:
        cleaned['is_active'] = bool(data['is_active'])

    if errors:
        raise ApprovalValidationError('Validation failed', details=errors)
    return cleaned


def check_rule_settings(rule_type, percentage_threshold, specific_approver_id):
    """Check the threshold / specific approver a rule type requires."""
    errors = []
    if rule_type in (PERCENTAGE, HYBRID) and percentage_threshold is None:
        errors.append(f'{rule_type} flows require a percentage threshold')
    if rule_type in (SPECIFIC, HYBRID) and specific_approver_id is None:
        errors.append(f'{rule_type} flows require a specific approver')
    if errors:
        raise ApprovalValidationError('Validation failed', details=errors)


def _clean_step(step, step_order, errors):
    if not isinstance(step, dict):
        errors.append(f'Step {step_order} must be an object')
        return {'step_order': step_order, 'role': None, 'specific_user_id': None}

    role = step.get('role')
    user_id = step.get('specific_user_id')
    if role:
        role = str(role).strip().upper()
        if role not in ROLES:
            errors.append(f"Step {step_order}: role must be one of {', '.join(ROLES)}")
    else:
        role = None
    if user_id is not None:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            errors.append(f'Step {step_order}: specific user must be a user ID')
            user_id = None

    if (role is None) == (user_id is None):
        errors.append(f'Step {step_order}: set exactly one of role or specific user')

    return {'step_order': step_order, 'role': role, 'specific_user_id': user_id}
