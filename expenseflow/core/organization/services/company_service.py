"""Company Service - signup of a new company and its settings."""
import logging
from typing import Dict, Any

import database
from core.approvals.exceptions import NotFoundError, ApprovalValidationError
from core.auth.models import ROLE_ADMIN
from core.auth.repositories import UserRepository
from core.auth.services import validate_new_user
from ..repositories import CompanyRepository

logger = logging.getLogger('expenseflow.core.organization.service')


class CompanyService:

    def __init__(self, company_repo=None, user_repo=None, currency_service=None,
                 transaction=None):
        self.company_repo = company_repo or CompanyRepository()
        self.user_repo = user_repo or UserRepository()
        self.currency_service = currency_service
        self._transaction = transaction or database.transaction

    def signup(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a company and its first ADMIN user in one transaction.

        The company is named after the admin unless 'company_name' is given.
        Its currency is 'currency' when given, otherwise the currency of
        'country'.

        Returns:
            {'company': ..., 'user': ...}
        """
        cleaned = validate_new_user(data, default_role=ROLE_ADMIN)
        country = _clean_text(data.get('country'), 'Country')
        company_name = (_clean_text(data.get('company_name'), 'Company name')
                        or f"{cleaned['name']}'s Company")
        if not country:
            raise ApprovalValidationError('Country is required')
        if self.user_repo.get_by_email(cleaned['email']):
            raise ApprovalValidationError('User already exists')

        currency = data.get('currency')
        if currency is not None:
            currency = _clean_currency(currency)
        elif self.currency_service is not None:
            currency = self.currency_service.currency_for_country(country)
        if not currency:
            raise ApprovalValidationError(f'Could not determine the currency of {country}')

        with self._transaction():
            company = self.company_repo.create(company_name, country, currency)
            user = self.user_repo.create(
                company_id=company['id'],
                email=cleaned['email'],
                name=cleaned['name'],
                password=cleaned['password'],
                role=ROLE_ADMIN,
            )

        logger.info(f"Company #{company['id']} ({currency}) signed up by {user['email']}")
        return {'company': company, 'user': user}

    def get_settings(self, company_id: int) -> Dict[str, Any]:
        company = self.company_repo.get_by_id(company_id)
        if not company:
            raise NotFoundError('Company not found')
        return company

    def update_settings(self, company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update name, country and/or currency. Existing expenses keep their converted amounts."""
        updates = {}
        if 'name' in data:
            updates['name'] = _clean_text(data['name'], 'Name')
            if not updates['name']:
                raise ApprovalValidationError('Name is required')
        if 'country' in data:
            updates['country'] = _clean_text(data['country'], 'Country') or None
        if 'currency' in data:
            updates['currency'] = _clean_currency(data['currency'])
        if not updates:
            raise ApprovalValidationError('No settings to update')

        self.get_settings(company_id)
        self.company_repo.update(company_id, **updates)
        logger.info(f'Company #{company_id} settings updated: {sorted(updates)}')
        return self.get_settings(company_id)


def _clean_text(value, label) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ApprovalValidationError(f'{label} must be text')
    return value.strip()


def _clean_currency(value) -> str:
    currency = value.strip().upper() if isinstance(value, str) else ''
    if len(currency) != 3 or not currency.isalpha():
        raise ApprovalValidationError('Currency must be a 3-letter code')
    return currency
