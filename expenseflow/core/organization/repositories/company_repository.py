"""Company Repository - tenants and their base currency."""
from typing import Optional, Dict, Any

from core.base_repository import BaseRepository

_SETTINGS = ('name', 'country', 'currency')


class CompanyRepository(BaseRepository):

    def get_by_id(self, company_id: int) -> Optional[Dict[str, Any]]:
        return self.query_one('''
            SELECT id, name, country, currency, created_at, updated_at
            FROM companies
            WHERE id = %s
        ''', (company_id,))

    def create(self, name: str, country: Optional[str], currency: str) -> Dict[str, Any]:
        return self.execute('''
            INSERT INTO companies (name, country, currency)
            VALUES (%s, %s, %s)
            RETURNING id, name, country, currency, created_at, updated_at
        ''', (name, country, currency), returning=True)

    def update(self, company_id: int, **kwargs) -> bool:
        """Update company settings (name, country, currency). Unknown keys are ignored."""
        updates = []
        params = []
        for key, val in kwargs.items():
            if key in _SETTINGS:
                updates.append(f'{key} = %s')
                params.append(val)
        if not updates:
            return False
        updates.append('updated_at = CURRENT_TIMESTAMP')
        params.append(company_id)
        return self.execute(
            f'UPDATE companies SET {", ".join(updates)} WHERE id = %s', params
        ) > 0
