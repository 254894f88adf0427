"""
Currency conversion against an exchangerate-api style endpoint.

GET {base_url}/{FROM} returns {"base": "FROM", "rates": {"EUR": 0.92, ...}}.
Rates are cached per base currency for cache_seconds. Any failure to obtain
a rate yields None; callers store the expense without a converted amount.

A company's currency is looked up from its country through a restcountries
style endpoint: GET {countries_url}/name/{country}?fields=currencies returns
[{"currencies": {"EUR": {...}}}, ...].
"""

import time
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import requests

logger = logging.getLogger('expenseflow.core.services.currency')

DEFAULT_API_URL = 'https://api.exchangerate-api.com/v4/latest'
DEFAULT_CACHE_SECONDS = 3600
DEFAULT_COUNTRIES_API_URL = 'https://restcountries.com/v3.1'


class CurrencyService:

    def __init__(self, api_url: str = DEFAULT_API_URL,
                 cache_seconds: int = DEFAULT_CACHE_SECONDS,
                 session: requests.Session = None, timeout: int = 10,
                 countries_api_url: str = DEFAULT_COUNTRIES_API_URL):
        self.api_url = api_url.rstrip('/')
        self.countries_api_url = countries_api_url.rstrip('/')
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._session = session or requests.Session()
        # {base_currency: (fetched_at, {currency: rate})}
        self._cache = {}

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Units of to_currency per one from_currency, or None."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0

        rates = self._get_rates(from_currency)
        rate = rates.get(to_currency)
        if rate is None:
            logger.warning(f'No exchange rate {from_currency} -> {to_currency}')
            return None
        return float(rate)

    def convert(self, amount, from_currency: str, to_currency: str) -> Optional[Decimal]:
        """Convert amount, rounded to cents. None when no rate is available."""
        rate = self.get_exchange_rate(from_currency, to_currency)
        if rate is None:
            return None
        converted = Decimal(str(amount)) * Decimal(str(rate))
        return converted.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    def currency_for_country(self, country: str) -> Optional[str]:
        """ISO code of the first currency listed for the country, or None."""
        try:
            response = self._session.get(
                f'{self.countries_api_url}/name/{country}',
                params={'fields': 'currencies'}, timeout=self.timeout)
            response.raise_for_status()
            matches = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f'Error looking up currency for {country}: {e}')
            return None

        for match in matches if isinstance(matches, list) else []:
            currencies = match.get('currencies') if isinstance(match, dict) else None
            if currencies:
                return next(iter(currencies)).upper()
        logger.warning(f'No currency found for country {country}')
        return None

    def clear_cache(self):
        self._cache.clear()

    def _get_rates(self, base: str) -> dict:
        cached = self._cache.get(base)
        if cached and time.monotonic() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            response = self._session.get(f'{self.api_url}/{base}', timeout=self.timeout)
            response.raise_for_status()
            rates = response.json().get('rates') or {}
        except (requests.RequestException, ValueError) as e:
            logger.error(f'Error fetching exchange rates for {base}: {e}')
            return {}

        self._cache[base] = (time.monotonic(), rates)
        return rates
