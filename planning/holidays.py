"""Production calendar client.

Fetches non-working days from an xmlcalendar.ru compatible API and keeps
them in a JSON file cache. Any failure falls back to plain weekends.
"""

import json
import logging
import os
from datetime import date, datetime, timedelta
from typing import Optional, Set

import requests
from requests import Session

from .calendar import WEEKEND_DAYS, WorkCalendar


logger = logging.getLogger(__name__)

DEFAULT_API_URL = 'https://xmlcalendar.ru/data'
SUPPORTED_COUNTRIES = ('ru', 'by', 'kz', 'uz')


def weekends_for_year(year: int) -> Set[date]:
    current = date(year, 1, 1)
    days = set()
    while current.year == year:
        if current.weekday() in WEEKEND_DAYS:
            days.add(current)
        current += timedelta(days=1)
    return days


def parse_calendar_response(payload: dict, year: int) -> Set[date]:
    """Parse ``{"months": [{"month": 1, "days": "1,2,3*,4+"}]}``.

    ``*`` marks a shortened workday (still a workday); ``+`` marks a moved
    day off (non-working).
    """
    months = payload.get('months')
    if not isinstance(months, list):
        raise ValueError('Response has no months list')

    days = set()
    for month_entry in months:
        month = int(month_entry.get('month'))
        for raw_day in str(month_entry.get('days') or '').split(','):
            token = raw_day.strip()
            if not token or token.endswith('*'):
                continue
            try:
                days.add(date(year, month, int(token.replace('+', ''))))
            except ValueError:
                logger.debug('Could not parse day %r in month %s', raw_day, month)
    return days


class HolidayClient:
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        cache_file: Optional[str] = None,
        cache_expiry_hours: int = 24,
        session: Optional[Session] = None,
        timeout: int = 20,
    ):
        self.api_url = api_url.rstrip('/')
        self.cache_file = cache_file
        self.cache_expiry_hours = cache_expiry_hours
        self.session = session or Session()
        self.timeout = timeout

    def _cache_key(self, year: int, country: str) -> str:
        return f'{country.lower()}-{year}'

    def load_cache(self) -> dict:
        if not self.cache_file or not os.path.exists(self.cache_file):
            return {}
        try:
            with open(self.cache_file, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning('Failed to load holiday cache: %s', e)
            return {}

    def save_cache(self, year: int, country: str, days: Set[date]):
        if not self.cache_file:
            return
        cache = self.load_cache()
        cache[self._cache_key(year, country)] = {
            'timestamp': datetime.now().isoformat(),
            'days': sorted(day.isoformat() for day in days),
        }
        try:
            with open(self.cache_file, 'w') as f:
                json.dump(cache, f, indent=2)
            logger.info('Cached %d non-working days for %s %s', len(days), country, year)
        except OSError as e:
            logger.warning('Failed to save holiday cache: %s', e)

    def cached_days(self, year: int, country: str) -> Optional[Set[date]]:
        entry = self.load_cache().get(self._cache_key(year, country))
        if not entry or 'timestamp' not in entry:
            return None
        try:
            cache_time = datetime.fromisoformat(entry['timestamp'])
        except ValueError:
            return None
        if datetime.now() >= cache_time + timedelta(hours=self.cache_expiry_hours):
            logger.info('Holiday cache for %s %s expired', country, year)
            return None
        return {date.fromisoformat(day) for day in entry.get('days', [])}

    def fetch_non_working_days(self, year: int, country: str = 'RU') -> Set[date]:
        cached = self.cached_days(year, country)
        if cached is not None:
            return cached

        if country.lower() not in SUPPORTED_COUNTRIES:
            logger.warning('Country %s is not supported, using weekends only', country)
            return weekends_for_year(year)

        url = f'{self.api_url}/{country.lower()}/{year}/calendar.json'
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code != 200:
                logger.error('Calendar API returned %s for %s', response.status_code, url)
                return weekends_for_year(year)
            days = parse_calendar_response(response.json(), year)
        except (requests.RequestException, ValueError, TypeError) as e:
            logger.error('Failed to fetch calendar for %s %s: %s', country, year, e)
            return weekends_for_year(year)

        self.save_cache(year, country, days)
        return days

    def calendar_for(self, years, country: str = 'RU') -> WorkCalendar:
        """Calendar where the fetched years are fully described by the API list.

        Failed fetches fall back to weekends, so the list is still complete.
        """
        years = sorted(set(years))
        holidays = set()
        for year in years:
            holidays |= self.fetch_non_working_days(year, country)
        return WorkCalendar(holidays, country_code=country, listed_years=years)
