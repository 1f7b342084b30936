"""
Module for formatting decimal, percentage and currency values using Babel.

"""
import logging
from typing import List

from babel import Locale, UnknownLocaleError, numbers

DEFAULT_LOCALE: str = 'en_IN'

CURRENCY_MAP: dict[str, str] = {
    'US': 'USD',
    'GB': 'GBP',
    'DE': 'EUR',
    'FR': 'EUR',
    'ES': 'EUR',
    'IT': 'EUR',
    'NL': 'EUR',
    'JP': 'JPY',
    'CA': 'CAD',
    'AU': 'AUD',
    'IN': 'INR',
    'BR': 'BRL',
    'HU': 'HUF',
    'MX': 'MXN',
    'ZA': 'ZAR',
}

LOCALE_MAP: List[str] = [
    'en_IN',
    'en_GB',
    'en_US',
    'en_AU',
    'en_CA',
    'en_ZA',
    'de_DE',
    'es_ES',
    'es_MX',
    'fr_FR',
    'hu_HU',
    'it_IT',
    'ja_JP',
    'nl_NL',
    'pt_BR',
]


def get_currency_from_locale(locale: str) -> str:
    """
    Retrieve the default currency code based on the locale's territory.

    Args:
        locale (str): Locale string, e.g. 'en_IN'.

    Returns:
        str: Currency code such as 'INR'. Defaults to 'INR' if the territory is unknown.
    """
    parts = (locale or '').split('_')
    if len(parts) < 2:
        return 'INR'
    return CURRENCY_MAP.get(parts[1], 'INR')


def _parse_locale(locale: str) -> Locale:
    try:
        return Locale.parse(locale or DEFAULT_LOCALE)
    except (ValueError, UnknownLocaleError) as ex:
        logging.warning(f'Invalid locale "{locale}", falling back to {DEFAULT_LOCALE}: {ex}')
        return Locale.parse(DEFAULT_LOCALE)


def format_currency_value(value: float, locale: str) -> str:
    """
    Format a float as a currency string based on the locale's default currency.

    The default currency is determined by the territory extracted from the locale.

    Args:
        value (float): The numeric value to be formatted.
        locale (str): Locale string, e.g. 'en_IN'.

    Returns:
        str: The formatted currency string, e.g. '₹1,250.00'.
    """
    currency_code = get_currency_from_locale(locale)
    return numbers.format_currency(value, currency=currency_code, locale=_parse_locale(locale))


def format_percent(value: float, locale: str, decimals: int = 0) -> str:
    """
    Format a percentage given on a 0-100 scale.

    Args:
        value (float): The percentage, e.g. 42.5 for 42.5%.
        locale (str): Locale string.
        decimals (int): Number of fractional digits to show.

    Returns:
        str: The formatted percentage string, e.g. '42%'.
    """
    fmt = '#,##0' + ('.' + '0' * decimals if decimals > 0 else '') + '%'
    return numbers.format_percent(value / 100.0, format=fmt, locale=_parse_locale(locale))
