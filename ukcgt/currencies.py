"""Fiat currency constants.

Only these currencies can be converted to GBP automatically. Crypto asset codes
(BTC, ETH, ...) need a GBP value supplied upstream.
"""

GBP = "GBP"

FIAT_CURRENCIES = frozenset({
    "GBP", "USD", "EUR", "CAD", "AUD", "CHF", "JPY", "CNY", "HKD", "SGD",
    "NZD", "SEK", "NOK", "DKK", "INR", "ZAR", "MXN", "BRL", "KRW", "TWD",
    "THB", "MYR", "IDR", "PHP", "PLN", "CZK", "HUF", "TRY", "ILS", "AED",
    "SAR", "RUB", "BGN", "HRK", "ISK", "RON",
})


def is_fiat_currency(currency: str) -> bool:
    return currency.upper() in FIAT_CURRENCIES
