from decimal import Decimal

BASE_CURRENCY = "AED"

# code -> (fallback rate from AED , minor unit decimals)
SUPPORTED_CURRENCIES = {
    "AED": (Decimal("1"), 2),
    "USD": (Decimal("0.2722"), 2),
    "SAR": (Decimal("1.02"), 2),
    "QAR": (Decimal("1.0"), 2),
    "KWD": (Decimal("0.083"), 3),
    "BHD": (Decimal("0.10"), 3),
    "OMR": (Decimal("0.105"), 3),
}

FALLBACK_RATES = {code: rate for code, (rate, _) in SUPPORTED_CURRENCIES.items()}
