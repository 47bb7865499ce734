"""
Store-wide settings, kept as a single document in the "settings" collection.
"""
from database import db, utcnow

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "¥",
    "INR": "₹",
    "PKR": "₨",
}

# Rates relative to USD
DEFAULT_EXCHANGE_RATES = {
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.73,
    "JPY": 110.0,
    "CAD": 1.25,
    "AUD": 1.35,
    "CHF": 0.92,
    "CNY": 6.45,
    "INR": 74.5,
    "PKR": 278.0,
}

PUBLIC_FIELDS = (
    "store_name",
    "store_description",
    "currency",
    "tax_rate",
    "shipping_fee",
    "free_shipping_threshold",
    "exchange_rates",
)


def default_settings() -> dict:
    return {
        "store_name": "My Ecommerce Store",
        "store_description": "Welcome to our online store",
        "currency": {"code": "USD", "symbol": "$", "rate": 1.0},
        "tax_rate": 10.0,
        "shipping_fee": 5.99,
        "free_shipping_threshold": 50.0,
        "exchange_rates": dict(DEFAULT_EXCHANGE_RATES),
    }


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code, "$")


def get_settings() -> dict:
    """Return the settings document, creating it with defaults on first use."""
    now = utcnow()
    defaults = default_settings()
    defaults["created_at"] = now
    defaults["updated_at"] = now
    db["settings"].update_one({"_id": "store"}, {"$setOnInsert": defaults}, upsert=True)
    return db["settings"].find_one({"_id": "store"})


def update_settings(store_name: str, store_description, currency: str, tax_rate: float,
                    shipping_fee: float, free_shipping_threshold: float) -> dict:
    settings = get_settings()
    rates = settings.get("exchange_rates") or DEFAULT_EXCHANGE_RATES
    update = {
        "store_name": store_name,
        "store_description": store_description or "",
        "currency": {
            "code": currency,
            "symbol": currency_symbol(currency),
            "rate": rates.get(currency, 1.0),
        },
        "tax_rate": float(tax_rate),
        "shipping_fee": float(shipping_fee),
        "free_shipping_threshold": float(free_shipping_threshold),
        "updated_at": utcnow(),
    }
    db["settings"].update_one({"_id": "store"}, {"$set": update})
    return db["settings"].find_one({"_id": "store"})


def reset_settings() -> dict:
    db["settings"].delete_many({})
    return get_settings()


def public_settings(settings: dict) -> dict:
    data = {field: settings.get(field) for field in PUBLIC_FIELDS}
    currency = dict(data.get("currency") or {})
    currency["symbol"] = currency_symbol(currency.get("code", "USD"))
    data["currency"] = currency
    return data


def admin_settings(settings: dict) -> dict:
    data = dict(settings)
    data.pop("_id", None)
    data["currency_symbol"] = currency_symbol((settings.get("currency") or {}).get("code", "USD"))
    return data
