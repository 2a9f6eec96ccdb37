"""
Constants used throughout the portfolio service.
"""


class _Undefined:
    """Marker for a ratio whose denominator is zero. Not a number."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    __str__ = __repr__

    def __float__(self):
        raise TypeError("UNDEFINED has no numeric value; branch on it before formatting")

    def __reduce__(self):
        return (_Undefined, ())


UNDEFINED = _Undefined()


def is_undefined(value) -> bool:
    return value is UNDEFINED


# Policy status vocabulary (live data)
STATUS_ACTIVE = "Aktiv"
STATUS_EXPIRED = "Utgått"
STATUS_RENEWED = "Fornyet"
STATUS_CHANGED = "Endret"
STATUS_CANCELLED = "Kansellert"
STATUS_PRODUCED = "Produsert"

# Only produced by view date reconstruction
STATUS_FUTURE = "Fremtidig"

# Status ids attached to reconstructed statuses so id-based rules keep working
HISTORICAL_STATUS_IDS = {
    STATUS_ACTIVE: 3,
    STATUS_EXPIRED: 4,
    STATUS_RENEWED: 12,
    STATUS_CANCELLED: 6,
}

# Claim status marking a record that was registered by mistake
CLAIM_STATUS_MISCODED = "Feilregistrert"

CUSTOMER_TYPES = {
    "Privatkunde": "private",
    "Bedriftskunde": "business",
}

# Loss ratio bands in percent (upper bound inclusive)
LOSS_RATIO_CATEGORIES = [
    ("Utmerket", 50.0),
    ("Akseptabel", 75.0),
    ("Problematisk", float("inf")),
]

AVERAGE_MONTH_DAYS = 30.44
