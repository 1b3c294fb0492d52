"""Shared NUMERIC column types. Values round-trip as decimal.Decimal."""

from ..extensions import db

# Rupee amounts entered by users: prices
MONEY = db.Numeric(14, 4)

# Pieces, meters or sets depending on product kind
QUANTITY = db.Numeric(12, 3)

# Anything derived from quantity x price (line totals, costs, refunds, balances).
# Scale is QUANTITY scale + MONEY scale so products are stored exactly.
AMOUNT = db.Numeric(24, 7)


def decimal_str(value):
    """JSON-safe rendering of a Decimal column (None stays None)."""
    if value is None:
        return None
    return str(value)
