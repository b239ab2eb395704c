from decimal import Decimal

MAX_STAY = 30
TAX_RATE = Decimal("0.15")
REFUND_RATIO = Decimal("0.95")
AMOUNT_EPSILON = Decimal("0.01")
HOLD_WINDOW_MINUTES = 30
PAYMENT_REF_PREFIX = "MESERET"
DEFAULT_CURRENCY = "ETB"
