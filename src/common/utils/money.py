from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from common.utils.constants import AMOUNT_EPSILON

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their printed value instead of binary noise
    return Decimal(str(value))


def quantize(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(left: Number, right: Number, epsilon: Decimal = AMOUNT_EPSILON) -> bool:
    return abs(to_decimal(left) - to_decimal(right)) <= epsilon


def format_amount(value: Number) -> str:
    return f"{quantize(value):.2f}"
