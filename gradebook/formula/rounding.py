import decimal

from gradebook.model import RoundingRule

# scale of every stored score column
StoredPlaces = 4

_modes = {
    RoundingRule.HalfUp: decimal.ROUND_HALF_UP,
    RoundingRule.HalfDown: decimal.ROUND_HALF_DOWN,
    RoundingRule.Bankers: decimal.ROUND_HALF_EVEN,
    RoundingRule.Floor: decimal.ROUND_FLOOR,
    RoundingRule.Ceil: decimal.ROUND_CEILING,
}


def apply_rounding(value: decimal.Decimal, rule: RoundingRule, decimal_places: int) -> decimal.Decimal:
    """Round ``value`` by ``rule``.

    ``none`` still rounds half-up to the stored scale, so the letter is always
    mapped from the value that gets persisted.
    """
    if rule is RoundingRule.NoRounding:
        rule, decimal_places = RoundingRule.HalfUp, StoredPlaces
    exponent = decimal.Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=_modes[rule])
