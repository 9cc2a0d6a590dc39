"""
Чистые функции ценообразования: подытог позиции, налог, доставка, итог и скидки.
Округление — до центов, половина от нуля, на каждом промежуточном шаге.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Protocol, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """float проходит через str, чтобы не тащить двоичный хвост (10.99 -> 10.99)"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def item_subtotal(price: Number, quantity: int, discount_percent: Number = 0) -> Decimal:
    gross = to_decimal(price) * quantity
    return round2(gross - gross * to_decimal(discount_percent) / HUNDRED)


def tax(amount: Number, rate: Number = 15) -> Decimal:
    return round2(to_decimal(amount) * to_decimal(rate) / HUNDRED)


def shipping(
    subtotal: Number, flat_rate: Number = 5, free_threshold: Number = 100
) -> Decimal:
    """Бесплатная доставка от порога, иначе фиксированная ставка"""
    if to_decimal(subtotal) >= to_decimal(free_threshold):
        return round2(0)
    return round2(flat_rate)


def total(subtotal: Number, discount: Number, tax_amount: Number, shipping_fee: Number) -> Decimal:
    return round2(
        to_decimal(subtotal)
        - to_decimal(discount)
        + to_decimal(tax_amount)
        + to_decimal(shipping_fee)
    )


# ============ Скидочные коды ============


@dataclass(frozen=True)
class DiscountRule:
    kind: str  # "percentage" | "fixed"
    value: Decimal
    min_subtotal: Decimal = Decimal("0")


@dataclass(frozen=True)
class DiscountResult:
    valid: bool
    discount: Decimal
    message: str


class DiscountPolicy(Protocol):
    def lookup(self, code: str) -> Optional[DiscountRule]:
        ...


class StaticDiscountPolicy:
    """Политика скидок на фиксированной таблице кодов (регистр не важен)"""

    def __init__(self, rules: Dict[str, DiscountRule]):
        self._rules = {code.upper(): rule for code, rule in rules.items()}

    def lookup(self, code: str) -> Optional[DiscountRule]:
        return self._rules.get((code or "").strip().upper())


DEFAULT_DISCOUNT_RULES: Dict[str, DiscountRule] = {
    "SAVE10": DiscountRule("percentage", Decimal("10")),
    "SAVE20": DiscountRule("percentage", Decimal("20")),
    "FLAT5": DiscountRule("fixed", Decimal("5")),
    "FLAT10": DiscountRule("fixed", Decimal("10")),
}

DEFAULT_DISCOUNT_POLICY = StaticDiscountPolicy(DEFAULT_DISCOUNT_RULES)


def validate_discount_code(
    code: str, subtotal: Number, policy: DiscountPolicy = DEFAULT_DISCOUNT_POLICY
) -> DiscountResult:
    """
    Проверяет код против подытога.
    Фиксированная скидка возвращается как есть, без ограничения подытогом —
    ограничение применяют корзина и заказ.
    """
    rule = policy.lookup(code)
    if rule is None:
        return DiscountResult(False, round2(0), "Invalid discount code")

    amount = to_decimal(subtotal)
    if amount < rule.min_subtotal:
        return DiscountResult(
            False,
            round2(0),
            f"Minimum purchase amount of {round2(rule.min_subtotal)} required",
        )

    if rule.kind == "percentage":
        discount = round2(amount * rule.value / HUNDRED)
    else:
        discount = rule.value
    return DiscountResult(True, discount, "Discount applied successfully")


def clamp_discount(discount: Number, subtotal: Number) -> Decimal:
    """Скидка не может превышать подытог — итог не уходит в минус"""
    return round2(min(to_decimal(discount), to_decimal(subtotal)))


def format_currency(amount: Number, currency: str = "USD") -> str:
    symbols = {"USD": "$", "EUR": "€", "GBP": "£", "ZAR": "R"}
    value = round2(amount)
    sign = "-" if value < 0 else ""
    body = f"{abs(value):,.2f}"
    symbol = symbols.get(currency)
    return f"{sign}{symbol}{body}" if symbol else f"{sign}{body} {currency}"
