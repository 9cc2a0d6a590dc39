"""Платёжный коллаборатор: снаружи ядра, здесь только интерфейс возврата средств."""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class PaymentResult:
    ok: bool
    error: Optional[str] = None
    refund_id: Optional[str] = None


class PaymentGateway(Protocol):
    def process_refund(self, transaction_id: str, amount: Decimal, reason: str) -> PaymentResult:
        ...


class AlwaysApprovePayments:
    """Шлюз по умолчанию для демо и тестов: одобряет всё и запоминает возвраты"""

    def __init__(self):
        self.refunds: List[dict] = []

    def process_refund(self, transaction_id: str, amount: Decimal, reason: str) -> PaymentResult:
        refund_id = f"re_{len(self.refunds) + 1:06d}"
        self.refunds.append(
            {"id": refund_id, "transaction_id": transaction_id, "amount": amount, "reason": reason}
        )
        return PaymentResult(ok=True, refund_id=refund_id)
