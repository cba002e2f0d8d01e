from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GatewayOrderResult:
    gateway_order_id: str
    amount: int
    currency: str
    raw: dict | None = None


@dataclass
class RefundResult:
    refund_id: str
    status: str
    amount: int
    raw: dict | None = None


class PaymentsProvider:
    """Gateway adapter. Amounts cross this boundary in minor units (paise)."""

    name = "unknown"
    key_id = ""

    def __init__(self, *, key_id: str = "", key_secret: str = ""):
        self.key_id = key_id
        self.key_secret = key_secret

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrderResult:
        raise NotImplementedError

    def refund(self, *, payment_id: str, amount_minor: int, notes: dict | None = None) -> RefundResult:
        raise NotImplementedError
