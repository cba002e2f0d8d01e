from __future__ import annotations

import hashlib

from vinimai.integrations.payments.base import GatewayOrderResult, PaymentsProvider, RefundResult


def _short_digest(*parts) -> str:
    raw = "|".join(str(p) for p in parts).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:14]


class MockPaymentsProvider(PaymentsProvider):
    name = "mock"

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrderResult:
        gateway_order_id = f"order_mock_{_short_digest(receipt, amount_minor)}"
        return GatewayOrderResult(
            gateway_order_id=gateway_order_id,
            amount=int(amount_minor),
            currency=currency,
            raw={
                "id": gateway_order_id,
                "receipt": receipt,
                "notes": notes or {},
                "provider": self.name,
            },
        )

    def refund(self, *, payment_id: str, amount_minor: int, notes: dict | None = None) -> RefundResult:
        refund_id = f"rfnd_mock_{_short_digest(payment_id, amount_minor)}"
        return RefundResult(
            refund_id=refund_id,
            status="processed",
            amount=int(amount_minor),
            raw={"id": refund_id, "payment_id": payment_id, "notes": notes or {}, "provider": self.name},
        )
