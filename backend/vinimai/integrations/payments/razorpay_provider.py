from __future__ import annotations

import logging

import requests

from vinimai.errors import UpstreamError
from vinimai.integrations.payments.base import GatewayOrderResult, PaymentsProvider, RefundResult

logger = logging.getLogger(__name__)

API_BASE = "https://api.razorpay.com/v1"


class RazorpayPaymentsProvider(PaymentsProvider):
    name = "razorpay"

    def __init__(self, *, key_id: str, key_secret: str, timeout_seconds: float = 12.0):
        super().__init__(key_id=key_id, key_secret=key_secret)
        self.timeout_seconds = float(timeout_seconds)

    def _post(self, path: str, payload: dict, *, failure_code: str) -> dict:
        url = f"{API_BASE}{path}"
        try:
            r = requests.post(
                url,
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout_seconds,
            )
        except requests.Timeout:
            logger.warning("razorpay_timeout path=%s", path)
            raise UpstreamError("Payment gateway timed out", code="GATEWAY_TIMEOUT")
        except requests.RequestException as exc:
            logger.warning("razorpay_unreachable path=%s err=%s", path, exc)
            raise UpstreamError("Payment gateway unreachable", code=failure_code)
        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300:
            err = (j.get("error") or {}) if isinstance(j, dict) else {}
            msg = (err.get("description") or f"HTTP {r.status_code}").strip()
            logger.warning("razorpay_error path=%s status=%s msg=%s", path, r.status_code, msg)
            raise UpstreamError(msg, code=failure_code)
        return j if isinstance(j, dict) else {"payload": j}

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> GatewayOrderResult:
        payload = {
            "amount": int(amount_minor),
            "currency": currency,
            "receipt": receipt,
        }
        if notes:
            payload["notes"] = notes
        j = self._post("/orders", payload, failure_code="GATEWAY_ORDER_FAILED")
        gateway_order_id = str(j.get("id") or "").strip()
        if not gateway_order_id:
            raise UpstreamError("Payment gateway returned no order id", code="GATEWAY_ORDER_FAILED")
        return GatewayOrderResult(
            gateway_order_id=gateway_order_id,
            amount=int(j.get("amount") or amount_minor),
            currency=str(j.get("currency") or currency),
            raw=j,
        )

    def refund(self, *, payment_id: str, amount_minor: int, notes: dict | None = None) -> RefundResult:
        pid = (payment_id or "").strip()
        payload = {"amount": int(amount_minor)}
        if notes:
            payload["notes"] = notes
        j = self._post(f"/payments/{pid}/refund", payload, failure_code="GATEWAY_REFUND_FAILED")
        refund_id = str(j.get("id") or "").strip()
        if not refund_id:
            raise UpstreamError("Payment gateway returned no refund id", code="GATEWAY_REFUND_FAILED")
        return RefundResult(
            refund_id=refund_id,
            status=str(j.get("status") or "processed"),
            amount=int(j.get("amount") or amount_minor),
            raw=j,
        )
