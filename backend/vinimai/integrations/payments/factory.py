from __future__ import annotations

import os

from vinimai.integrations.common import IntegrationMisconfiguredError
from vinimai.integrations.payments.base import PaymentsProvider
from vinimai.integrations.payments.mock_provider import MockPaymentsProvider
from vinimai.integrations.payments.razorpay_provider import RazorpayPaymentsProvider

DEV_KEY_ID = "rzp_test_vinimai"
DEV_KEY_SECRET = "vinimai-dev-gateway-secret"


def _is_production() -> bool:
    env = (os.getenv("VINIMAI_ENV") or "dev").strip().lower()
    return env in ("prod", "production")


def gateway_timeout_seconds() -> float:
    raw = (os.getenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS") or "").strip()
    try:
        value = float(raw) if raw else 12.0
    except ValueError:
        value = 12.0
    return max(1.0, min(value, 15.0))


def configured_provider_name() -> str:
    default = "razorpay" if _is_production() else "mock"
    return (os.getenv("PAYMENTS_PROVIDER") or default).strip().lower()


def gateway_credentials() -> tuple[str, str]:
    key_id = (os.getenv("RAZORPAY_KEY_ID") or "").strip()
    key_secret = (os.getenv("RAZORPAY_KEY_SECRET") or "").strip()
    if not _is_production():
        key_id = key_id or DEV_KEY_ID
        key_secret = key_secret or DEV_KEY_SECRET
    return key_id, key_secret


def build_payments_provider() -> PaymentsProvider:
    provider = configured_provider_name()
    key_id, key_secret = gateway_credentials()

    if provider == "mock":
        return MockPaymentsProvider(key_id=key_id, key_secret=key_secret)

    if provider != "razorpay":
        raise IntegrationMisconfiguredError(provider, "unknown provider")

    if not key_id or not key_secret:
        raise IntegrationMisconfiguredError(provider, "missing RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET")

    return RazorpayPaymentsProvider(key_id=key_id, key_secret=key_secret, timeout_seconds=gateway_timeout_seconds())


def payment_health() -> dict:
    provider = configured_provider_name()
    missing = []
    if provider == "razorpay":
        if not (os.getenv("RAZORPAY_KEY_ID") or "").strip():
            missing.append("RAZORPAY_KEY_ID")
        if not (os.getenv("RAZORPAY_KEY_SECRET") or "").strip():
            missing.append("RAZORPAY_KEY_SECRET")
    return {
        "status": "misconfigured" if missing else "configured",
        "provider": provider,
        "missing": missing,
    }
