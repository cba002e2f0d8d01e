from __future__ import annotations


class IntegrationMisconfiguredError(RuntimeError):
    """An external provider was selected but cannot be built from the environment."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"INTEGRATION_MISCONFIGURED:{provider}:{reason}")
        self.provider = provider
        self.reason = reason
