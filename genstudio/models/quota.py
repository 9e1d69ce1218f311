# genstudio/models/quota.py
"""Quota models shared by the gate, the driver and the CLI."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QuotaState(BaseModel):
    """
    Last known generation allowance for the current window.

    The backend is the real enforcement point; this is a read-mostly cache.
    """

    model_config = ConfigDict(extra="ignore")

    remaining: int = Field(ge=0, description="Generations left in the current window")
    limit: int | None = Field(default=None, description="Window allowance, if reported")
    used: int | None = Field(default=None, description="Generations used, if reported")
    window_reset_at: str | None = Field(
        default=None, description="When the window resets (informational only)"
    )
    assumed: bool = Field(
        default=False, description="True when this is a fail-open placeholder, not backend data"
    )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "QuotaState":
        """
        Parse any of the quota shapes the backend returns.

        Accepts a {success, data: {...}} envelope, and either `remaining` or
        `remaining_quota`, `resets_at` or `quota_resets_at`.
        """
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload

        remaining = data.get("remaining")
        if remaining is None:
            remaining = data.get("remaining_quota")
        if remaining is None:
            raise ValueError(f"Quota payload has no remaining count: {sorted(data)}")

        return cls(
            remaining=max(0, int(remaining)),
            limit=data.get("limit"),
            used=data.get("used"),
            window_reset_at=data.get("resets_at") or data.get("quota_resets_at"),
        )


class QuotaDecision(BaseModel):
    """Result of an advisory quota check."""

    allowed: bool
    remaining: int
