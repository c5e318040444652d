"""Pydantic models for post-auth monitoring and scheduling."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class PostAuthStatus(StrEnum):
    UNDER_MONITORING = "under_monitoring"
    CLEARED = "cleared"


class SkipReason(StrEnum):
    NOT_IN_BUCKET = "not_in_bucket"
    ALREADY_RAN_TODAY = "already_ran_today"
    LOCKED_BY_CONCURRENT_RUN = "locked_by_concurrent_run"


class DueCheck(BaseModel):
    merchant_id: str
    due: bool
    local_minutes: int
    local_day_key: str
    skip_reason: SkipReason | None = None


class SweepResult(BaseModel):
    merchant_id: str
    scanned: int = 0
    still_monitoring: int = 0
    cleared_now: int = 0
    local_day_key: str | None = None
    ran_at: datetime | None = None


class TickResult(BaseModel):
    merchants_evaluated: int = 0
    merchants_triggered: int = 0
    merchants_failed: int = 0
    orders_scanned: int = 0
    orders_cleared: int = 0
    skipped: dict[str, int] = Field(default_factory=dict)
    ticked_at: datetime


class MonitoringConfigUpdate(BaseModel):
    preferred_check_minutes: int = Field(ge=0, lt=1440)
    timezone_offset_minutes: int = Field(default=0, ge=-840, le=840)


class MonitoringConfigView(BaseModel):
    merchant_id: str
    preferred_check_minutes: int
    timezone_offset_minutes: int
    last_run_local_day_key: str | None = None
