"""Pydantic models for the risk fusion domain."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Decision(StrEnum):
    APPROVE = "approve"
    HOLD = "hold"
    BLOCK = "block"


class FusionStrategy(StrEnum):
    LAYER1_ONLY = "layer1_only"
    LAYER2_OVERRIDE = "layer2_override"
    WEIGHTED_BLEND = "weighted_blend"


class BehavioralSignals(BaseModel):
    """Client-side session tracker output captured at checkout."""

    model_config = ConfigDict(populate_by_name=True)

    typing_speed_ms: float = Field(default=0.0, ge=0, alias="typingSpeedMs")
    form_fill_time_ms: float = Field(default=0.0, ge=0, alias="formFillTimeMs")
    field_interactions: int = Field(default=0, ge=0, alias="fieldInteractions")
    copy_paste_count: int = Field(default=0, ge=0, alias="copyPasteCount")
    auto_fill_detected: bool = Field(default=False, alias="autoFillDetected")

    @property
    def captured(self) -> bool:
        """Platform webhooks send zeroed signals; only a timed form counts as a session."""
        return self.form_fill_time_ms > 0


class OrderSnapshot(BaseModel):
    """The order as the pipeline sees it."""

    merchant_id: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    customer_email: str | None = None
    customer_phone: str | None = None
    shipping_address: str | None = None
    billing_address: str | None = None
    device_fingerprint: str | None = None
    amount: float = Field(gt=0, allow_inf_nan=False)
    ip_address: str | None = None

    @field_validator("merchant_id", "platform", "order_id", mode="before")
    @classmethod
    def _strip_required(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator(
        "customer_email",
        "customer_phone",
        "shipping_address",
        "billing_address",
        "device_fingerprint",
        "ip_address",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class OrderFeatures(BaseModel):
    """Local history for the order's identities, scoped to its merchant."""

    email_orders_burst: int = 0
    email_orders_1h: int = 0
    ip_orders_1h: int = 0
    phone_orders_1h: int = 0
    device_orders_1h: int = 0
    prior_orders: int = 0
    avg_prior_amount: float = 0.0


class RuleResult(BaseModel):
    rule_name: str
    evaluated: bool = True
    triggered: bool = False
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    details: str = ""
    severity: str = "low"
    evidence: dict = Field(default_factory=dict)
    category: str = ""


class Layer1Result(BaseModel):
    score: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0.0, le=1.0)
    rule_results: list[RuleResult] = []
    category_scores: dict[str, float] = Field(default_factory=dict)

    @property
    def triggered_rules(self) -> list[RuleResult]:
        return [r for r in self.rule_results if r.triggered]


class ValidationResult(BaseModel):
    """Normalized answer from one external provider for one subject."""

    provider: str
    subject_key: str
    risk_score: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0, le=100)
    signals: dict = Field(default_factory=dict)


class Layer2Source(BaseModel):
    subject_key: str
    provider: str
    risk_score: float
    confidence: float
    from_cache: bool = False


class Layer2Result(BaseModel):
    score: float = Field(ge=0, le=100)
    confidence: float = Field(ge=0.0, le=1.0)
    sources: list[Layer2Source] = []


class DecisionSettings(BaseModel):
    automatic_scanning_enabled: bool = True
    auto_approve_enabled: bool = True
    auto_approve_threshold: float = Field(default=30.0, ge=0, le=100)
    auto_block_enabled: bool = True
    auto_block_threshold: float = Field(default=90.0, ge=0, le=100)
    notify_high_risk: bool = True

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "DecisionSettings":
        if self.auto_approve_threshold >= self.auto_block_threshold:
            raise ValueError("auto_approve_threshold must be below auto_block_threshold")
        return self


class RiskAssessment(BaseModel):
    assessment_id: str
    merchant_id: str
    order_id: str
    layer1_score: float = Field(ge=0, le=100)
    layer2_score: float | None = Field(default=None, ge=0, le=100)
    fused_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    decision: Decision
    layer1_confidence: float = Field(ge=0.0, le=1.0)
    layer2_confidence: float | None = None
    fusion_strategy: FusionStrategy
    stage2_triggered: bool = False
    stage2_skipped_reason: str | None = None
    triggered_rules: list[RuleResult] = []
    layer2_sources: list[Layer2Source] = []
    assessed_at: datetime


class HighRiskEvent(BaseModel):
    """Egress payload for the notification collaborator."""

    event_type: str = "high-risk-detected"
    assessment_id: str
    merchant_id: str
    order_id: str
    order_amount: float
    fused_score: float
    customer_email: str | None = None
    risk_level: RiskLevel
    decision: Decision
    detected_at: datetime


class AssessRequest(OrderSnapshot):
    """Ad-hoc assessment request for the fraud API."""

    behavioral_signals: BehavioralSignals | None = None
    force_layer2: bool = False
