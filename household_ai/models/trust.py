"""
Trust Models

Per-household configuration of how much autonomy the assistant has.

Trust levels (1-5) grow with successful actions and shrink with incidents.
Each level maps to a preset of limits; households may also set custom
limits, which last until the next level change.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from household_ai.clock import utcnow
from household_ai.models.risk import RiskLevel


class TrustPreset(BaseModel):
    """Limits applied when a household reaches a trust level."""

    auto_approve_threshold: RiskLevel
    max_actions_per_window: int = Field(ge=1)
    window_seconds: int = Field(default=60, ge=1)
    max_items_per_proposal: int = Field(ge=1)
    max_high_risk_actions_per_day: int = Field(ge=1)


# Level 1 (default): only LOW auto-approved, strict limits
# Level 5 (maximum): up to HIGH auto-approved, relaxed limits
TRUST_LEVEL_PRESETS: dict[int, TrustPreset] = {
    level: TrustPreset(
        auto_approve_threshold=threshold,
        max_actions_per_window=per_window,
        max_items_per_proposal=per_proposal,
        max_high_risk_actions_per_day=high_risk_per_day,
    )
    for level, threshold, per_window, per_proposal, high_risk_per_day in [
        (1, RiskLevel.LOW, 5, 10, 2),
        (2, RiskLevel.LOW, 10, 25, 3),
        (3, RiskLevel.MEDIUM, 15, 50, 5),
        (4, RiskLevel.MEDIUM, 20, 75, 10),
        (5, RiskLevel.HIGH, 30, 100, 20),
    ]
}

MIN_TRUST_LEVEL = 1
MAX_TRUST_LEVEL = 5

# Successful actions needed to leave level N (index N)
LEVEL_UP_SUCCESS_COUNT = [0, 10, 25, 50, 100]
LEVEL_DOWN_INCIDENT_THRESHOLD = 3
MIN_SUCCESS_RATIO = 0.9


class HouseholdAITrust(BaseModel):
    """
    Trust settings and counters for one household.

    Auto-approval never exceeds auto_approve_threshold and the
    rate window applies to every auto-approval, LOW risk included.
    Auto-approved HIGH risk actions also have a daily cap.
    """

    household_id: str = Field(
        ...,
        min_length=1,
        description="Owning household"
    )
    trust_level: int = Field(
        default=MIN_TRUST_LEVEL,
        ge=MIN_TRUST_LEVEL,
        le=MAX_TRUST_LEVEL,
    )

    # Limits
    auto_approve_threshold: RiskLevel = Field(
        default=RiskLevel.LOW,
        description="Highest risk level allowed to auto-execute"
    )
    max_actions_per_window: int = Field(default=5, ge=1)
    window_seconds: int = Field(default=60, ge=1)
    max_items_per_proposal: int = Field(default=10, ge=1)
    max_high_risk_actions_per_day: int = Field(
        default=2,
        ge=1,
        description="Auto-approved HIGH risk actions allowed per UTC day"
    )
    require_confirmation_always: bool = Field(
        default=False,
        description="Household opted out of auto-approval entirely"
    )

    # Rate window
    recent_action_timestamps: list[datetime] = Field(
        default_factory=list,
        description="Execution times inside (or recently inside) the window"
    )
    high_risk_action_timestamps: list[datetime] = Field(
        default_factory=list,
        description="Auto-approved HIGH risk executions of the current day"
    )

    # Outcome counters
    successful_actions: int = Field(default=0, ge=0)
    failed_actions: int = Field(default=0, ge=0)
    rolled_back_actions: int = Field(default=0, ge=0)
    incident_count: int = Field(default=0, ge=0)
    last_incident_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def for_level(cls, household_id: str, level: int, **overrides) -> "HouseholdAITrust":
        """Build a trust record carrying the preset limits of `level`."""
        preset = TRUST_LEVEL_PRESETS[level]
        fields = {**preset.model_dump(), **overrides}
        return cls(household_id=household_id, trust_level=level, **fields)

    def apply_preset(self, level: int) -> None:
        """Move to `level`, replacing limits with that level's preset."""
        preset = TRUST_LEVEL_PRESETS[level]
        self.trust_level = level
        self.auto_approve_threshold = preset.auto_approve_threshold
        self.max_actions_per_window = preset.max_actions_per_window
        self.window_seconds = preset.window_seconds
        self.max_items_per_proposal = preset.max_items_per_proposal
        self.max_high_risk_actions_per_day = preset.max_high_risk_actions_per_day

    def window_start(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self.window_seconds)

    def active_timestamps(self, now: datetime) -> list[datetime]:
        """Timestamps still inside the rate window ending at `now`."""
        start = self.window_start(now)
        return [ts for ts in self.recent_action_timestamps if ts > start]

    def prune(self, now: datetime, history_limit: Optional[int] = None) -> None:
        """Drop timestamps outside the window (keeping at most `history_limit`) and before today."""
        active = self.active_timestamps(now)
        if history_limit is not None:
            active = active[-history_limit:]
        self.recent_action_timestamps = active
        self.high_risk_action_timestamps = self.high_risk_actions_today(now)

    def high_risk_actions_today(self, now: datetime) -> list[datetime]:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return [ts for ts in self.high_risk_action_timestamps if ts >= day_start]

    @property
    def total_actions(self) -> int:
        return self.successful_actions + self.failed_actions

    @property
    def success_ratio(self) -> float:
        if self.total_actions == 0:
            return 1.0
        return self.successful_actions / self.total_actions


class TrustDecisionReason(str, Enum):
    """Why the trust evaluator approved or denied."""
    WITHIN_THRESHOLD = "within_threshold"
    ABOVE_THRESHOLD = "above_threshold"
    CRITICAL_RISK = "critical_risk"
    CONFIRMATION_REQUIRED = "confirmation_required"
    RATE_LIMITED = "rate_limited"


class TrustDecision(BaseModel):
    """Outcome of an auto-approval check."""

    approve: bool
    reason: TrustDecisionReason
    message: str
    function_name: str
    risk_level: RiskLevel
    trust_level: int
    actions_in_window: int = Field(default=0, ge=0)
    window_limit: Optional[int] = None

    @property
    def requires_approval(self) -> bool:
        return not self.approve


class TrustUpdateResult(BaseModel):
    """Outcome of recording an action result against a household's trust."""

    household_id: str
    previous_trust_level: int
    new_trust_level: int
    message: str

    @property
    def level_changed(self) -> bool:
        return self.previous_trust_level != self.new_trust_level


class TrustStats(BaseModel):
    """Summary view of a household's trust for settings screens."""

    trust: HouseholdAITrust
    actions_in_window: int
    high_risk_actions_today: int = Field(default=0, ge=0)
    success_rate_percent: int = Field(ge=0, le=100)
