"""
Trust Evaluator

Decides whether the assistant may run an action without asking.

DESIGN DECISION: The decision is side-effect free. Checking is separate
from committing: the rate window only grows through the trust storage's
atomic reserve/record operations, which the executor calls when an
action actually runs. Evaluating the same intent twice never consumes
two slots.

Order of checks (first match wins):
1. Rate window full          → RATE_LIMITED
2. CRITICAL risk             → CRITICAL_RISK (never auto-approved)
3. Household opted out       → CONFIRMATION_REQUIRED
4. Function forces a person  → CONFIRMATION_REQUIRED
5. Above household threshold → ABOVE_THRESHOLD
6. HIGH risk, daily cap used → RATE_LIMITED
7. Otherwise                 → WITHIN_THRESHOLD (approve)

Adaptive trust: households earn higher levels through successful
actions and lose them through incidents. Undos count as incidents but
the level is only re-evaluated on the next success or failure.
"""

from datetime import datetime
from typing import Optional

import structlog

from household_ai.clock import Clock, SystemClock
from household_ai.config import EngineSettings, get_settings
from household_ai.exceptions import (
    BulkLimitExceededError,
    InvalidArgumentsError,
    RateLimitedError,
)
from household_ai.models.risk import RiskLevel
from household_ai.models.trust import (
    LEVEL_DOWN_INCIDENT_THRESHOLD,
    LEVEL_UP_SUCCESS_COUNT,
    MAX_TRUST_LEVEL,
    MIN_SUCCESS_RATIO,
    MIN_TRUST_LEVEL,
    HouseholdAITrust,
    TrustDecision,
    TrustDecisionReason,
    TrustStats,
    TrustUpdateResult,
)
from household_ai.risk import RiskClassifier
from household_ai.services.storage import TrustStorageInterface


class TrustEvaluator:
    """
    Auto-approval decisions and per-household trust bookkeeping.
    """

    def __init__(
        self,
        storage: TrustStorageInterface,
        classifier: Optional[RiskClassifier] = None,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._classifier = classifier or RiskClassifier()
        self._settings = settings or get_settings().engine
        self._clock = clock or SystemClock()
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # DECISIONS
    # =========================================================================

    async def get_household_trust(self, household_id: str) -> HouseholdAITrust:
        """Load a household's trust, creating the conservative default if absent."""
        trust = await self._storage.get_trust(household_id)
        if trust is not None:
            return trust

        now = self._clock.now()
        default = HouseholdAITrust.for_level(
            household_id,
            self._settings.default_trust_level,
            created_at=now,
            updated_at=now,
        )
        trust = await self._storage.create_trust_if_absent(default)
        self._logger.info(
            "trust_created",
            household_id=household_id,
            trust_level=trust.trust_level,
        )
        return trust

    async def should_auto_approve(
        self,
        household_id: str,
        function_name: str,
        now: Optional[datetime] = None,
    ) -> TrustDecision:
        """May the assistant run `function_name` for this household right now?"""
        now = now or self._clock.now()
        config = self._classifier.classify(function_name)
        trust = await self.get_household_trust(household_id)
        in_window = len(trust.active_timestamps(now))

        def decide(approve: bool, reason: TrustDecisionReason, message: str) -> TrustDecision:
            decision = TrustDecision(
                approve=approve,
                reason=reason,
                message=message,
                function_name=function_name,
                risk_level=config.risk_level,
                trust_level=trust.trust_level,
                actions_in_window=in_window,
                window_limit=trust.max_actions_per_window,
            )
            self._logger.debug(
                "trust_decision",
                household_id=household_id,
                function_name=function_name,
                approve=approve,
                reason=reason.value,
            )
            return decision

        if in_window >= trust.max_actions_per_window:
            return decide(
                False,
                TrustDecisionReason.RATE_LIMITED,
                f"Rate limit reached ({trust.max_actions_per_window} actions "
                f"per {trust.window_seconds}s)",
            )

        if config.risk_level >= RiskLevel.CRITICAL:
            return decide(
                False,
                TrustDecisionReason.CRITICAL_RISK,
                "Critical actions always require confirmation",
            )

        if trust.require_confirmation_always:
            return decide(
                False,
                TrustDecisionReason.CONFIRMATION_REQUIRED,
                "Household requires confirmation for every action",
            )

        if config.forces_confirmation:
            return decide(
                False,
                TrustDecisionReason.CONFIRMATION_REQUIRED,
                f"{function_name} always requires confirmation",
            )

        if config.risk_level > trust.auto_approve_threshold:
            return decide(
                False,
                TrustDecisionReason.ABOVE_THRESHOLD,
                f"Risk {config.risk_level.label} is above the household's "
                f"auto-approve level ({trust.auto_approve_threshold.label})",
            )

        if config.risk_level >= RiskLevel.HIGH:
            today = len(trust.high_risk_actions_today(now))
            if today >= trust.max_high_risk_actions_per_day:
                return decide(
                    False,
                    TrustDecisionReason.RATE_LIMITED,
                    f"Daily limit reached ({trust.max_high_risk_actions_per_day} "
                    f"high risk actions per day)",
                )

        return decide(
            True,
            TrustDecisionReason.WITHIN_THRESHOLD,
            f"Risk {config.risk_level.label} is within the household's auto-approve level",
        )

    async def reserve_action_slot(
        self,
        household_id: str,
        now: Optional[datetime] = None,
        risk_level: RiskLevel = RiskLevel.LOW,
    ) -> None:
        """
        Atomically claim one slot of the rate window.

        HIGH risk actions also claim one of the day's HIGH risk slots.

        Raises:
            RateLimitedError: If the window (or the daily cap) is already full
        """
        now = now or self._clock.now()
        await self.get_household_trust(household_id)
        high_risk = risk_level >= RiskLevel.HIGH
        reserved = await self._storage.reserve_action_slot(
            household_id, now, self._settings.timestamp_history_limit, high_risk=high_risk
        )
        if reserved:
            return

        trust = await self.get_household_trust(household_id)
        window_full = len(trust.active_timestamps(now)) >= trust.max_actions_per_window
        if high_risk and not window_full:
            self._logger.warning(
                "daily_high_risk_limit_reached",
                household_id=household_id,
                limit=trust.max_high_risk_actions_per_day,
            )
            raise RateLimitedError(
                f"Daily limit reached ({trust.max_high_risk_actions_per_day} "
                f"high risk actions per day)",
                limit=trust.max_high_risk_actions_per_day,
                period="day",
                household_id=household_id,
            )

        self._logger.warning(
            "rate_limited",
            household_id=household_id,
            limit=trust.max_actions_per_window,
            window_seconds=trust.window_seconds,
        )
        raise RateLimitedError(
            f"Rate limit reached ({trust.max_actions_per_window} actions "
            f"per {trust.window_seconds}s)",
            limit=trust.max_actions_per_window,
            window_seconds=trust.window_seconds,
            household_id=household_id,
        )

    async def check_bulk_limit(self, household_id: str, item_count: int) -> None:
        """
        Raises:
            BulkLimitExceededError: If a proposal would carry too many actions
        """
        trust = await self.get_household_trust(household_id)
        if item_count > trust.max_items_per_proposal:
            raise BulkLimitExceededError(
                f"{item_count} actions exceed the limit of "
                f"{trust.max_items_per_proposal} per proposal",
                limit=trust.max_items_per_proposal,
                item_count=item_count,
            )

    # =========================================================================
    # ADAPTIVE TRUST
    # =========================================================================

    def _adapt_level(self, trust: HouseholdAITrust) -> None:
        if not self._settings.adaptive_trust_enabled:
            return

        if trust.incident_count >= LEVEL_DOWN_INCIDENT_THRESHOLD and trust.trust_level > MIN_TRUST_LEVEL:
            trust.apply_preset(trust.trust_level - 1)
            trust.incident_count = 0
            return

        level = trust.trust_level
        if (
            level < MAX_TRUST_LEVEL
            and trust.successful_actions >= LEVEL_UP_SUCCESS_COUNT[level]
            and trust.success_ratio >= MIN_SUCCESS_RATIO
        ):
            trust.apply_preset(level + 1)

    async def _record(self, household_id: str, mutate, event: str, adapt: bool = True) -> TrustUpdateResult:
        await self.get_household_trust(household_id)
        previous: dict[str, int] = {}

        def apply(trust: HouseholdAITrust) -> None:
            previous["level"] = trust.trust_level
            mutate(trust)
            if adapt:
                self._adapt_level(trust)

        trust = await self._storage.update_trust(household_id, apply)
        result = TrustUpdateResult(
            household_id=household_id,
            previous_trust_level=previous["level"],
            new_trust_level=trust.trust_level,
            message=(
                f"Trust level changed from {previous['level']} to {trust.trust_level}"
                if previous["level"] != trust.trust_level
                else f"Trust level unchanged ({trust.trust_level})"
            ),
        )

        log = self._logger.info if result.level_changed else self._logger.debug
        log(
            event,
            household_id=household_id,
            previous_trust_level=result.previous_trust_level,
            new_trust_level=result.new_trust_level,
        )
        return result

    async def record_success(
        self,
        household_id: str,
        now: Optional[datetime] = None,
        count_in_window: bool = True,
    ) -> TrustUpdateResult:
        """
        Count a successful action.

        count_in_window adds the execution time to the rate window; pass
        False when the slot was already reserved.
        """
        now = now or self._clock.now()
        history_limit = self._settings.timestamp_history_limit

        def mutate(trust: HouseholdAITrust) -> None:
            trust.successful_actions += 1
            trust.prune(now, history_limit)
            if count_in_window:
                trust.recent_action_timestamps.append(now)

        return await self._record(household_id, mutate, "trust_success_recorded")

    async def record_failure(self, household_id: str, now: Optional[datetime] = None) -> TrustUpdateResult:
        """Count a failed action as an incident."""
        now = now or self._clock.now()

        def mutate(trust: HouseholdAITrust) -> None:
            trust.failed_actions += 1
            trust.incident_count += 1
            trust.last_incident_at = now

        return await self._record(household_id, mutate, "trust_failure_recorded")

    async def record_rollback(self, household_id: str, now: Optional[datetime] = None) -> TrustUpdateResult:
        """
        Count an undo as an incident: the household disagreed with the assistant.

        The level itself is only re-evaluated on the next success or failure.
        """
        now = now or self._clock.now()

        def mutate(trust: HouseholdAITrust) -> None:
            trust.rolled_back_actions += 1
            trust.incident_count += 1
            trust.last_incident_at = now

        return await self._record(household_id, mutate, "trust_rollback_recorded", adapt=False)

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def set_trust_level(self, household_id: str, level: int) -> HouseholdAITrust:
        """Move a household to `level`, applying that level's preset limits."""
        if not MIN_TRUST_LEVEL <= level <= MAX_TRUST_LEVEL:
            raise InvalidArgumentsError(
                f"Trust level must be between {MIN_TRUST_LEVEL} and {MAX_TRUST_LEVEL}",
                level=level,
            )
        await self.get_household_trust(household_id)
        trust = await self._storage.update_trust(
            household_id, lambda t: t.apply_preset(level)
        )
        self._logger.info("trust_level_set", household_id=household_id, trust_level=level)
        return trust

    async def update_trust_limits(
        self,
        household_id: str,
        auto_approve_threshold: Optional[RiskLevel] = None,
        max_actions_per_window: Optional[int] = None,
        window_seconds: Optional[int] = None,
        max_items_per_proposal: Optional[int] = None,
        max_high_risk_actions_per_day: Optional[int] = None,
        require_confirmation_always: Optional[bool] = None,
    ) -> HouseholdAITrust:
        """Custom limits; they hold until the next level change."""
        changes = {
            "auto_approve_threshold": auto_approve_threshold,
            "max_actions_per_window": max_actions_per_window,
            "window_seconds": window_seconds,
            "max_items_per_proposal": max_items_per_proposal,
            "max_high_risk_actions_per_day": max_high_risk_actions_per_day,
            "require_confirmation_always": require_confirmation_always,
        }
        changes = {key: value for key, value in changes.items() if value is not None}

        for key in (
            "max_actions_per_window",
            "window_seconds",
            "max_items_per_proposal",
            "max_high_risk_actions_per_day",
        ):
            if key in changes and changes[key] < 1:
                raise InvalidArgumentsError(f"{key} must be at least 1", field=key)
        if "auto_approve_threshold" in changes:
            changes["auto_approve_threshold"] = RiskLevel(changes["auto_approve_threshold"])

        def mutate(trust: HouseholdAITrust) -> None:
            for key, value in changes.items():
                setattr(trust, key, value)

        await self.get_household_trust(household_id)
        trust = await self._storage.update_trust(household_id, mutate)
        self._logger.info(
            "trust_limits_updated",
            household_id=household_id,
            fields=sorted(changes),
        )
        return trust

    async def get_trust_stats(self, household_id: str, now: Optional[datetime] = None) -> TrustStats:
        now = now or self._clock.now()
        trust = await self.get_household_trust(household_id)
        return TrustStats(
            trust=trust,
            actions_in_window=len(trust.active_timestamps(now)),
            high_risk_actions_today=len(trust.high_risk_actions_today(now)),
            success_rate_percent=round(trust.success_ratio * 100),
        )
