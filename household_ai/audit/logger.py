"""
Audit Logger

DESIGN DECISION: Every action the assistant attempts is logged.
This provides:
1. Complete traceability
2. The pre-state needed for undo
3. A household-visible history of what the assistant did

The audit logger:
- Writes the STARTED entry (with its snapshot) BEFORE the mutation runs
- Moves entries through their lifecycle with compare-and-set, so each
  transition happens once
- Logs every transition locally with structlog as well as persisting it

Unlike ordinary application logging, persistence failures are NOT
swallowed here: an action must never run without its audit entry.
"""

import logging
from typing import Any, Optional

import structlog

from household_ai.clock import Clock, SystemClock
from household_ai.config import AppSettings
from household_ai.exceptions import InvalidStateError, NotFoundError
from household_ai.models.audit import AIAuditLog, AuditSeverity, AuditStatus, EntitySnapshot
from household_ai.models.risk import RiskLevel
from household_ai.services.storage import AuditStorageInterface


_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

# Configure structlog for local logging
structlog.configure(
    processors=[*_SHARED_PROCESSORS, structlog.processors.JSONRenderer()],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(settings: AppSettings) -> None:
    """
    Apply application log settings.

    JSON lines by default; a console renderer when log_json is off.
    """
    logging.basicConfig(format="%(message)s", level=settings.log_level)
    logging.getLogger().setLevel(settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit service for AI actions.

    Writes entries to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence, undo and household visibility)
    """

    def __init__(
        self,
        storage: AuditStorageInterface,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence
            clock: Time source for started/completed/undone timestamps
        """
        self._storage = storage
        self._clock = clock or SystemClock()
        self._logger = structlog.get_logger(__name__)

    def _log(self, event: str, entry: AIAuditLog) -> None:
        log_dict = entry.to_log_dict()

        if entry.severity == AuditSeverity.ERROR:
            self._logger.error(event, **log_dict)
        elif entry.severity == AuditSeverity.WARNING:
            self._logger.warning(event, **log_dict)
        else:
            self._logger.info(event, **log_dict)

    async def start(
        self,
        household_id: str,
        function_name: str,
        arguments: dict[str, Any],
        risk_level: RiskLevel,
        is_reversible: bool,
        pre_state: Optional[EntitySnapshot] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        proposal_id: Optional[str] = None,
        action_id: Optional[str] = None,
    ) -> AIAuditLog:
        """
        Persist a STARTED entry for an action that is about to run.

        Raises:
            StorageError: If the entry could not be persisted. The caller
                must not run the action in that case.
        """
        entry = AIAuditLog(
            household_id=household_id,
            user_id=user_id,
            session_id=session_id,
            proposal_id=proposal_id,
            action_id=action_id,
            function_name=function_name,
            arguments=arguments,
            risk_level=risk_level,
            is_reversible=is_reversible,
            pre_state=pre_state,
            status=AuditStatus.STARTED,
            started_at=self._clock.now(),
        )
        await self._storage.append_entry(entry)
        self._log("ai_action_started", entry)
        return entry

    async def _transition(
        self,
        entry: AIAuditLog,
        target: AuditStatus,
        event: str,
        **changes: Any,
    ) -> AIAuditLog:
        if not entry.can_transition_to(target):
            raise InvalidStateError(
                f"Audit entry {entry.id} is {entry.status.value}, cannot become {target.value}",
                audit_log_id=entry.id,
                status=entry.status.value,
            )

        updated = entry.model_copy(update={"status": target, **changes})
        if not await self._storage.replace_entry(updated, expected_status=entry.status):
            raise InvalidStateError(
                f"Audit entry {entry.id} changed concurrently",
                audit_log_id=entry.id,
            )

        self._log(event, updated)
        return updated

    async def succeed(self, entry: AIAuditLog, result: Optional[dict[str, Any]] = None) -> AIAuditLog:
        """STARTED → SUCCEEDED."""
        return await self._transition(
            entry,
            AuditStatus.SUCCEEDED,
            "ai_action_succeeded",
            result=result,
            completed_at=self._clock.now(),
        )

    async def fail(self, entry: AIAuditLog, error_message: str) -> AIAuditLog:
        """STARTED → FAILED."""
        return await self._transition(
            entry,
            AuditStatus.FAILED,
            "ai_action_failed",
            error_message=error_message,
            completed_at=self._clock.now(),
        )

    async def mark_undone(self, entry: AIAuditLog, undone_by: str) -> AIAuditLog:
        """
        SUCCEEDED → UNDONE.

        Raises:
            InvalidStateError: If the entry was undone (or changed) meanwhile
        """
        return await self._transition(
            entry,
            AuditStatus.UNDONE,
            "ai_action_undone",
            undone_at=self._clock.now(),
            undone_by=undone_by,
        )

    async def get(self, audit_log_id: str, household_id: Optional[str] = None) -> AIAuditLog:
        """
        Fetch an entry.

        Raises:
            NotFoundError: If missing or owned by another household
        """
        entry = await self._storage.get_entry(audit_log_id)
        if entry is None or (household_id and entry.household_id != household_id):
            raise NotFoundError(
                f"Audit entry not found: {audit_log_id}",
                audit_log_id=audit_log_id,
            )
        return entry

    async def list_for_proposal(self, household_id: str, proposal_id: str) -> list[AIAuditLog]:
        """A proposal's entries in execution order."""
        entries = await self._storage.list_entries(
            household_id, proposal_id=proposal_id, limit=1000
        )
        # Storage lists newest first; reverse so equal timestamps keep insertion order
        return sorted(reversed(entries), key=lambda e: e.started_at)

    async def recent(
        self,
        household_id: str,
        status: Optional[AuditStatus] = None,
        limit: int = 50,
    ) -> list[AIAuditLog]:
        """A household's most recent entries, newest first."""
        return await self._storage.list_entries(household_id, status=status, limit=limit)
