"""Audit logging package."""

from household_ai.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
