"""
Risk Models

Every household function carries a fixed risk level and a reversibility
flag. These drive auto-approval and undo.

DESIGN DECISION: RiskLevel is an int-valued enum so that comparisons use
the natural total order LOW < MEDIUM < HIGH < CRITICAL. The numeric
values (1-4) match what is stored in the audit log and trust tables.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(int, Enum):
    """
    Ordinal risk classification.

    LOW:      read-mostly or trivial toggles, safe to auto-run
    MEDIUM:   ordinary edits, auto-run with undo
    HIGH:     destructive or wide-reaching edits, needs confirmation
    CRITICAL: never auto-approved under any trust configuration
    """
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.lower()


class FunctionConfig(BaseModel):
    """
    Static risk metadata for one invocable function.

    Built once at process start from the function registry and never
    mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Unique function identifier"
    )
    risk_level: RiskLevel = Field(
        ...,
        description="Fixed risk level of the function"
    )
    is_reversible: bool = Field(
        ...,
        description="Whether the captured pre-state allows undo"
    )
    requires_confirmation_above: RiskLevel = Field(
        default=RiskLevel.CRITICAL,
        description=(
            "Actions are only auto-approvable when their risk is strictly "
            "below this level, regardless of household trust"
        )
    )
    description: str = Field(
        default="",
        description="Human-readable description (English)"
    )
    description_es: str = Field(
        default="",
        description="Human-readable description (Spanish)"
    )
    collection: Optional[str] = Field(
        default=None,
        description="Household collection the function mutates"
    )

    @property
    def forces_confirmation(self) -> bool:
        """True when this function can never be auto-approved."""
        return self.risk_level >= self.requires_confirmation_above


UNKNOWN_FUNCTION_RISK = RiskLevel.CRITICAL
