"""
Risk Classifier

Maps a function name to its fixed risk metadata.

DESIGN DECISION: Classification is a pure lookup. There is no heuristic
risk scoring: a function's risk is declared once, in the registry, and
copied onto every proposed action. Unknown functions are treated as the
most dangerous thing the assistant could do.
"""

from types import MappingProxyType
from typing import Mapping, Optional

from household_ai.functions import FunctionRegistry, default_registry
from household_ai.models.risk import UNKNOWN_FUNCTION_RISK, FunctionConfig, RiskLevel


def unknown_function_config(function_name: str) -> FunctionConfig:
    """Conservative config for names not in the registry."""
    return FunctionConfig(
        name=function_name or "unknown",
        risk_level=UNKNOWN_FUNCTION_RISK,
        is_reversible=False,
        requires_confirmation_above=RiskLevel.LOW,
        description="Unknown function",
        description_es="Función desconocida",
    )


class RiskClassifier:
    """Immutable function → FunctionConfig table."""

    def __init__(self, registry: Optional[FunctionRegistry] = None):
        registry = registry or default_registry()
        self._table: Mapping[str, FunctionConfig] = MappingProxyType(dict(registry.configs))

    def classify(self, function_name: str) -> FunctionConfig:
        """Risk metadata for a function (CRITICAL and irreversible if unknown)."""
        config = self._table.get(function_name)
        if config is None:
            return unknown_function_config(function_name)
        return config

    def is_known(self, function_name: str) -> bool:
        return function_name in self._table

    @property
    def table(self) -> Mapping[str, FunctionConfig]:
        return self._table
