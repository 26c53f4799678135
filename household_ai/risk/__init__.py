"""Risk classification package."""

from household_ai.risk.classifier import RiskClassifier, unknown_function_config

__all__ = ["RiskClassifier", "unknown_function_config"]
