"""Household trust package."""

from household_ai.trust.evaluator import TrustEvaluator

__all__ = ["TrustEvaluator"]
