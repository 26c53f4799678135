"""
Household Functions Package

The registry of functions the assistant can invoke, with their risk
metadata, argument schemas and record mutations.
"""

from household_ai.functions.registry import (
    FunctionArgs,
    FunctionContext,
    FunctionRegistry,
    HouseholdFunction,
    Mutation,
    RecordTarget,
    restore_snapshot,
)
from household_ai.functions.household import (
    default_registry,
    find_by_name,
    household_functions,
)

__all__ = [
    # Registry
    "FunctionArgs",
    "FunctionContext",
    "FunctionRegistry",
    "HouseholdFunction",
    "Mutation",
    "RecordTarget",
    "restore_snapshot",
    # Household functions
    "default_registry",
    "find_by_name",
    "household_functions",
]
