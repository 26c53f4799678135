"""Proposal lifecycle package."""

from household_ai.proposals.store import ProposalStore

__all__ = ["ProposalStore"]
