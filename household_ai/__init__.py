"""
Household AI - Proposal & Trust Engine

The layer between the household assistant and the household data.
The assistant proposes; this package decides what may run on its own,
what needs a person to approve it, and how to take it back.

DESIGN PRINCIPLES:
1. AI proposes → Trust decides → Human approves what trust cannot
2. Fail closed: unknown functions are treated as critical
3. Nothing mutates without an audit entry written first
4. Partial success is reported, never hidden
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household AI Team"
