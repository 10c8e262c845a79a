"""
HMS Finance - Source Package

Event-based collection/expense/loan tracking with an approval workflow
for limited-trust users.

DESIGN PRINCIPLES:
1. Assistant proposes → Admin approves → Store changes
2. Every read shows committed data plus pending proposals
3. Approval applies the effect first, then clears the request
4. Proposals carry whole records, never diffs
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "HMS Finance Team"
