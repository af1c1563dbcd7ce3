"""
CoSpend - Source Package

A two-person shared expense tracker: record expenses by hand or from a
photographed receipt, and see who owes whom for the current month.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → Store records
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation is audited
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "CoSpend Team"
