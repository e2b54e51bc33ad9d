"""
Family Finance - Source Package

A household finance tracker: transactions, monthly budgets,
savings goals and family-member profiles.

DESIGN PRINCIPLES:
1. Dashboard figures are derived, never stored
2. Validate at the boundary, reject loudly
3. Local state changes only after storage confirms
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Finance Team"
