"""
Personal Ledger - Source Package

A personal-finance ledger: income, expenses and transfers across asset
and liability accounts, with derived balances, net worth, budget health
and income-stability analytics.

DESIGN PRINCIPLES:
1. Every balance change goes through one rule table
2. Every mutation is all-or-nothing
3. Fail early, fail visibly
4. The read side never writes
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Ledger Team"
