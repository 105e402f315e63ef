"""
flatledger - Source Package

Reconciliation and obligation engine for a shared household.
Bank transactions are matched to flatmates, landlords and expense
categories, and each flatmate's weekly rent obligations are bucketed
into Saturday-to-Friday weeks with a running balance.

DESIGN PRINCIPLES:
1. Matching is pure and repeatable
2. Manual overrides always win over automation
3. Bad user input degrades, it never halts a batch
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "flatledger Team"
