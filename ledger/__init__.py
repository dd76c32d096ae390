"""
Culture Crunch Ledger - Source Package

The synchronized bookkeeping core behind the Culture Crunch dashboard:
transactions, subscriptions, GST and cash-flow figures, kept in a
Google Sheet and mirrored to a local cache.

DESIGN PRINCIPLES:
1. Local state is authoritative for the session
2. The remote store is reconciled, never waited on
3. GST is computed once, when a record is created
4. No failure here is fatal to the session
"""

__version__ = "1.0.0"
__author__ = "Culture Crunch Team"
