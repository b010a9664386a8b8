"""Performance statistics services.

Catalog lookups, form assembly, the statistic ledger and report aggregation
over a SQLite database migrated by :mod:`performance.schema`.
"""
