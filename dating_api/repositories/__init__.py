"""
Persistence adapters.

Services depend on these repositories/stores instead of opening SQLAlchemy
sessions themselves; the quota store is additionally swappable behind the
QuotaStore interface.
"""
