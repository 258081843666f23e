"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and orchestrate database operations.
"""

from nexustech.services.shards import credit_shards, debit_shards, monthly_allowance_reset
from nexustech.services.users import ensure_user

__all__ = [
    "ensure_user",
    "debit_shards",
    "credit_shards",
    "monthly_allowance_reset",
]
