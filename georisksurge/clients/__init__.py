"""GeoRiskSurge clients package.

Event-store access only: no business logic in this layer. The client handles
cost estimation, retries, and row conversion.
"""

from georisksurge.clients.bigquery_client import (
    BigQueryClient,
    BudgetExceededError,
    QueryFailedError,
)

__all__ = [
    "BigQueryClient",
    "BudgetExceededError",
    "QueryFailedError",
]
