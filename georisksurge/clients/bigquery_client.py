"""BigQuery client for the GDELT events table.

Handles every call to the event store: dry-run cost estimation, the scan
budget guard, parameterized execution, and exponential backoff on transient
failures.

No business logic lives here. This client returns plain dict rows; mapping,
aggregation, and surge scoring happen in the analysis and agent layers.

BigQuery notes:
- Dry runs are free and report total_bytes_processed; always dry-run first
  and check the budget before executing.
- 429, 5xx, and quota-flavoured 403 responses are transient. Everything else
  is fatal.
- Missing Application Default Credentials surface as DefaultCredentialsError
  at client construction time.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from google.api_core import exceptions as gexc
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import bigquery

from config.defaults import (
    BQ_BACKOFF_BASE,
    BQ_BACKOFF_JITTER,
    BQ_MAX_RETRIES,
    FREE_TIB,
    MAX_SCAN_GB,
    PRICE_PER_TIB,
)
from georisksurge.models.baseline import CostEstimate

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GIB = 1024 ** 3
_TIB = 1024 ** 4

# HTTP-mapped exceptions that are retried
_TRANSIENT_ERRORS = (
    gexc.TooManyRequests,
    gexc.InternalServerError,
    gexc.BadGateway,
    gexc.ServiceUnavailable,
    gexc.GatewayTimeout,
)

# 403 reasons that mean "slow down" rather than "not allowed"
_QUOTA_REASONS = frozenset({"quotaExceeded", "rateLimitExceeded"})


class BudgetExceededError(Exception):
    """Raised when a dry-run estimate exceeds the configured scan or spend limit."""

    def __init__(self, limit_name: str, estimate: float, limit: float) -> None:
        self.limit_name = limit_name
        self.estimate = estimate
        self.limit = limit
        super().__init__(
            f"Estimated {limit_name} {estimate:.2f} exceeds limit {limit:.2f} "
            f"(raise --{limit_name} if the scan is intended)"
        )


class QueryFailedError(Exception):
    """Raised when a query fails fatally or exhausts its retries."""


def estimate_cost(bytes_processed: int, price_per_tib: float = PRICE_PER_TIB) -> CostEstimate:
    """Convert a byte count into GiB, TiB, and on-demand USD."""
    tib = bytes_processed / _TIB
    return CostEstimate(
        bytes_processed=int(bytes_processed),
        gb=bytes_processed / _GIB,
        tib=tib,
        usd=tib * price_per_tib,
    )


def project_weekly_cost(
    bytes_per_week: int,
    weeks: int,
    price_per_tib: float = PRICE_PER_TIB,
    free_tib: float = FREE_TIB,
) -> Dict[str, float]:
    """Project the scan cost of running the weekly query ``weeks`` times.

    Returns:
        Dict with bytes_per_week, tib_per_week, weeks, projected_tib,
        projected_usd, and usd_after_free_tier (never negative).
    """
    tib_per_week = bytes_per_week / _TIB
    projected_tib = tib_per_week * weeks
    return {
        "bytes_per_week": int(bytes_per_week),
        "tib_per_week": tib_per_week,
        "weeks": weeks,
        "projected_tib": projected_tib,
        "projected_usd": projected_tib * price_per_tib,
        "usd_after_free_tier": max(0.0, projected_tib - free_tib) * price_per_tib,
    }


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    if isinstance(exc, gexc.Forbidden):
        reasons = {err.get("reason") for err in (exc.errors or []) if isinstance(err, dict)}
        return bool(reasons & _QUOTA_REASONS)
    return False


class BigQueryClient:
    """Thin wrapper around google.cloud.bigquery.Client with a cost guard.

    Args:
        project: GCP billing project; None lets the library infer it.
        max_gb: Abort when a dry run reports more GiB than this.
        max_usd: Optional spend ceiling per query.
        price_per_tib: On-demand USD per TiB scanned.
        max_retries: Retry attempts on transient failures.
        backoff_base: Base seconds for exponential backoff (doubles per attempt).
        backoff_jitter: Upper bound of uniform random jitter added to each wait.
        client: Pre-built bigquery.Client (tests inject a mock here).
    """

    def __init__(
        self,
        project: Optional[str] = None,
        max_gb: float = MAX_SCAN_GB,
        max_usd: Optional[float] = None,
        price_per_tib: float = PRICE_PER_TIB,
        max_retries: int = BQ_MAX_RETRIES,
        backoff_base: float = BQ_BACKOFF_BASE,
        backoff_jitter: float = BQ_BACKOFF_JITTER,
        client: Optional[bigquery.Client] = None,
    ) -> None:
        self.project = project
        self.max_gb = max_gb
        self.max_usd = max_usd
        self.price_per_tib = price_per_tib
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self._client = client
        self.total_bytes_processed = 0

    @classmethod
    def from_config(cls, config: Any) -> "BigQueryClient":
        """Build a client from the PipelineConfig budget and retry settings."""
        return cls(
            project=config.bq_project_id,
            max_gb=config.max_gb,
            max_usd=config.max_usd,
            price_per_tib=config.price_per_tib,
            max_retries=config.bq_max_retries,
            backoff_base=config.bq_backoff_base,
            backoff_jitter=config.bq_backoff_jitter,
        )

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            try:
                self._client = bigquery.Client(project=self.project)
            except DefaultCredentialsError as exc:
                raise QueryFailedError(
                    "BigQuery credentials not found; set GOOGLE_APPLICATION_CREDENTIALS"
                ) from exc
        return self._client

    @staticmethod
    def _job_config(params: Optional[Mapping[str, str]], dry_run: bool) -> bigquery.QueryJobConfig:
        query_parameters = [
            bigquery.ScalarQueryParameter(name, "STRING", value)
            for name, value in (params or {}).items()
        ]
        return bigquery.QueryJobConfig(
            dry_run=dry_run,
            use_query_cache=False,
            query_parameters=query_parameters,
        )

    def _with_retry(self, call: Callable[[], T], what: str) -> T:
        """Run ``call`` with exponential backoff on transient BigQuery errors.

        Raises:
            QueryFailedError: On a fatal error or once retries are exhausted.
        """
        for attempt in range(self.max_retries + 1):
            try:
                return call()
            except gexc.GoogleAPICallError as exc:
                if not _is_transient(exc):
                    logger.error("BigQuery %s failed permanently: %s", what, exc)
                    raise QueryFailedError(f"BigQuery {what} failed: {exc}") from exc
                if attempt >= self.max_retries:
                    logger.error("BigQuery %s: exhausted %d retries", what, self.max_retries)
                    raise QueryFailedError(
                        f"BigQuery {what} failed after {self.max_retries} retries: {exc}"
                    ) from exc
                wait = self.backoff_base * (2 ** attempt) + random.uniform(0, self.backoff_jitter)
                logger.warning(
                    "BigQuery %s transient error (%s); retrying in %.1fs (attempt %d/%d)",
                    what,
                    exc.__class__.__name__,
                    wait,
                    attempt + 1,
                    self.max_retries,
                )
                time.sleep(wait)
        raise QueryFailedError(f"BigQuery {what} failed")   # unreachable with max_retries >= 0

    def dry_run(self, sql: str, params: Optional[Mapping[str, str]] = None) -> CostEstimate:
        """Estimate the scan of ``sql`` without running it."""
        job = self._with_retry(
            lambda: self.client.query(sql, job_config=self._job_config(params, dry_run=True)),
            "dry run",
        )
        estimate = estimate_cost(int(job.total_bytes_processed or 0), self.price_per_tib)
        logger.info("Dry run: %.2f GB scanned (~$%.4f)", estimate.gb, estimate.usd)
        return estimate

    def check_budget(self, estimate: CostEstimate) -> None:
        """Raise BudgetExceededError when ``estimate`` breaks max_gb or max_usd."""
        if estimate.gb > self.max_gb:
            raise BudgetExceededError("max_gb", estimate.gb, self.max_gb)
        if self.max_usd is not None and estimate.usd > self.max_usd:
            raise BudgetExceededError("max_usd", estimate.usd, self.max_usd)

    def query(
        self,
        sql: str,
        params: Optional[Mapping[str, str]] = None,
        dry_run_only: bool = False,
    ) -> Tuple[List[Dict[str, Any]], CostEstimate]:
        """Dry-run, check the budget, then execute ``sql``.

        Args:
            sql: Standard SQL text.
            params: STRING query parameters (e.g. start_date / end_date).
            dry_run_only: Stop after the estimate and return no rows.

        Returns:
            Tuple of (rows as dicts, dry-run CostEstimate).

        Raises:
            BudgetExceededError: If the estimate exceeds a configured limit.
            QueryFailedError: On fatal errors or exhausted retries.
        """
        estimate = self.dry_run(sql, params)
        self.check_budget(estimate)
        if dry_run_only:
            return [], estimate

        def _execute() -> List[Dict[str, Any]]:
            job = self.client.query(sql, job_config=self._job_config(params, dry_run=False))
            result = job.result()
            self.total_bytes_processed += int(job.total_bytes_processed or 0)
            return [dict(row.items()) for row in result]

        rows = self._with_retry(_execute, "query")
        logger.info("Query returned %d rows", len(rows))
        return rows, estimate

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> "BigQueryClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
