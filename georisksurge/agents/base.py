"""BaseAgent ABC and AgentStatus constants for GeoRiskSurge.

Every pipeline agent subclasses BaseAgent and implements run(). Agents read
configuration from PipelineContext and return a typed result; the
orchestrator stores the result back on the context.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from georisksurge.models.pipeline import PipelineContext

logger = logging.getLogger(__name__)


class AgentStatus:
    """Status codes used in every agent result's ``status`` field."""

    OK = "OK"
    PARTIAL = "PARTIAL"        # Some countries or files failed; the rest were written
    CRITICAL = "CRITICAL"      # Nothing usable was produced
    CANCELLED = "CANCELLED"    # Stopped by SIGTERM between countries
    FAILED = "FAILED"          # run() raised; recorded by the pipeline


class BaseAgent(ABC):
    """Abstract base class for all GeoRiskSurge pipeline agents.

    Agents keep no pipeline data between runs; everything flows through
    PipelineContext. Clients an agent creates itself are closed before run()
    returns.
    """

    name: str = "BaseAgent"
    version: str = "1.0.0"

    @abstractmethod
    def run(self, context: "PipelineContext") -> Any:
        """Execute the agent and return a typed result.

        Args:
            context: Shared pipeline context with configuration and upstream results.

        Returns:
            A typed agent result dataclass (subclass-specific).
        """

    def validate_output(self, result: Any) -> bool:
        """Post-run validation hook; override for agent-specific checks."""
        return result is not None

    def reset(self) -> None:
        """Clear internal state for re-use. Override if the agent caches anything."""

    def _run_timed(self, context: "PipelineContext") -> Any:
        """Execute run() and log elapsed time and status."""
        start = time.monotonic()
        try:
            result = self.run(context)
        except Exception as exc:
            logger.error(
                "Agent %s failed after %.2fs: %s",
                self.name,
                time.monotonic() - start,
                exc,
                exc_info=True,
            )
            raise
        logger.info(
            "Agent %s completed in %.2fs (status=%s)",
            self.name,
            time.monotonic() - start,
            getattr(result, "status", "?"),
        )
        return result
