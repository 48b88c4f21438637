"""
Health checks for liveness/readiness probes.

Checks:
- Ledger store reachability
- Notification outbox backlog
- Transactions waiting on a network confirmation
"""
from typing import Any, Dict

import structlog

from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import TransactionStatus

logger = structlog.get_logger(__name__)

# Outbox backlog above this means the relay is not keeping up
OUTBOX_BACKLOG_THRESHOLD = 1000


class HealthCheckError(Exception):
    """Raised when a health check fails."""


class HealthCheck:
    def __init__(self, store: LedgerStore, outbox_backlog_threshold: int = OUTBOX_BACKLOG_THRESHOLD):
        self.store = store
        self.outbox_backlog_threshold = outbox_backlog_threshold

    async def check_store(self) -> Dict[str, Any]:
        try:
            school = await self.store.get_school_settings()
        except Exception as e:
            logger.error("store_health_check_failed", error=str(e))
            raise HealthCheckError(f"Ledger store health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "ledger_store",
            "school": school.name,
            "current_term": school.current_term,
        }

    async def check_outbox(self) -> Dict[str, Any]:
        backlog = len(
            await self.store.list_unpublished_events(limit=self.outbox_backlog_threshold + 1)
        )
        if backlog > self.outbox_backlog_threshold:
            logger.warning("outbox_backlog_high", backlog=backlog)
            raise HealthCheckError(f"Outbox backlog above {self.outbox_backlog_threshold}")

        return {"status": "healthy", "service": "outbox", "backlog": backlog}

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks: Dict[str, Any] = {}
        all_healthy = True

        for name, check in (("ledger_store", self.check_store), ("outbox", self.check_outbox)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        if all_healthy:
            pending = await self.store.list_transactions(status=TransactionStatus.PENDING)
            checks["pending_transactions"] = len(pending)

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        return {"status": "alive", "message": "Application is running"}
