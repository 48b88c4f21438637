"""
Receipt number generation.

Format: {PREFIX}-{6 digits}, e.g. MTN-482913, AIR-100276, RCP-553001.
Receipt numbers are the only payment identifier shown to parents, so they
must be unique across every provider. Candidates that already exist are
discarded and regenerated.
"""

import random
from typing import Optional

import structlog

from schoolup_payments.core.store import LedgerStore
from schoolup_payments.exceptions import ReceiptGenerationError

logger = structlog.get_logger(__name__)

SUFFIX_MIN = 100000
SUFFIX_MAX = 999999


class ReceiptNumberGenerator:
    """Random-suffix receipt numbers, checked against the ledger."""

    def __init__(self, rng: Optional[random.Random] = None, max_attempts: int = 10):
        """
        Args:
            rng: Random source (seed it in tests for deterministic receipts)
            max_attempts: Candidates tried before giving up
        """
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts

    def candidate(self, prefix: str) -> str:
        return f"{prefix}-{self.rng.randint(SUFFIX_MIN, SUFFIX_MAX)}"

    async def generate(self, prefix: str, store: LedgerStore) -> str:
        """
        Generate a receipt number not yet used in the ledger.

        Raises:
            ReceiptGenerationError: If every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            receipt_number = self.candidate(prefix)
            if not await store.receipt_exists(receipt_number):
                return receipt_number

            logger.warning(
                "receipt_number_collision",
                receipt_number=receipt_number,
                attempt=attempt,
            )

        raise ReceiptGenerationError(
            f"No free {prefix} receipt number after {self.max_attempts} attempts",
            prefix=prefix,
        )
