"""
Credit charging utilities.

Charge credits once per logical generation job. The real ledger lives outside
this backend; InMemoryBillingLedger implements the same contract for local
runs and tests.
"""

import asyncio
from typing import Dict, Optional, Protocol

from shared.errors import BudgetExceededError, ValidationError
from shared.logging import get_logger

logger = get_logger("billing")


class BillingLedger(Protocol):
    """Contract of the external billing collaborator."""

    async def has_charged(self, job_key: str) -> bool:
        ...

    async def check_credits(self, cost: int) -> bool:
        ...

    async def charge_once(self, job_key: str, cost: int) -> bool:
        ...


class InMemoryBillingLedger:
    """Idempotent per-job charging with an optional credit balance."""

    def __init__(self, balance: Optional[int] = None):
        """
        Args:
            balance: Available credits; None means unlimited
        """
        self._balance = balance
        self._charges: Dict[str, int] = {}
        # Locks per job_key for concurrent-safe operations
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_manager = asyncio.Lock()  # Lock for managing the locks dict

    async def _get_lock(self, job_key: str) -> asyncio.Lock:
        """Get or create lock for a job_key."""
        async with self._lock_manager:
            if job_key not in self._locks:
                self._locks[job_key] = asyncio.Lock()
            return self._locks[job_key]

    @property
    def balance(self) -> Optional[int]:
        return self._balance

    @property
    def charges(self) -> Dict[str, int]:
        return dict(self._charges)

    async def has_charged(self, job_key: str) -> bool:
        return job_key in self._charges

    async def check_credits(self, cost: int) -> bool:
        """True when the balance can cover `cost`."""
        return self._balance is None or self._balance >= cost

    async def charge_once(self, job_key: str, cost: int) -> bool:
        """
        Charge `cost` credits for `job_key` unless it was already charged.

        Returns:
            True if a charge was recorded, False if the key was already charged

        Raises:
            ValidationError: If cost is negative or job_key is empty
            BudgetExceededError: If the balance cannot cover the charge
        """
        if not job_key:
            raise ValidationError("job_key is required for charging")
        if cost < 0:
            raise ValidationError(f"Cost cannot be negative: {cost}")

        lock = await self._get_lock(job_key)
        async with lock:
            if job_key in self._charges:
                logger.info(
                    "Generation already charged, skipping",
                    extra={"job_key": job_key, "cost": cost}
                )
                return False

            if self._balance is not None:
                if self._balance < cost:
                    raise BudgetExceededError(
                        f"Insufficient credits: need {cost}, have {self._balance}"
                    )
                self._balance -= cost

            self._charges[job_key] = cost
            logger.info(
                "Charged generation",
                extra={"job_key": job_key, "cost": cost, "remaining": self._balance}
            )
            return True
