"""Client-side cache of triage credits keyed by credit id.

The server is the source of truth. Local updates after a confirmed allocate
or undo keep the screen responsive; the next ``reconcile`` overwrites
whatever the cache holds with the server's view.
"""
import logging
from typing import Dict, List, Optional, Set

from schemas.credit import AllocateResponse, CreditItem, CreditSubAllocation, UnallocatedCreditsResponse

logger = logging.getLogger(__name__)


def _state(item: CreditItem) -> str:
    if item.remainingAmount <= 0:
        return "allocated"
    return "partial" if item.allocations else "unallocated"


class CreditCache:
    def __init__(self):
        self._credits: Dict[int, CreditItem] = {}

    def __len__(self) -> int:
        return len(self._credits)

    def __contains__(self, credit_id: int) -> bool:
        return credit_id in self._credits

    def get(self, credit_id: int) -> Optional[CreditItem]:
        return self._credits.get(credit_id)

    def open_credits(self) -> List[CreditItem]:
        """Credits with money left, newest first."""
        items = [c for c in self._credits.values() if c.remainingAmount > 0]
        return sorted(items, key=lambda c: (c.date, c.id), reverse=True)

    def allocated_credits(self) -> List[CreditItem]:
        items = [c for c in self._credits.values() if c.remainingAmount <= 0]
        return sorted(items, key=lambda c: (c.date, c.id), reverse=True)

    def reconcile(self, response: UnallocatedCreditsResponse) -> Set[int]:
        """Replace the cache with the server's view.

        Returns the ids whose cached entry differed from the server (changed,
        added or dropped), which is where an optimistic update had drifted.
        """
        fresh = {item.id: item for item in list(response.credits) + list(response.allocatedCredits)}
        drifted = {
            credit_id
            for credit_id in set(self._credits) | set(fresh)
            if self._credits.get(credit_id) != fresh.get(credit_id)
        }
        self._credits = fresh
        if drifted:
            logger.debug(f"Reconciled credit cache: {len(drifted)} entries updated")
        return drifted

    def apply_allocation(self, credit_id: int, response: AllocateResponse) -> Optional[CreditItem]:
        """Record a confirmed allocation locally until the next reconcile."""
        item = self._credits.get(credit_id)
        if item is None:
            return None
        record = response.allocation
        chip = CreditSubAllocation(
            id=record.id, type=record.allocation_type, amount=record.amount, label=record.label
        )
        updated = item.model_copy(
            update={
                "allocations": list(item.allocations) + [chip],
                "allocatedAmount": round(item.allocatedAmount + record.amount, 2),
                "remainingAmount": response.remainingAmount,
            }
        )
        updated = updated.model_copy(update={"state": _state(updated)})
        self._credits[credit_id] = updated
        return updated

    def apply_revert(self, allocation_id: int) -> Optional[CreditItem]:
        """Drop an undone allocation chip and give its amount back locally."""
        for credit_id, item in self._credits.items():
            chip = next((a for a in item.allocations if a.id == allocation_id), None)
            if chip is None:
                continue
            updated = item.model_copy(
                update={
                    "allocations": [a for a in item.allocations if a.id != allocation_id],
                    "allocatedAmount": round(max(item.allocatedAmount - chip.amount, 0), 2),
                    "remainingAmount": round(item.remainingAmount + chip.amount, 2),
                }
            )
            updated = updated.model_copy(update={"state": _state(updated)})
            self._credits[credit_id] = updated
            return updated
        return None
