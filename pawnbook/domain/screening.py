"""KYC screening decision capture (watchlist, PEP, adverse media)"""

import logging
from typing import Dict, Optional, Protocol

from pawnbook.domain.enums import ScreeningCheck, ScreeningStatus, WatchlistStatus
from pawnbook.domain.exceptions import ValidationError
from pawnbook.domain.models import ScreeningCompleted, ScreeningResult
from pawnbook.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class ScreeningProvider(Protocol):
    async def check(self, check: ScreeningCheck, customer_name: str) -> ScreeningResult:
        ...


class ScreeningWorkflow:
    """
    Three independent checks, each pending until searched or overridden.

    The wizard may proceed only when every check is settled and none is blocked.
    Nothing here writes to the customer record; call completion_event() and hand
    the event to the customer service when that integration is enabled.
    """

    def __init__(self, customer_name: str = ""):
        self.customer_name = customer_name
        self.results: Dict[ScreeningCheck, ScreeningResult] = {
            check: ScreeningResult() for check in ScreeningCheck
        }

    def status_of(self, check: ScreeningCheck) -> ScreeningStatus:
        return ScreeningStatus(self.results[check].status)

    def set_manual(self, check: ScreeningCheck, status: ScreeningStatus, notes: Optional[str] = None) -> ScreeningResult:
        """Operator override; the result is kept even if a search ran before"""
        check = ScreeningCheck.parse(check, "check")
        status = ScreeningStatus.parse(status, "status")
        result = ScreeningResult(status=status.value, notes=notes, manual=True)
        self.results[check] = result
        logger.info(
            "Screening status set manually",
            extra={"check": check.value, "screening_status": status.value},
        )
        return result

    async def run_check(
        self,
        check: ScreeningCheck,
        provider: ScreeningProvider,
        customer_name: Optional[str] = None,
    ) -> ScreeningResult:
        check = ScreeningCheck.parse(check, "check")
        name = customer_name or self.customer_name
        if not name:
            raise ValidationError("Customer name is required for screening", {"customer_name": "required"})
        result = await provider.check(check, name)
        previous = self.results[check]
        if previous.notes and not result.notes:
            result.notes = previous.notes
        self.results[check] = result
        return result

    async def run_all(self, provider: ScreeningProvider, customer_name: Optional[str] = None) -> Dict[ScreeningCheck, ScreeningResult]:
        for check in ScreeningCheck:
            await self.run_check(check, provider, customer_name)
        return dict(self.results)

    @property
    def all_completed(self) -> bool:
        return all(r.status != ScreeningStatus.PENDING.value for r in self.results.values())

    @property
    def has_blocked(self) -> bool:
        return any(r.status == ScreeningStatus.BLOCKED.value for r in self.results.values())

    @property
    def can_proceed(self) -> bool:
        return self.all_completed and not self.has_blocked

    def gate_errors(self) -> Dict[str, str]:
        errors = {}
        for check, result in self.results.items():
            if result.status == ScreeningStatus.PENDING.value:
                errors[f"screening.{check.value}"] = "check has not been completed"
            elif result.status == ScreeningStatus.BLOCKED.value:
                errors[f"screening.{check.value}"] = "customer is blocked"
        return errors

    def watchlist_outcome(self) -> WatchlistStatus:
        """Most severe settled outcome across all checks"""
        if not self.all_completed:
            raise ValidationError("Screening is not complete", self.gate_errors())
        if self.has_blocked:
            return WatchlistStatus.BLOCKED
        if any(r.status == ScreeningStatus.FLAGGED.value for r in self.results.values()):
            return WatchlistStatus.FLAGGED
        return WatchlistStatus.CLEAR

    def completion_event(self) -> ScreeningCompleted:
        outcome = self.watchlist_outcome()
        pep_status = self.results[ScreeningCheck.PEP].status
        notes = "; ".join(
            f"{check.value}: {result.notes or result.details}"
            for check, result in self.results.items()
            if result.notes or result.details
        )
        return ScreeningCompleted(
            customer_name=self.customer_name,
            watchlist_status=outcome.value,
            is_pep=pep_status in (ScreeningStatus.FLAGGED.value, ScreeningStatus.BLOCKED.value),
            notes=notes,
            completed_at=utcnow(),
        )

    def reset(self) -> None:
        self.results = {check: ScreeningResult() for check in ScreeningCheck}
