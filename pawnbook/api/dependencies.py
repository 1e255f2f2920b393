"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from pawnbook.config import settings
from pawnbook.domain.screening import ScreeningProvider
from pawnbook.infrastructure.clients.screening import build_screening_provider
from pawnbook.infrastructure.database.session import UnitOfWork, get_db
from pawnbook.services.customers import CustomerVersioningService
from pawnbook.services.export import CsvExporter
from pawnbook.services.loans import LoanLifecycleService
from pawnbook.services.submission import LoanSubmissionService
from pawnbook.services.transactions import TransactionRecorder
from pawnbook.utils.date_utils import Clock, utcnow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> Clock:
    """Source of 'now' for every service; overridden in tests"""
    return utcnow


def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    """One unit of work per request, shared by every service below"""
    return UnitOfWork(db)


def get_screening_provider() -> ScreeningProvider:
    """Provide the configured screening provider"""
    return build_screening_provider()


def get_customer_service(
    uow: UnitOfWork = Depends(get_uow), clock: Clock = Depends(get_clock)
) -> CustomerVersioningService:
    return CustomerVersioningService(uow, clock=clock, config=settings)


def get_recorder(uow: UnitOfWork = Depends(get_uow), clock: Clock = Depends(get_clock)) -> TransactionRecorder:
    return TransactionRecorder(uow, clock=clock, config=settings)


def get_loan_service(
    uow: UnitOfWork = Depends(get_uow),
    recorder: TransactionRecorder = Depends(get_recorder),
    clock: Clock = Depends(get_clock),
) -> LoanLifecycleService:
    return LoanLifecycleService(uow, recorder=recorder, clock=clock, config=settings)


def get_submission_service(
    uow: UnitOfWork = Depends(get_uow),
    customers: CustomerVersioningService = Depends(get_customer_service),
    loans: LoanLifecycleService = Depends(get_loan_service),
    recorder: TransactionRecorder = Depends(get_recorder),
    clock: Clock = Depends(get_clock),
) -> LoanSubmissionService:
    return LoanSubmissionService(uow, customers, loans, recorder, clock=clock, config=settings)


def get_exporter(uow: UnitOfWork = Depends(get_uow), clock: Clock = Depends(get_clock)) -> CsvExporter:
    return CsvExporter(uow, clock=clock, config=settings)
