"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from pawnbook.api.dependencies import get_clock
from pawnbook.api.main import create_app
from pawnbook.config import Settings
from pawnbook.domain import calculator
from pawnbook.domain.wizard import LoanWizard, WizardRules
from pawnbook.infrastructure.database.models import Base, DimCustomer, DimLoan
from pawnbook.infrastructure.database.session import UnitOfWork, get_db
from pawnbook.services.customers import CustomerVersioningService
from pawnbook.services.loans import LoanLifecycleService
from pawnbook.services.submission import LoanSubmissionService
from pawnbook.services.transactions import TransactionRecorder


# Test database: one shared in-memory connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    # SQLAlchemy emits BEGIN itself so SAVEPOINTs work
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START = datetime(2026, 1, 19, 10, 0, 0)


class FakeClock:
    """Callable clock the tests move forward by hand"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(days=days, **kwargs)
        return self.now

    def today(self) -> date:
        return self.now.date()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def config() -> Settings:
    """Defaults without reading a local .env"""
    return Settings(_env_file=None)


@pytest.fixture
def uow(db: Session) -> UnitOfWork:
    return UnitOfWork(db)


@pytest.fixture
def recorder(uow: UnitOfWork, clock: FakeClock, config: Settings) -> TransactionRecorder:
    return TransactionRecorder(uow, clock=clock, config=config)


@pytest.fixture
def customer_service(uow: UnitOfWork, clock: FakeClock, config: Settings) -> CustomerVersioningService:
    return CustomerVersioningService(uow, clock=clock, config=config)


@pytest.fixture
def loan_service(
    uow: UnitOfWork, recorder: TransactionRecorder, clock: FakeClock, config: Settings
) -> LoanLifecycleService:
    return LoanLifecycleService(uow, recorder=recorder, clock=clock, config=config)


@pytest.fixture
def submission_service(
    uow: UnitOfWork,
    customer_service: CustomerVersioningService,
    loan_service: LoanLifecycleService,
    recorder: TransactionRecorder,
    clock: FakeClock,
    config: Settings,
) -> LoanSubmissionService:
    return LoanSubmissionService(uow, customer_service, loan_service, recorder, clock=clock, config=config)


@pytest.fixture
def customer_fields() -> Dict[str, Any]:
    """A complete new-customer registration"""
    return {
        "first_name": "Juan",
        "middle_name": "Santos",
        "last_name": "Dela Cruz",
        "date_of_birth": date(1985, 3, 14),
        "id_type": "drivers_license",
        "id_number": "N01-12-345678",
        "phone": "09171234567",
        "address_line_1": "123 Rizal St",
        "barangay": "San Antonio",
        "city_municipality": "Makati",
        "province": "Metro Manila",
        "postal_code": "1203",
        "photo": "photos/face.jpg",
        "id_front_photo": "photos/id-front.jpg",
        "id_back_photo": "photos/id-back.jpg",
    }


@pytest.fixture
def make_customer(
    customer_service: CustomerVersioningService, customer_fields: Dict[str, Any]
) -> Callable[..., DimCustomer]:
    def _make(**overrides: Any) -> DimCustomer:
        return customer_service.create_customer({**customer_fields, **overrides})

    return _make


@pytest.fixture
def electronics_item() -> Dict[str, Any]:
    return {
        "category": "electronics",
        "brand": "Apple",
        "model": "MacBook Air",
        "item_condition": "good",
        "appraisal_value": 40_000,
        "photos": ["items/1.jpg", "items/2.jpg"],
    }


@pytest.fixture
def make_loan(
    loan_service: LoanLifecycleService, clock: FakeClock, electronics_item: Dict[str, Any]
) -> Callable[..., DimLoan]:
    """Item + loan written straight through the lifecycle service"""

    def _make(
        customer: DimCustomer,
        principal: int = 20_000,
        rate: Decimal = Decimal("3"),
        term_days: int = 30,
        service_fee: int = 0,
        loan_date: date = None,
    ) -> DimLoan:
        item = loan_service.create_item(dict(electronics_item))
        quote = calculator.quote_loan(
            principal, item.appraisal_value, rate, term_days, service_fee, loan_date or clock.today()
        )
        return loan_service.create_loan(
            {
                "customer_key": customer.customer_key,
                "item_key": item.item_key,
                "principal": quote.principal,
                "interest_rate": quote.interest_rate,
                "term_days": quote.term_days,
                "service_fee": quote.service_fee,
                "interest_amount": quote.interest_amount,
                "total_due": quote.total_due,
                "loan_date": quote.loan_date,
                "maturity_date": quote.maturity_date,
            }
        )

    return _make


@pytest.fixture
def wizard(config: Settings) -> LoanWizard:
    return LoanWizard(WizardRules.from_settings(config))


@pytest.fixture
def client(db: Session, clock: FakeClock) -> TestClient:
    """Create FastAPI test client with test database and a fixed clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
