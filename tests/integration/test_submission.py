"""Integration tests for wizard submission"""

import pytest
from datetime import date, timedelta
from pawnbook.config import Settings
from pawnbook.domain.enums import ScreeningCheck
from pawnbook.domain.exceptions import SubmissionError, ValidationError
from pawnbook.domain.wizard import LoanWizard, WizardStep
from pawnbook.infrastructure.database.models import DimCustomer, DimItem, DimLoan, FactTransaction
from pawnbook.services.customers import customer_snapshot
from pawnbook.services.loans import LoanLifecycleService
from pawnbook.services.submission import LoanSubmissionService


def _new_customer(wizard: LoanWizard) -> None:
    wizard.start_new_customer()
    wizard.update_customer(
        first_name="Maria",
        last_name="Santos",
        date_of_birth=date(1990, 6, 1),
        phone="09181234567",
        id_type="passport",
        id_number="P1234567A",
        address_line_1="45 Mabini St",
        city_municipality="Quezon City",
    )
    for kind in ("face", "id_front", "id_back"):
        wizard.attach_customer_photo(kind, f"{kind}.jpg")
    wizard.next()


def _mobile_item(wizard: LoanWizard) -> None:
    wizard.set_category("mobile")
    wizard.update_item(brand="Samsung", model="Galaxy S24", item_condition="excellent", appraisal_value=30_000)
    wizard.add_item_photo("front.jpg")
    wizard.add_item_photo("back.jpg")
    wizard.next()


def _terms(wizard: LoanWizard) -> None:
    wizard.update_terms(principal=21_000, term_days=60, service_fee=50, purpose_of_loan="Tuition")
    wizard.next()


def _clear_screening(wizard: LoanWizard) -> None:
    for check in ScreeningCheck:
        wizard.screening.set_manual(check, "clear")


@pytest.fixture
def reviewed(wizard: LoanWizard) -> LoanWizard:
    """A complete new-customer draft on the review step, screening cleared"""
    _new_customer(wizard)
    _mobile_item(wizard)
    _terms(wizard)
    _clear_screening(wizard)
    return wizard


def _count(db, model) -> int:
    return db.query(model).count()


def test_submit_new_customer(submission_service, reviewed, db, clock):
    """Test a reviewed draft becomes customer, item, loan and NEW_LOAN fact"""
    result = submission_service.submit(reviewed, request_id="req-1")

    assert result.replayed is False
    assert result.ticket_number == "PT260119-0001"
    assert result.scan_code == result.ticket_number
    assert result.customer.customer_id == "CUS-000001"
    assert result.customer.full_name == "Maria Santos"
    assert result.item.item_id == "ITM260119-0001"
    assert result.item.status == "pawned"

    loan = result.loan
    assert loan.principal == 21_000
    assert loan.interest_amount == 1_260
    assert loan.total_due == 22_310
    assert loan.loan_date == clock.today()
    assert loan.maturity_date == clock.today() + timedelta(days=60)
    assert loan.purpose_of_loan == "Tuition"
    assert loan.idempotency_key == reviewed.idempotency_key
    assert loan.customer_key == result.customer.customer_key
    assert loan.item_key == result.item.item_key

    txn = result.transaction
    assert txn.type_code == "NEW_LOAN"
    assert txn.principal == 21_000
    assert txn.service_fee == 50
    assert txn.net_cash_flow == -21_000
    assert txn.loan_key == loan.loan_key


def test_submit_existing_customer_uses_current_version(
    submission_service, customer_service, make_customer, wizard, db
):
    """Test a customer picked from search is linked by their current version"""
    v1 = make_customer()
    wizard.select_existing_customer(v1.customer_key, v1.customer_id, customer_snapshot(v1))
    v2 = customer_service.update(v1.customer_key, {"phone": "09170000002"})
    _mobile_item(wizard)
    _terms(wizard)
    _clear_screening(wizard)

    result = submission_service.submit(wizard)
    assert result.customer.customer_key == v2.customer_key
    assert result.loan.customer_key == v2.customer_key
    assert _count(db, DimCustomer) == 2


def test_submit_is_idempotent(submission_service, reviewed, db):
    """Test a retried submission returns the same ticket and writes nothing new"""
    first = submission_service.submit(reviewed)
    again = submission_service.submit(reviewed)

    assert again.replayed is True
    assert again.ticket_number == first.ticket_number
    assert again.transaction.transaction_id == first.transaction.transaction_id
    assert again.customer.customer_id == first.customer.customer_id
    assert _count(db, DimLoan) == 1
    assert _count(db, DimCustomer) == 1
    assert _count(db, FactTransaction) == 1


def test_submit_requires_review_step(submission_service, wizard):
    """Test submission is only possible from the last step"""
    _new_customer(wizard)
    with pytest.raises(ValidationError):
        submission_service.submit(wizard)


def test_submit_requires_completed_screening(submission_service, wizard, db):
    """Test pending checks block submission when screening is required"""
    _new_customer(wizard)
    _mobile_item(wizard)
    _terms(wizard)
    wizard.screening.set_manual(ScreeningCheck.WATCHLIST, "clear")
    with pytest.raises(ValidationError) as exc_info:
        submission_service.submit(wizard)
    assert set(exc_info.value.errors) == {"screening.pep", "screening.adverse_media"}
    assert _count(db, DimCustomer) == 0


def test_submit_blocked_customer_refused(submission_service, reviewed, db):
    """Test a blocked screening result stops the loan"""
    reviewed.screening.set_manual(ScreeningCheck.PEP, "blocked", "Sanctioned")
    with pytest.raises(ValidationError) as exc_info:
        submission_service.submit(reviewed)
    assert exc_info.value.errors == {"screening.pep": "customer is blocked"}
    assert _count(db, DimLoan) == 0


def test_submit_without_required_screening(uow, clock, wizard, db):
    """Test screening can be made optional"""
    config = Settings(_env_file=None, screening_required=False)
    service = LoanSubmissionService(uow, clock=clock, config=config)
    _new_customer(wizard)
    _mobile_item(wizard)
    _terms(wizard)
    result = service.submit(wizard)
    assert result.ticket_number == "PT260119-0001"


def test_submit_applies_screening_when_enabled(uow, clock, reviewed):
    """Test the screening outcome is written to the new customer when enabled"""
    config = Settings(_env_file=None, screening_updates_watchlist=True)
    service = LoanSubmissionService(uow, clock=clock, config=config)
    reviewed.screening.set_manual(ScreeningCheck.WATCHLIST, "flagged", "Similar name")
    result = service.submit(reviewed)
    assert result.customer.watchlist_status == "flagged"
    assert result.customer.watchlist_notes == "watchlist: Similar name"


def test_submit_failure_rolls_back_every_step(uow, clock, config, reviewed, db):
    """Test a failing loan step leaves no customer or item behind and names the step"""

    class FailingLoans(LoanLifecycleService):
        def create_loan(self, fields):
            raise ValidationError("Loan terms are invalid", {"principal": "rejected"})

    service = LoanSubmissionService(uow, loans=FailingLoans(uow, clock=clock, config=config), clock=clock, config=config)
    with pytest.raises(SubmissionError) as exc_info:
        service.submit(reviewed)

    error = exc_info.value
    assert error.step == "loan"
    assert error.completed_steps == ["customer", "item"]
    assert isinstance(error.cause, ValidationError)
    assert "Nothing was saved" in str(error)
    assert _count(db, DimCustomer) == 0
    assert _count(db, DimItem) == 0
    assert _count(db, DimLoan) == 0

    # The draft is untouched and can be resubmitted as-is
    assert reviewed.step is WizardStep.REVIEW
    assert reviewed.item.photos == ["front.jpg", "back.jpg"]


def test_resubmit_after_failure_succeeds(uow, clock, config, reviewed, submission_service, db):
    """Test the same draft goes through once the problem is fixed"""

    class FailingRecorder:
        def record(self, *args, **kwargs):
            raise ValidationError("Ledger closed", {"date": "closed"})

        def by_loan(self, loan_key):
            return []

    failing = LoanSubmissionService(uow, recorder=FailingRecorder(), clock=clock, config=config)
    with pytest.raises(SubmissionError) as exc_info:
        failing.submit(reviewed)
    assert exc_info.value.step == "transaction"
    assert _count(db, DimLoan) == 0

    result = submission_service.submit(reviewed)
    assert result.replayed is False
    assert result.customer.customer_id == "CUS-000001"
    assert _count(db, DimLoan) == 1


def test_submit_after_local_midnight_uses_shop_date(submission_service, reviewed, clock):
    """Test identifiers and loan date follow Manila time once UTC lags a day behind"""
    clock.advance(hours=13)
    result = submission_service.submit(reviewed)

    assert result.ticket_number == "PT260120-0001"
    assert result.item.item_id == "ITM260120-0001"
    assert result.loan.loan_date == date(2026, 1, 20)
    assert result.loan.maturity_date == date(2026, 3, 21)
    assert result.transaction.transaction_id == "TRX-260120-0001"
    assert result.transaction.date_key == 20260120
    # Stored timestamps stay in UTC
    assert result.transaction.created_at == clock()


def test_submit_with_utc_business_calendar(uow, clock, reviewed):
    """Test the business calendar is configurable"""
    clock.advance(hours=13)
    service = LoanSubmissionService(uow, clock=clock, config=Settings(_env_file=None, timezone="UTC"))
    result = service.submit(reviewed)
    assert result.ticket_number == "PT260119-0001"
    assert result.loan.loan_date == date(2026, 1, 19)
