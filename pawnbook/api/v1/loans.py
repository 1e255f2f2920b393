"""/v1/loans - quotes, wizard submission, status changes, renewals and redemptions"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from pawnbook.api.dependencies import (
    get_clock,
    get_customer_service,
    get_loan_service,
    get_request_id,
    get_screening_provider,
    get_submission_service,
)
from pawnbook.api.v1.schemas import (
    LoanListingResponse,
    LoanResponse,
    LoanSubmissionRequest,
    PortfolioSummaryResponse,
    QuoteRequest,
    QuoteResponse,
    RedeemRequest,
    RedemptionResponse,
    RenewRequest,
    StatusChangeRequest,
    SubmissionResponse,
)
from pawnbook.config import settings
from pawnbook.domain import calculator
from pawnbook.domain.enums import LoanStatus, ScreeningCheck
from pawnbook.domain.exceptions import ValidationError
from pawnbook.domain.screening import ScreeningProvider
from pawnbook.domain.wizard import LoanWizard, WizardRules
from pawnbook.services.customers import CustomerVersioningService, customer_snapshot
from pawnbook.services.loans import LoanLifecycleService, LoanListing
from pawnbook.services.submission import LoanSubmissionService
from pawnbook.utils.date_utils import Clock, local_date

router = APIRouter()


def _listing(entry: LoanListing) -> LoanListingResponse:
    return LoanListingResponse(
        loan=LoanResponse.model_validate(entry.loan),
        customer_id=entry.customer.customer_id,
        customer_name=entry.customer.full_name,
        customer_phone=entry.customer.phone,
        days_until_due=entry.days_until_due,
        payment_status=entry.payment_status.value,
    )


@router.post("/loans/quote", response_model=QuoteResponse)
def quote_loan(request_body: QuoteRequest, clock: Clock = Depends(get_clock)):
    """Live figures for the terms step; nothing is stored"""
    loan_date = request_body.loan_date or local_date(clock(), settings.timezone)
    quote = calculator.quote_loan(
        principal=request_body.principal,
        appraisal=request_body.appraisal_value,
        monthly_rate_percent=request_body.interest_rate,
        term_days=request_body.term_days,
        service_fee=request_body.service_fee,
        loan_date=loan_date,
        ltv_warning_percent=settings.ltv_warning_percent,
    )
    presets = calculator.principal_presets(request_body.appraisal_value, settings.principal_preset_percents)
    return QuoteResponse(**vars(quote), principal_presets=dict(presets))


@router.post("/loans", response_model=SubmissionResponse, status_code=201)
async def submit_loan(
    request_body: LoanSubmissionRequest,
    request: Request,
    response: Response,
    customers: CustomerVersioningService = Depends(get_customer_service),
    submission: LoanSubmissionService = Depends(get_submission_service),
    provider: ScreeningProvider = Depends(get_screening_provider),
):
    """
    Replay a full draft through the wizard and submit it.

    Flow:
    1. Customer step: select by customer_key, or register from `customer`
    2. Item step: category, fields and photos
    3. Terms step
    4. Screening: manual decisions, then provider searches for any still pending
    5. Submit as one transaction (idempotent on idempotency_key)
    """
    wizard = LoanWizard(WizardRules.from_settings(settings), idempotency_key=request_body.idempotency_key)

    if request_body.customer_key is not None:
        current = customers.get_current(request_body.customer_key)
        wizard.select_existing_customer(current.customer_key, current.customer_id, customer_snapshot(current))
    elif request_body.customer is not None:
        wizard.start_new_customer()
        wizard.update_customer(**request_body.customer.model_dump(exclude_none=True))
        wizard.next()
    else:
        raise ValidationError("Select or register a customer", {"customer": "required"})

    item = request_body.item.model_dump(exclude_none=True)
    wizard.set_category(item.pop("category"))
    for photo in item.pop("photos", []):
        wizard.add_item_photo(photo)
    wizard.update_item(**item)
    wizard.next()

    wizard.update_terms(**request_body.terms.model_dump())
    wizard.next()

    for check, decision in request_body.screening.items():
        wizard.screening.set_manual(ScreeningCheck.parse(check, "screening"), decision.status, decision.notes)
    if request_body.run_screening:
        for check in ScreeningCheck:
            if not wizard.screening.results[check].manual:
                await wizard.screening.run_check(check, provider)

    result = submission.submit(wizard, request_id=get_request_id(request))
    if result.replayed:
        response.status_code = 200
    return SubmissionResponse(
        ticket_number=result.ticket_number,
        scan_code=result.scan_code,
        replayed=result.replayed,
        customer_id=result.customer.customer_id,
        item_id=result.item.item_id,
        transaction_id=result.transaction.transaction_id if result.transaction else None,
        loan=LoanResponse.model_validate(result.loan),
    )


@router.get("/loans/due", response_model=List[LoanListingResponse])
def loans_due(
    days: Optional[int] = Query(None, ge=0, description="Defaults to the due-soon window"),
    service: LoanLifecycleService = Depends(get_loan_service),
):
    return [_listing(entry) for entry in service.due_within(days)]


@router.get("/loans/overdue", response_model=List[LoanListingResponse])
def loans_overdue(service: LoanLifecycleService = Depends(get_loan_service)):
    return [_listing(entry) for entry in service.overdue()]


@router.get("/loans/summary", response_model=PortfolioSummaryResponse)
def loans_summary(service: LoanLifecycleService = Depends(get_loan_service)):
    return PortfolioSummaryResponse(**vars(service.portfolio_summary()))


@router.get("/loans/{ticket}", response_model=LoanResponse)
def get_loan(ticket: str, service: LoanLifecycleService = Depends(get_loan_service)):
    """By ticket number (PT...) or loan_key"""
    return LoanResponse.model_validate(service.get_loan(ticket))


@router.get("/loans/{loan_key}/chain", response_model=List[LoanResponse])
def get_renewal_chain(loan_key: int, service: LoanLifecycleService = Depends(get_loan_service)):
    return [LoanResponse.model_validate(loan) for loan in service.renewal_chain(loan_key)]


@router.post("/loans/{loan_key}/status", response_model=LoanResponse)
def change_status(
    loan_key: int,
    request_body: StatusChangeRequest,
    service: LoanLifecycleService = Depends(get_loan_service),
):
    """Forfeit or auction; redemptions and renewals have their own endpoints"""
    target = LoanStatus.parse(request_body.status, "status")
    if target is LoanStatus.FORFEITED:
        loan = service.forfeit(loan_key)
    elif target is LoanStatus.AUCTIONED:
        if request_body.sale_amount is None:
            raise ValidationError("Sale amount is required to auction", {"sale_amount": "required"})
        loan = service.auction(loan_key, request_body.sale_amount)
    elif target is LoanStatus.REDEEMED:
        raise ValidationError("Redeem through the redemption endpoint", {"status": "use /redeem"})
    else:
        loan = service.update_status(loan_key, target.value)
    return LoanResponse.model_validate(loan)


@router.post("/loans/{loan_key}/renew", response_model=LoanResponse, status_code=201)
def renew_loan(
    loan_key: int,
    request_body: RenewRequest,
    service: LoanLifecycleService = Depends(get_loan_service),
):
    """Close the loan as renewed and return its successor"""
    child = service.renew(
        loan_key,
        new_term_days=request_body.term_days,
        interest_rate=request_body.interest_rate,
        payment_method=request_body.payment_method,
    )
    return LoanResponse.model_validate(child)


@router.post("/loans/{loan_key}/redeem", response_model=RedemptionResponse)
def redeem_loan(
    loan_key: int,
    request_body: RedeemRequest,
    service: LoanLifecycleService = Depends(get_loan_service),
):
    receipt = service.redeem(
        loan_key,
        amount_received=request_body.amount_received,
        payment_method=request_body.payment_method,
        discount=request_body.discount,
    )
    return RedemptionResponse(**vars(receipt))


@router.delete("/loans/{loan_key}", status_code=204)
def delete_loan(loan_key: int, service: LoanLifecycleService = Depends(get_loan_service)):
    service.delete(loan_key)
    return Response(status_code=204)
