"""/v1/transactions - cash-flow aggregates and recent activity"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from pawnbook.api.dependencies import get_recorder
from pawnbook.api.v1.schemas import CashFlowResponse, TransactionResponse
from pawnbook.services.transactions import TransactionRecorder

router = APIRouter()


@router.get("/transactions/cash-flow", response_model=CashFlowResponse)
def cash_flow(
    start: Optional[date] = Query(None, description="Defaults to today"),
    end: Optional[date] = Query(None, description="Defaults to start"),
    branch_key: Optional[int] = None,
    recorder: TransactionRecorder = Depends(get_recorder),
):
    """Disbursed, collected and net cash over start..end inclusive"""
    if start is None and end is None:
        summary = recorder.today_cash_flow(branch_key)
    else:
        start = start or end
        summary = recorder.cash_flow(start, end or start, branch_key)
    return CashFlowResponse(**vars(summary))


@router.get("/transactions/recent", response_model=List[TransactionResponse])
def recent_transactions(
    limit: int = Query(20, gt=0, le=200),
    branch_key: Optional[int] = None,
    recorder: TransactionRecorder = Depends(get_recorder),
):
    return [TransactionResponse.model_validate(row) for row in recorder.recent(limit, branch_key)]


@router.get("/transactions/by-loan/{loan_key}", response_model=List[TransactionResponse])
def loan_transactions(loan_key: int, recorder: TransactionRecorder = Depends(get_recorder)):
    return [TransactionResponse.model_validate(row) for row in recorder.by_loan(loan_key)]
