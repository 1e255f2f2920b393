"""/v1/exports - CSV downloads of customers and loans"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.responses import Response

from pawnbook.api.dependencies import get_exporter
from pawnbook.services.export import CsvExporter

router = APIRouter()


def _csv_response(filename: str, content: str, count: int) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Row-Count": str(count),
        },
    )


@router.get("/exports/customers")
def export_customers(
    start: Optional[date] = Query(None, description="Filter on created_at"),
    end: Optional[date] = None,
    exporter: CsvExporter = Depends(get_exporter),
):
    return _csv_response(*exporter.export_customers_csv(start, end))


@router.get("/exports/loans")
def export_loans(
    start: Optional[date] = Query(None, description="Filter on loan_date"),
    end: Optional[date] = None,
    exporter: CsvExporter = Depends(get_exporter),
):
    return _csv_response(*exporter.export_loans_csv(start, end))
