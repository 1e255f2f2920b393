"""Prometheus metrics for loan volume, status transitions, versioning conflicts and screening"""

from prometheus_client import Counter, Histogram

# Loan metrics
loans_created_counter = Counter(
    "pawnbook_loans_created_total",
    "Pawn tickets issued",
    ["customer"],  # new | existing
)

principal_disbursed_counter = Counter(
    "pawnbook_principal_disbursed_total",
    "Principal handed out in pesos",
)

loan_principal_histogram = Histogram(
    "pawnbook_loan_principal_pesos",
    "Principal per issued ticket",
    buckets=[1_000, 5_000, 10_000, 25_000, 50_000, 100_000, 250_000, 500_000],
)

status_transition_counter = Counter(
    "pawnbook_loan_status_transitions_total",
    "Loan status changes",
    ["from_status", "to_status"],
)

submission_failure_counter = Counter(
    "pawnbook_submission_failures_total",
    "Loan submissions rolled back",
    ["step"],
)

# Customer versioning
scd_conflict_counter = Counter(
    "pawnbook_scd_conflicts_total",
    "Customer version writes that lost a race",
)

# Screening provider
screening_check_counter = Counter(
    "pawnbook_screening_checks_total",
    "Screening provider results",
    ["check", "status"],  # status: clear | flagged | blocked | error
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_loan_created(principal: int, new_customer: bool) -> None:
    """Record ticket volume and disbursed principal"""
    loans_created_counter.labels(customer="new" if new_customer else "existing").inc()
    principal_disbursed_counter.inc(principal)
    loan_principal_histogram.observe(principal)


def record_status_transition(from_status: str, to_status: str) -> None:
    status_transition_counter.labels(from_status=from_status, to_status=to_status).inc()


def record_submission_failure(step: str) -> None:
    submission_failure_counter.labels(step=step).inc()


def record_scd_conflict() -> None:
    scd_conflict_counter.inc()


def record_screening_check(check: str, status: str) -> None:
    screening_check_counter.labels(check=check, status=status).inc()
