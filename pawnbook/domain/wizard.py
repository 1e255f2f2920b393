"""Four-step loan creation wizard as an explicit state machine

Customer -> Item -> Terms -> Review. Forward moves are gated by per-step
validation; back moves are always allowed. Draft state lives on the wizard
object only and is never persisted until submission.
"""

import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pawnbook.domain import calculator
from pawnbook.domain.enums import (
    Gender,
    IdType,
    IncomeRange,
    ItemCategory,
    ItemCondition,
    Karat,
    OccupationType,
)
from pawnbook.domain.exceptions import ValidationError
from pawnbook.domain.models import CustomerDraft, ItemDraft, LoanQuote, LoanTerms
from pawnbook.domain.screening import ScreeningWorkflow

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    CUSTOMER = 1
    ITEM = 2
    TERMS = 3
    REVIEW = 4


STEP_LABELS = {
    WizardStep.CUSTOMER: "Customer",
    WizardStep.ITEM: "Item Details",
    WizardStep.TERMS: "Loan Terms",
    WizardStep.REVIEW: "Review & Print",
}

CUSTOMER_PHOTO_FIELDS = {
    "face": "photo",
    "id_front": "id_front_photo",
    "id_back": "id_back_photo",
}

NEW_CUSTOMER_REQUIRED = (
    "full_name",
    "date_of_birth",
    "phone",
    "id_type",
    "id_number",
    "address",
    "photo",
    "id_front_photo",
    "id_back_photo",
)

# Sub-fields each collateral category must carry
CATEGORY_REQUIRED_FIELDS: Dict[ItemCategory, Tuple[str, ...]] = {
    ItemCategory.GOLD: ("gold_type", "weight_grams", "karat"),
    ItemCategory.ELECTRONICS: ("brand", "model", "item_condition"),
    ItemCategory.MOBILE: ("brand", "model", "item_condition"),
    ItemCategory.OTHER: (),
}

# Closed code sets checked when a value is present
CUSTOMER_CODE_FIELDS = {
    "id_type": IdType,
    "gender": Gender,
    "occupation": OccupationType,
    "monthly_income_range": IncomeRange,
}
ITEM_CODE_FIELDS = {
    "karat": Karat,
    "item_condition": ItemCondition,
}

ADDRESS_PARTS = (
    "address_line_1",
    "address_line_2",
    "barangay",
    "city_municipality",
    "province",
    "postal_code",
)


def compose_address(values: Dict[str, Any]) -> Optional[str]:
    """Legacy free-text address built from the structured parts"""
    parts = [str(values[p]).strip() for p in ADDRESS_PARTS if values.get(p)]
    return ", ".join(parts) or None


def compose_full_name(values: Dict[str, Any]) -> Optional[str]:
    parts = [values.get(p) for p in ("first_name", "middle_name", "last_name", "suffix")]
    name = " ".join(str(p).strip() for p in parts if p)
    return name or None


@dataclass
class WizardRules:
    """Limits the wizard enforces; defaults mirror the service configuration"""

    allowed_term_days: Sequence[int] = (30, 60, 90, 120)
    principal_preset_percents: Sequence[int] = (60, 70, 80)
    ltv_warning_percent: int = 80
    min_item_photos: int = 2
    max_item_photos: int = 6
    default_interest_rate: Decimal = Decimal("3")
    default_term_days: int = 30

    @classmethod
    def from_settings(cls, settings) -> "WizardRules":
        return cls(
            allowed_term_days=tuple(settings.allowed_term_days),
            principal_preset_percents=tuple(settings.principal_preset_percents),
            ltv_warning_percent=settings.ltv_warning_percent,
            min_item_photos=settings.min_item_photos,
            max_item_photos=settings.max_item_photos,
            default_interest_rate=Decimal(str(settings.default_interest_rate)),
            default_term_days=settings.default_term_days,
        )


@dataclass
class SelectedCustomer:
    """Existing customer picked from search"""

    customer_key: int
    customer_id: str
    snapshot: CustomerDraft = field(default_factory=CustomerDraft)


def _to_decimal(value: Any, name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number", {name: "must be a number"}) from None


def _to_int(value: Any, name: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a whole number", {name: "must be a whole number"}) from None


class LoanWizard:
    """Controller owning the draft of one loan until it is submitted"""

    def __init__(self, rules: Optional[WizardRules] = None, idempotency_key: Optional[str] = None):
        self.rules = rules or WizardRules()
        self.idempotency_key = idempotency_key or str(uuid.uuid4())
        self._clear()

    def _clear(self) -> None:
        self.step = WizardStep.CUSTOMER
        self.is_new_customer = False
        self.selected_customer: Optional[SelectedCustomer] = None
        self.customer = CustomerDraft()
        self.item = ItemDraft()
        self.terms = LoanTerms(
            interest_rate=self.rules.default_interest_rate,
            term_days=self.rules.default_term_days,
        )
        self.screening = ScreeningWorkflow()

    def reset(self) -> None:
        """Discard the whole draft and start over with a fresh idempotency key"""
        self.idempotency_key = str(uuid.uuid4())
        self._clear()

    # Step 1: customer

    def search_customers(self, search: Callable[[str], List[Any]], query: str) -> List[Any]:
        return search(query)

    def select_existing_customer(
        self,
        customer_key: int,
        customer_id: str,
        snapshot: Optional[CustomerDraft] = None,
    ) -> None:
        """Pick an existing customer and move straight to the item step"""
        self.is_new_customer = False
        self.selected_customer = SelectedCustomer(customer_key, customer_id, snapshot or CustomerDraft())
        self.customer = self.selected_customer.snapshot
        self.screening.customer_name = self.customer.full_name or ""
        self.step = WizardStep.ITEM

    def start_new_customer(self) -> None:
        self.is_new_customer = True
        self.selected_customer = None
        self.customer = CustomerDraft()

    def update_customer(self, **values: Any) -> CustomerDraft:
        if not self.is_new_customer:
            raise ValidationError("Start a new customer registration first", {"customer": "not registering"})
        known = {f.name for f in fields(CustomerDraft)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValidationError("Unknown customer fields", {name: "unknown field" for name in unknown})
        for name, value in values.items():
            if name in CUSTOMER_CODE_FIELDS and value is not None:
                value = CUSTOMER_CODE_FIELDS[name].parse(value, name).value
            setattr(self.customer, name, value)
        if not self.customer.address:
            self.customer.address = compose_address(vars(self.customer))
        if not self.customer.full_name:
            self.customer.full_name = compose_full_name(vars(self.customer))
        self.screening.customer_name = self.customer.full_name or ""
        return self.customer

    def attach_customer_photo(self, kind: str, reference: str) -> None:
        """kind is one of face, id_front, id_back"""
        if kind not in CUSTOMER_PHOTO_FIELDS:
            raise ValidationError("Unknown photo kind", {"kind": f"must be one of: {', '.join(CUSTOMER_PHOTO_FIELDS)}"})
        setattr(self.customer, CUSTOMER_PHOTO_FIELDS[kind], reference)

    # Step 2: item

    def set_category(self, category: str) -> None:
        self.item.category = ItemCategory.parse(category, "category").value

    def update_item(self, **values: Any) -> ItemDraft:
        known = {f.name for f in fields(ItemDraft)} - {"photos"}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValidationError("Unknown item fields", {name: "unknown field" for name in unknown})
        for name, value in values.items():
            if name == "category" and value is not None:
                value = ItemCategory.parse(value, name).value
            elif name in ITEM_CODE_FIELDS and value is not None:
                value = ITEM_CODE_FIELDS[name].parse(value, name).value
            elif name in ("weight_grams", "gold_price_per_gram"):
                value = _to_decimal(value, name)
            elif name == "appraisal_value":
                value = _to_int(value, name)
            setattr(self.item, name, value)
        return self.item

    def gold_estimate(self) -> int:
        return calculator.gold_value(
            self.item.weight_grams or 0,
            self.item.gold_price_per_gram or 0,
            self.item.karat,
        )

    def add_item_photo(self, reference: str) -> None:
        if len(self.item.photos) >= self.rules.max_item_photos:
            raise ValidationError(
                "Too many item photos",
                {"photos": f"at most {self.rules.max_item_photos} photos"},
            )
        self.item.photos.append(reference)

    def remove_item_photo(self, reference: str) -> None:
        if reference in self.item.photos:
            self.item.photos.remove(reference)

    # Step 3: terms

    def update_terms(self, **values: Any) -> LoanTerms:
        for name, value in values.items():
            if name in ("principal", "service_fee", "term_days"):
                value = _to_int(value, name)
            elif name == "interest_rate":
                value = _to_decimal(value, name) or Decimal(0)
            elif name != "purpose_of_loan":
                raise ValidationError("Unknown loan term", {name: "unknown field"})
            setattr(self.terms, name, value)
        return self.terms

    def principal_presets(self) -> List[Tuple[int, int]]:
        return calculator.principal_presets(self.item.appraisal_value, self.rules.principal_preset_percents)

    def apply_principal_preset(self, percent: int) -> int:
        if percent not in self.rules.principal_preset_percents:
            raise ValidationError("Unknown principal preset", {"percent": "not an offered preset"})
        self.terms.principal = dict(self.principal_presets())[percent]
        return self.terms.principal

    def quote(self, loan_date: Optional[date] = None) -> LoanQuote:
        return calculator.quote_loan(
            principal=self.terms.principal,
            appraisal=self.item.appraisal_value,
            monthly_rate_percent=self.terms.interest_rate,
            term_days=self.terms.term_days,
            service_fee=self.terms.service_fee,
            loan_date=loan_date,
            ltv_warning_percent=self.rules.ltv_warning_percent,
        )

    # Gates

    def _customer_errors(self) -> Dict[str, str]:
        if self.selected_customer is not None:
            return {}
        if not self.is_new_customer:
            return {"customer": "select an existing customer or register a new one"}
        values = vars(self.customer)
        errors = {name: "required" for name in NEW_CUSTOMER_REQUIRED if not values.get(name)}
        return errors

    def _item_errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.item.category:
            errors["category"] = "required"
        count = len(self.item.photos)
        if count < self.rules.min_item_photos:
            errors["photos"] = f"at least {self.rules.min_item_photos} photos"
        elif count > self.rules.max_item_photos:
            errors["photos"] = f"at most {self.rules.max_item_photos} photos"
        if not self.item.appraisal_value or self.item.appraisal_value <= 0:
            errors["appraisal_value"] = "must be greater than zero"
        if self.item.category:
            values = vars(self.item)
            for name in CATEGORY_REQUIRED_FIELDS[ItemCategory(self.item.category)]:
                if not values.get(name):
                    errors[name] = "required"
            if self.item.weight_grams is not None and self.item.weight_grams <= 0:
                errors["weight_grams"] = "must be greater than zero"
        return errors

    def _terms_errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if self.terms.principal <= 0:
            errors["principal"] = "must be greater than zero"
        if self.terms.interest_rate <= 0:
            errors["interest_rate"] = "must be greater than zero"
        if self.terms.term_days <= 0:
            errors["term_days"] = "must be greater than zero"
        elif self.terms.term_days not in self.rules.allowed_term_days:
            allowed = ", ".join(str(d) for d in self.rules.allowed_term_days)
            errors["term_days"] = f"must be one of: {allowed}"
        if self.terms.service_fee < 0:
            errors["service_fee"] = "must not be negative"
        return errors

    def validate_step(self, step: Optional[WizardStep] = None) -> Dict[str, str]:
        """Field errors blocking the given step (default: current step)"""
        step = step or self.step
        if step == WizardStep.CUSTOMER:
            return self._customer_errors()
        if step == WizardStep.ITEM:
            return self._item_errors()
        if step == WizardStep.TERMS:
            return self._terms_errors()
        errors: Dict[str, str] = {}
        for earlier in (WizardStep.CUSTOMER, WizardStep.ITEM, WizardStep.TERMS):
            errors.update(self.validate_step(earlier))
        return errors

    def next(self) -> WizardStep:
        errors = self.validate_step()
        if errors:
            raise ValidationError(f"{STEP_LABELS[self.step]} step is incomplete", errors)
        if self.step < WizardStep.REVIEW:
            self.step = WizardStep(self.step + 1)
            logger.debug("Wizard advanced", extra={"step": self.step.name})
        return self.step

    def back(self) -> WizardStep:
        if self.step > WizardStep.CUSTOMER:
            self.step = WizardStep(self.step - 1)
        return self.step

    def go_to(self, step: WizardStep) -> WizardStep:
        """Jump back to an earlier step (e.g. 'edit' links on the review screen)"""
        step = WizardStep(step)
        if step > self.step:
            raise ValidationError("Steps can only be skipped backwards", {"step": "use next() to advance"})
        self.step = step
        return self.step

    def review(self, loan_date: Optional[date] = None) -> Dict[str, Any]:
        """Read-only recap for the final step"""
        if self.step != WizardStep.REVIEW:
            raise ValidationError("Review is only available on the last step", {"step": self.step.name})
        return {
            "customer": {
                "is_new": self.is_new_customer,
                "customer_id": self.selected_customer.customer_id if self.selected_customer else None,
                "full_name": self.customer.full_name,
                "phone": self.customer.phone,
                "address": self.customer.address,
            },
            "item": self.item.to_fields(),
            "quote": self.quote(loan_date),
            "screening": {check.value: result.status for check, result in self.screening.results.items()},
            "can_submit": not self.validate_step(WizardStep.REVIEW),
        }
