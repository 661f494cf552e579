"""Business rules enforced at the engine boundary"""

import math
from typing import Any, Collection, Dict, Optional
from credit_workflow.domain.exceptions import ValidationError
from credit_workflow.domain.models import ApplicantData, OverrideAction

# Ceilings mirror the application form; anything above is treated as a typo
REVENUES_CEILING = 1_000_000
CHARGES_CEILING = 1_000_000
DEBT_CEILING = 10_000_000
AMOUNT_ASKED_CEILING = 10_000_000
MAX_AMOUNT_TO_ANNUAL_REVENUES = 10

MIN_CORRECTION_JUSTIFICATION = 10
MAX_SCORE_ADJUSTMENT = 100

APPROVAL_REASONS = frozenset({
    "strong_guarantees",
    "stable_income_source",
    "exceptional_circumstances",
    "additional_information",
    "human_judgment",
    "other",
})

REJECTION_REASONS = frozenset({
    "insufficient_income",
    "high_debt_ratio",
    "incomplete_documents",
    "negative_credit_history",
    "unstable_employment",
    "other",
})

REEVALUATION_REASONS = frozenset({
    "missing_information",
    "data_inconsistency",
    "need_supervisor",
    "complex_case",
    "other",
})

OVERRIDE_REASONS: Dict[OverrideAction, frozenset] = {
    OverrideAction.APPROVE: APPROVAL_REASONS,
    OverrideAction.REJECT: REJECTION_REASONS,
    OverrideAction.REEVALUATE: REEVALUATION_REASONS,
}

# reason -> evidence required
CONTEST_REASONS: Dict[str, bool] = {
    "client_fidelity": True,
    "income_improvement": True,
    "data_error": True,
    "special_circumstances": False,
    "guarantee_additional": True,
}

_NUMERIC_FIELDS = ("revenues", "charges", "debt", "amount_asked", "guarantee_estimated_value")
_TEXT_FIELDS = ("family_circumstances", "activity", "legal_form")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_applicant_data(data: ApplicantData, require_profile: bool = False) -> None:
    """
    Check applicant data against the credit policy.

    The same rules run in the application form, but callers are untrusted,
    so they are enforced again here. New applications must fill in the
    profile fields (`require_profile`); corrections may leave them blank.

    Raises:
        ValidationError: naming the first failing field
    """
    for name in _NUMERIC_FIELDS:
        if not _is_number(getattr(data, name)):
            raise ValidationError(name, "must be a finite number")
    for name in _TEXT_FIELDS:
        if not isinstance(getattr(data, name), str):
            raise ValidationError(name, "must be a string")
        if require_profile and not getattr(data, name).strip():
            raise ValidationError(name, "is required")
    if data.is_renewal not in (0, 1) or isinstance(data.is_renewal, bool):
        raise ValidationError("is_renewal", "must be 0 or 1")

    if data.revenues <= 0:
        raise ValidationError("revenues", "must be greater than 0")
    if data.revenues > REVENUES_CEILING:
        raise ValidationError("revenues", f"must not exceed {REVENUES_CEILING}")
    if data.charges < 0:
        raise ValidationError("charges", "must not be negative")
    if data.charges > CHARGES_CEILING:
        raise ValidationError("charges", f"must not exceed {CHARGES_CEILING}")
    if data.debt < 0:
        raise ValidationError("debt", "must not be negative")
    if data.debt > DEBT_CEILING:
        raise ValidationError("debt", f"must not exceed {DEBT_CEILING}")
    if data.guarantee_estimated_value < 0:
        raise ValidationError("guarantee_estimated_value", "must not be negative")
    if data.amount_asked <= 0:
        raise ValidationError("amount_asked", "must be greater than 0")
    if data.amount_asked > AMOUNT_ASKED_CEILING:
        raise ValidationError("amount_asked", f"must not exceed {AMOUNT_ASKED_CEILING}")

    # Cross-field rules
    if data.debt > data.revenues:
        raise ValidationError("debt", "debt ratio must not exceed 100% of revenues")
    if data.charges > data.revenues:
        raise ValidationError("charges", "must not exceed revenues")
    if data.amount_asked > data.revenues * 12 * MAX_AMOUNT_TO_ANNUAL_REVENUES:
        raise ValidationError(
            "amount_asked",
            f"must not exceed {MAX_AMOUNT_TO_ANNUAL_REVENUES}x annual revenues",
        )


def require_justification(
    justification: Optional[str],
    min_length: int = 1,
    field: str = "justification",
) -> str:
    """Return the trimmed justification or raise if it is too short"""
    text = (justification or "").strip()
    if not text:
        raise ValidationError(field, "is required")
    if len(text) < min_length:
        raise ValidationError(field, f"must be at least {min_length} characters")
    return text


def require_reason(reason_code: Optional[str], allowed: Collection[str], field: str = "reason_code") -> str:
    if not reason_code:
        raise ValidationError(field, "is required")
    if reason_code not in allowed:
        raise ValidationError(field, f"'{reason_code}' is not one of {sorted(allowed)}")
    return reason_code


def validate_score_adjustment(adjustment: Optional[int]) -> Optional[int]:
    if adjustment is None:
        return None
    if isinstance(adjustment, bool) or not isinstance(adjustment, int):
        raise ValidationError("proposed_score_adjustment", "must be an integer")
    if abs(adjustment) > MAX_SCORE_ADJUSTMENT:
        raise ValidationError(
            "proposed_score_adjustment",
            f"must be between -{MAX_SCORE_ADJUSTMENT} and {MAX_SCORE_ADJUSTMENT}",
        )
    return adjustment
