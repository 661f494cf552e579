"""Financial ratios shown next to a decision - pure functions of applicant data"""

from typing import List, Optional
from credit_workflow.domain.models import ApplicantData, FinancialRatios

# Fixed business thresholds
DEBT_RATIO_WARNING_PCT = 33.0
REMAINING_TO_LIVE_FLOOR = 300.0

WARNING_HIGH_DEBT_RATIO = "high_debt_ratio"
WARNING_LOW_REMAINING_TO_LIVE = "low_remaining_to_live"
WARNING_NEGATIVE_REMAINING_TO_LIVE = "negative_remaining_to_live"


def debt_ratio(data: ApplicantData) -> float:
    """Debt as a percentage of monthly revenues"""
    if data.revenues <= 0:
        return 0.0
    return data.debt / data.revenues * 100


def remaining_to_live(data: ApplicantData) -> float:
    """Monthly revenues left after monthly charges"""
    return data.revenues - data.charges


def guarantee_ratio(data: ApplicantData) -> float:
    """Guarantee value as a percentage of the amount asked"""
    if data.amount_asked <= 0:
        return 0.0
    return data.guarantee_estimated_value / data.amount_asked * 100


def capacity_in_months(data: ApplicantData) -> Optional[float]:
    """
    Months of remaining-to-live needed to cover the amount asked.

    None when nothing is left at the end of the month.
    """
    rtl = remaining_to_live(data)
    if rtl <= 0:
        return None
    return data.amount_asked / rtl


def ratio_warnings(data: ApplicantData) -> List[str]:
    warnings = []
    if debt_ratio(data) > DEBT_RATIO_WARNING_PCT:
        warnings.append(WARNING_HIGH_DEBT_RATIO)

    rtl = remaining_to_live(data)
    if rtl < 0:
        warnings.append(WARNING_NEGATIVE_REMAINING_TO_LIVE)
    elif rtl < REMAINING_TO_LIVE_FLOOR:
        warnings.append(WARNING_LOW_REMAINING_TO_LIVE)
    return warnings


def compute_ratios(data: ApplicantData) -> FinancialRatios:
    capacity = capacity_in_months(data)
    return FinancialRatios(
        debt_ratio=round(debt_ratio(data), 2),
        remaining_to_live=round(remaining_to_live(data), 2),
        guarantee_ratio=round(guarantee_ratio(data), 2),
        capacity_months=round(capacity, 2) if capacity is not None else None,
        warnings=tuple(ratio_warnings(data)),
    )
