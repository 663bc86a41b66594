"""
Month matching for approved patterns.

Answers "does this pattern land in month N?" with year-boundary handling:
a bi-monthly bill seen in February also lands in December, a quarterly one
seen in November also lands in February. Bad input is reported through
``reasoning`` rather than raised.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from smartbudget.services.periodicity import STEP_BI_MONTHLY, STEP_QUARTERLY, align_to_latest
from smartbudget.services.records import DetectedPattern, RecurrencePattern, TransactionRecord
from smartbudget.services.transaction_grouper import normalize_description

logger = logging.getLogger(__name__)

MONTHLY = "monthly"


@dataclass
class MatchResult:
    matches: bool
    reasoning: str
    base_month: int | None = None
    months_from_base: int | None = None


def _is_month(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 12


def calculate_month_difference(target_month: int, base_month: int) -> int:
    """Months forward from ``base_month`` to ``target_month``, in 0..11."""
    if not _is_month(target_month):
        raise ValueError(f"Invalid target month: {target_month}. Must be integer between 1-12.")
    if not _is_month(base_month):
        raise ValueError(f"Invalid base month: {base_month}. Must be integer between 1-12.")
    return (target_month - base_month + 12) % 12


def _validate(scheduled_months, target_month: int, label: str) -> MatchResult | None:
    if not scheduled_months:
        return MatchResult(False, f"No scheduled months provided for {label} pattern matching")
    if not _is_month(target_month):
        return MatchResult(False, f"Invalid target month: {target_month}. Must be integer between 1-12.")
    invalid = [m for m in scheduled_months if not _is_month(m)]
    if invalid:
        return MatchResult(
            False,
            f"Invalid scheduled months: {invalid}. All must be integers between 1-12.",
        )
    return None


def _cyclic_match(scheduled_months: list[int], target_month: int, step: int, label: str) -> MatchResult:
    error = _validate(scheduled_months, target_month, label)
    if error:
        return error

    for base in scheduled_months:
        diff = calculate_month_difference(target_month, base)
        if diff % step == 0:
            return MatchResult(
                True,
                f"{label.capitalize()} pattern match: month {target_month} is {diff} months "
                f"from base month {base} (divisible by {step})",
                base_month=base,
                months_from_base=diff,
            )

    diffs = [calculate_month_difference(target_month, b) for b in scheduled_months]
    result = MatchResult(
        False,
        f"No {label} pattern match for month {target_month} from scheduled months "
        f"{list(scheduled_months)}. Checked differences: {diffs}",
    )
    logger.debug(result.reasoning)
    return result


def is_bi_monthly_match(scheduled_months: list[int], target_month: int) -> MatchResult:
    return _cyclic_match(scheduled_months, target_month, 2, "bi-monthly")


def is_quarterly_match(scheduled_months: list[int], target_month: int) -> MatchResult:
    return _cyclic_match(scheduled_months, target_month, 3, "quarterly")


def is_yearly_match(scheduled_months: list[int], target_month: int) -> MatchResult:
    error = _validate(scheduled_months, target_month, "yearly")
    if error:
        return error
    if target_month in scheduled_months:
        return MatchResult(
            True, f"Yearly pattern match: month {target_month} is scheduled in {list(scheduled_months)}"
        )
    return MatchResult(
        False, f"Yearly pattern mismatch: month {target_month} not in {list(scheduled_months)}"
    )


def is_monthly_match(scheduled_months: list[int], target_month: int) -> MatchResult:
    if not _is_month(target_month):
        return MatchResult(False, f"Invalid target month: {target_month}. Must be integer between 1-12.")
    return MatchResult(True, f"Monthly pattern: occurs every month, including month {target_month}")


_MATCHERS = {
    MONTHLY: is_monthly_match,
    RecurrencePattern.bi_monthly.value: is_bi_monthly_match,
    RecurrencePattern.quarterly.value: is_quarterly_match,
    RecurrencePattern.yearly.value: is_yearly_match,
}


def check_pattern_match(pattern_type: str, scheduled_months: list[int], target_month: int) -> MatchResult:
    key = pattern_type.value if isinstance(pattern_type, RecurrencePattern) else pattern_type
    matcher = _MATCHERS.get(key)
    if matcher is None:
        return MatchResult(
            False,
            f"Unknown pattern type: {pattern_type}. Supported types: {', '.join(_MATCHERS)}",
        )
    return matcher(scheduled_months, target_month)


def should_pattern_occur_in_month(pattern: DetectedPattern, target_month: int) -> bool:
    """
    Scheduled months always match. Bi-monthly and quarterly patterns also
    project forward from the cycle of their latest scheduled month.
    """
    months = sorted(pattern.scheduled_months or [])
    if target_month in months:
        return True
    if not months:
        return False

    if pattern.recurrence_pattern is RecurrencePattern.bi_monthly:
        result = is_bi_monthly_match(align_to_latest(months, STEP_BI_MONTHLY), target_month)
    elif pattern.recurrence_pattern is RecurrencePattern.quarterly:
        result = is_quarterly_match(align_to_latest(months, STEP_QUARTERLY), target_month)
    else:
        return False

    logger.debug("Pattern %s: %s", pattern.pattern_id, result.reasoning)
    return result.matches


def matches_transaction(pattern: DetectedPattern, txn: TransactionRecord) -> bool:
    """Amount inside the learned range, same category (and subcategory if set), description containment."""
    amount = abs(Decimal(txn.amount))
    if amount < pattern.amount_range.min or amount > pattern.amount_range.max:
        return False

    if txn.category_id != pattern.category_id:
        return False

    if pattern.sub_category_id and txn.sub_category_id != pattern.sub_category_id:
        return False

    description = normalize_description(txn.description)
    pattern_description = normalize_description(pattern.description)
    if not description or not pattern_description:
        return False
    return description in pattern_description or pattern_description in description
