"""
Periodicity classification for transaction groups.

Pipeline per group, first match wins:
  1. single-per-period: two occurrences in one calendar month reject the group
  2. bi-monthly: month gaps resolve to 2
  3. quarterly: month gaps resolve to 3
  4. yearly: one month, one occurrence per year, at least two years

Month gaps for bi-monthly/quarterly are computed on the circle of calendar
months, so Nov → Jan counts as a 2-month gap. The largest circular gap is the
unobserved stretch outside the analysis window and is ignored.

Spacing tolerance: the gaps must resolve to one dominant step and at most one
gap may be off by a single month. Scheduled months keep only the cycle the
latest occurrence belongs to.

Nothing here raises; "no pattern" is ``None``.
"""
import logging
from collections import Counter
from dataclasses import dataclass

from smartbudget.services.records import RecurrencePattern, TransactionRecord
from smartbudget.services.transaction_grouper import TransactionGroup

logger = logging.getLogger(__name__)

STEP_BI_MONTHLY = 2
STEP_QUARTERLY = 3
STEP_YEARLY = 12

MAX_CONFIDENCE = 0.95


@dataclass
class RecurrenceMatch:
    type: RecurrencePattern
    scheduled_months: list[int]
    confidence: float


# ─── Helpers ──────────────────────────────────────────────────────────────────

def month_occurrences(transactions: list[TransactionRecord]) -> list[int]:
    return [t.processed_date.month for t in transactions]


def expected_occurrences(analysis_months: int, step: int) -> int:
    return max(1, analysis_months // step)


def circular_gaps(months: list[int]) -> list[int]:
    """Gaps between distinct calendar months, minus the widest (wrap) gap."""
    unique = sorted(set(months))
    if len(unique) < 2:
        return []
    gaps = [b - a for a, b in zip(unique, unique[1:])]
    gaps.append(unique[0] + 12 - unique[-1])
    gaps.remove(max(gaps))
    return gaps


def latest_month(months: list[int]) -> int:
    """The most recent month on the circle: the one that opens the widest gap."""
    unique = sorted(set(months))
    gaps = [(b - a, a) for a, b in zip(unique, unique[1:])]
    gaps.append((unique[0] + 12 - unique[-1], unique[-1]))
    return max(gaps)[1]


def align_to_latest(months: list[int], step: int) -> list[int]:
    """
    Observed months that share the latest month's position in a ``step`` cycle.

    A tolerated off-by-one gap shifts the cycle; months from before the shift
    are dropped so the schedule holds one cycle only.
    """
    if not months:
        return []
    anchor = latest_month(months)
    return sorted({m for m in months if (m - anchor) % step == 0})


def validate_spacing(gaps: list[int], step: int) -> bool:
    """
    True when ``step`` is the dominant gap and at most one gap deviates,
    by exactly one month.
    """
    if not gaps:
        return False
    exact = sum(1 for g in gaps if g == step)
    deviating = [g for g in gaps if g != step]
    if exact == 0 or exact < len(deviating):
        return False
    if len(deviating) > 1:
        return False
    return all(abs(g - step) == 1 for g in deviating)


def calculate_confidence(observed: int, expected: int, spacing_valid: bool) -> float:
    if not spacing_valid or expected <= 0:
        return 0.0
    return min(MAX_CONFIDENCE, 0.5 + 0.4 * (observed / expected))


def validate_single_transaction_per_period(transactions: list[TransactionRecord]) -> bool:
    """At least two occurrences and no two in the same calendar month."""
    if len(transactions) < 2:
        return False

    per_month = Counter((t.processed_date.year, t.processed_date.month) for t in transactions)
    for (year, month), count in per_month.items():
        if count > 1:
            logger.debug(
                "Rejecting pattern: %d transactions in %d-%02d", count, year, month
            )
            return False
    return True


def _check_cyclic(
    months: list[int], analysis_months: int, step: int
) -> tuple[list[int], float] | None:
    if len(months) < 2:
        return None

    observed = len(months)
    expected = expected_occurrences(analysis_months, step)
    if abs(observed - expected) > 1:
        return None

    gaps = circular_gaps(months)
    valid = validate_spacing(gaps, step)
    if not valid:
        logger.debug("Rejecting %d-month cycle: gaps %s", step, gaps)
        return None

    return align_to_latest(months, step), calculate_confidence(observed, expected, valid)


# ─── Checks ───────────────────────────────────────────────────────────────────

def check_bi_monthly_pattern(months: list[int], analysis_months: int) -> RecurrenceMatch | None:
    """Scheduled months are the observed months of the latest cycle; later months are projected at budget time."""
    result = _check_cyclic(months, analysis_months, STEP_BI_MONTHLY)
    if result is None:
        return None
    scheduled, confidence = result
    return RecurrenceMatch(RecurrencePattern.bi_monthly, scheduled, confidence)


def check_quarterly_pattern(months: list[int], analysis_months: int) -> RecurrenceMatch | None:
    """Scheduled months run from the earliest observed month in steps of 3 through December."""
    result = _check_cyclic(months, analysis_months, STEP_QUARTERLY)
    if result is None:
        return None
    observed, confidence = result
    projected = set(range(min(observed), 13, STEP_QUARTERLY))
    scheduled = sorted(projected | set(observed))
    return RecurrenceMatch(RecurrencePattern.quarterly, scheduled, confidence)


def check_yearly_pattern(
    transactions: list[TransactionRecord], analysis_months: int
) -> RecurrenceMatch | None:
    if len(transactions) < 2:
        return None

    months = {t.processed_date.month for t in transactions}
    if len(months) != 1:
        return None

    years = sorted(t.processed_date.year for t in transactions)
    if len(set(years)) != len(years) or len(years) < 2:
        return None

    gaps = [(b - a) * 12 for a, b in zip(years, years[1:])]
    valid = validate_spacing(gaps, STEP_YEARLY)
    if not valid:
        return None

    expected = expected_occurrences(analysis_months, STEP_YEARLY)
    confidence = calculate_confidence(len(years), expected, valid)
    return RecurrenceMatch(RecurrencePattern.yearly, [months.pop()], confidence)


def classify_group(group: TransactionGroup, analysis_months: int) -> RecurrenceMatch | None:
    transactions = group.transactions
    if not validate_single_transaction_per_period(transactions):
        return None

    months = month_occurrences(transactions)
    return (
        check_bi_monthly_pattern(months, analysis_months)
        or check_quarterly_pattern(months, analysis_months)
        or check_yearly_pattern(transactions, analysis_months)
    )
