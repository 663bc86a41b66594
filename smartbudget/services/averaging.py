"""
Averaging denominator policies for budget synthesis.

Turning a category's historical total into a monthly figure needs a divisor.
Dividing by the full analysis window understates irregular expenses; dividing
by the months the category appeared in overstates expenses that simply
predate the data we have. Two policies:

  legacy:   only month *counts* are known; always divides by the months present
  enhanced: the full month sets are known; a category present in every month
            of available data divides by the requested window, anything with
            an observed gap divides by the months present

Month values are opaque sortable ints (the smart-budget workflow uses
``year * 100 + month``). No function here raises or returns a divisor below 1.
"""
import enum
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

logger = logging.getLogger(__name__)


class SpendingPatternType(str, enum.Enum):
    REGULAR = "REGULAR"
    MOSTLY_REGULAR = "MOSTLY_REGULAR"
    SEMI_REGULAR = "SEMI_REGULAR"
    IRREGULAR = "IRREGULAR"


# (inclusive lower bound %, type, confidence), checked top to bottom
_COVERAGE_BANDS: list[tuple[int, SpendingPatternType, int]] = [
    (100, SpendingPatternType.REGULAR, 95),
    (80, SpendingPatternType.MOSTLY_REGULAR, 80),
    (50, SpendingPatternType.SEMI_REGULAR, 60),
    (0, SpendingPatternType.IRREGULAR, 40),
]


@dataclass
class SpendingPatternAnalysis:
    pattern_type: SpendingPatternType
    confidence: int
    coverage_percentage: int
    months_present: list[int]
    all_data_months: list[int]


@dataclass
class AveragingStrategy:
    denominator: int
    analysis: SpendingPatternAnalysis
    reasoning: str


def _as_sorted(months: Iterable[int] | None) -> list[int]:
    return sorted(set(months or ()))


def analyze_spending_pattern(
    category_months: Iterable[int] | None,
    all_data_months: Iterable[int] | None,
) -> SpendingPatternAnalysis:
    present = _as_sorted(category_months)
    available = _as_sorted(all_data_months)
    # Months outside the available data do not count towards coverage
    covered = set(present) & set(available)

    if available:
        exact = Decimal(100 * len(covered)) / Decimal(len(available))
    else:
        exact = Decimal(0)
    coverage = int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    if available and len(covered) == len(available):
        _, pattern_type, confidence = _COVERAGE_BANDS[0]
    else:
        # Bands use the unrounded share so 99.5% is never promoted to REGULAR
        for lower, pattern_type, confidence in _COVERAGE_BANDS[1:]:
            if exact >= lower:
                break

    return SpendingPatternAnalysis(
        pattern_type=pattern_type,
        confidence=confidence,
        coverage_percentage=coverage,
        months_present=present,
        all_data_months=available,
    )


# ─── Legacy policy (count-only knowledge) ─────────────────────────────────────

def get_averaging_denominator(
    category_months: Iterable[int] | None,
    all_data_months: int,
    requested_months: int,
) -> int:
    """
    Divide by the months the category appeared in, even at full coverage.

    ``all_data_months`` is a count here, not a set.
    """
    present = set(category_months or ())
    if not present:
        logger.warning("No category months provided, returning 1 to avoid division by zero")
        return 1

    if all_data_months <= 0 or requested_months <= 0:
        logger.warning(
            "Invalid data months (%s) or requested months (%s), falling back to months present",
            all_data_months, requested_months,
        )
        return len(present)

    if len(present) >= all_data_months:
        logger.info(
            "Category appears in all %d available months - dividing by actual months present",
            all_data_months,
        )
    elif len(present) >= math.ceil(all_data_months * 0.8):
        logger.info(
            "Category has high presence (%d/%d months) - dividing by actual months present",
            len(present), all_data_months,
        )
    else:
        logger.info(
            "Category appears sporadically (%d/%d months) - dividing by actual months present",
            len(present), all_data_months,
        )
    return len(present)


# ─── Enhanced policy (full set knowledge) ─────────────────────────────────────

def get_averaging_denominator_enhanced(
    category_months: Iterable[int] | None,
    all_data_months: Iterable[int] | None,
    requested_months: int,
) -> int:
    present = set(category_months or ())
    available = set(all_data_months or ())

    if not present:
        logger.warning("No category months provided, returning 1 to avoid division by zero")
        return 1

    if not available or requested_months <= 0:
        logger.warning("Invalid data months or requested months, falling back to months present")
        return len(present)

    analysis = analyze_spending_pattern(present, available)
    if analysis.pattern_type is SpendingPatternType.REGULAR:
        # Indistinguishable from an expense that predates the data window
        logger.info(
            "Category present in all %d available months - using requested period (%d)",
            len(available), requested_months,
        )
        return requested_months

    logger.info(
        "Category %s (%d%% coverage) - dividing by actual months present (%d)",
        analysis.pattern_type.value, analysis.coverage_percentage, len(present),
    )
    return len(present)


@dataclass(frozen=True)
class LegacyDenominatorPolicy:
    kind: Literal["legacy"] = "legacy"

    def denominator(self, category_months, all_data_months, requested_months: int) -> int:
        return get_averaging_denominator(
            category_months, len(set(all_data_months or ())), requested_months
        )


@dataclass(frozen=True)
class EnhancedDenominatorPolicy:
    kind: Literal["enhanced"] = "enhanced"

    def denominator(self, category_months, all_data_months, requested_months: int) -> int:
        return get_averaging_denominator_enhanced(category_months, all_data_months, requested_months)


DenominatorPolicy = LegacyDenominatorPolicy | EnhancedDenominatorPolicy

LEGACY = LegacyDenominatorPolicy()
ENHANCED = EnhancedDenominatorPolicy()


# ─── Strategy ─────────────────────────────────────────────────────────────────

def generate_reasoning(analysis: SpendingPatternAnalysis, denominator: int) -> str:
    pct = analysis.coverage_percentage
    templates = {
        SpendingPatternType.REGULAR: (
            f"Regular expense appearing in all {len(analysis.all_data_months)} available months. "
            f"Using {denominator} months for averaging."
        ),
        SpendingPatternType.MOSTLY_REGULAR: (
            f"Mostly regular expense ({pct}% coverage). "
            f"Missing months likely due to limited data history. "
            f"Using actual months present ({denominator})."
        ),
        SpendingPatternType.SEMI_REGULAR: (
            f"Semi-regular expense ({pct}% coverage). "
            f"Using actual months present ({denominator}) to avoid over-averaging."
        ),
        SpendingPatternType.IRREGULAR: (
            f"Irregular expense ({pct}% coverage). "
            f"Using actual months present ({denominator}) to reflect true spending pattern."
        ),
    }
    return templates.get(
        analysis.pattern_type,
        f"Using {denominator} months for averaging based on spending pattern analysis.",
    )


def get_averaging_strategy(
    category_months: Iterable[int] | None,
    all_data_months: Iterable[int] | None,
    requested_months: int,
    policy: DenominatorPolicy = ENHANCED,
) -> AveragingStrategy:
    analysis = analyze_spending_pattern(category_months, all_data_months)
    denominator = policy.denominator(category_months, all_data_months, requested_months)
    return AveragingStrategy(
        denominator=denominator,
        analysis=analysis,
        reasoning=generate_reasoning(analysis, denominator),
    )
