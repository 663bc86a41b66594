"""
Approval lifecycle for detected patterns.

A pattern only leaves ``pending`` through one of these calls. Lookups are
scoped to the calling user: a record owned by someone else is reported as
not found.
"""
import calendar
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from smartbudget.services.pattern_matching import should_pattern_occur_in_month
from smartbudget.services.records import ApprovalStatus, DetectedPattern
from smartbudget.services.stores import PatternRepository

logger = logging.getLogger(__name__)

MAX_REJECTION_REASON_LENGTH = 500


class PatternNotFoundError(LookupError):
    pass


async def _get_owned(repository: PatternRepository, user_id: str, record_id: str) -> DetectedPattern:
    pattern = await repository.get(user_id, record_id)
    if pattern is None or pattern.user_id != user_id:
        raise PatternNotFoundError(f"Pattern {record_id} not found")
    return pattern


async def approve_pattern(repository: PatternRepository, user_id: str, record_id: str) -> DetectedPattern:
    pattern = await _get_owned(repository, user_id, record_id)
    pattern.approve()
    saved = await repository.save(pattern)
    logger.info("Pattern approved: %s for user %s", saved.display_name, user_id)
    return saved


async def reject_pattern(
    repository: PatternRepository,
    user_id: str,
    record_id: str,
    reason: str | None = None,
) -> DetectedPattern:
    if reason is not None and len(reason) > MAX_REJECTION_REASON_LENGTH:
        raise ValueError(f"Reason must be under {MAX_REJECTION_REASON_LENGTH} characters")

    pattern = await _get_owned(repository, user_id, record_id)
    pattern.reject(reason)
    saved = await repository.save(pattern)
    logger.info("Pattern rejected: %s for user %s", saved.display_name, user_id)
    return saved


async def bulk_approve(
    repository: PatternRepository, user_id: str, record_ids: list[str]
) -> list[DetectedPattern]:
    """Approve every listed pattern that is the caller's and still pending; others are skipped."""
    candidates: list[DetectedPattern] = []
    for record_id in dict.fromkeys(record_ids):
        pattern = await repository.get(user_id, record_id)
        if (
            pattern is not None
            and pattern.user_id == user_id
            and pattern.approval_status is ApprovalStatus.pending
        ):
            candidates.append(pattern)

    if not candidates:
        raise PatternNotFoundError("No valid pending patterns found")

    approved = [await repository.save(p.approve()) for p in candidates]
    logger.info("Bulk approved %d patterns for user %s", len(approved), user_id)
    return approved


async def reject_all_pending(repository: PatternRepository, user_id: str) -> list[DetectedPattern]:
    pending = await repository.get_pending_patterns(user_id)
    rejected = [await repository.save(p.reject("Auto-rejected to proceed with budget calculation")) for p in pending]
    if rejected:
        logger.info("Auto-rejected %d pending patterns for user %s", len(rejected), user_id)
    return rejected


# ─── Month preview ────────────────────────────────────────────────────────────

@dataclass
class PatternPreviewLine:
    pattern: DetectedPattern
    amount: Decimal


@dataclass
class MonthPreview:
    year: int
    month: int
    month_name: str
    lines: list[PatternPreviewLine] = field(default_factory=list)

    @property
    def total_pattern_amount(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def pattern_count(self) -> int:
        return len(self.lines)

    @property
    def has_patterns(self) -> bool:
        return bool(self.lines)


def amount_for_month(pattern: DetectedPattern, month: int) -> Decimal:
    return pattern.average_amount if should_pattern_occur_in_month(pattern, month) else Decimal("0")


async def preview_month(
    repository: PatternRepository, user_id: str, year: int, month: int
) -> MonthPreview:
    """Active patterns due in ``month``, projected the same way as the budget, and their amounts."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")

    patterns = await repository.get_patterns_for_month(user_id, month)
    return MonthPreview(
        year=year,
        month=month,
        month_name=calendar.month_name[month],
        lines=[PatternPreviewLine(p, amount_for_month(p, month)) for p in patterns],
    )
