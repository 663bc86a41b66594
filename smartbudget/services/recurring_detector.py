"""
Recurring transaction detection service.

Fetches a user's expense history, groups similar transactions (category +
subcategory + description, never amount), classifies each group's calendar
periodicity and turns confident matches into ``DetectedPattern`` records.

Patterns are keyed by a deterministic hash of (normalized description,
category, subcategory), so repeated detection passes update the same record
instead of piling up duplicates.
"""
import hashlib
import logging
from calendar import monthrange
from collections.abc import Callable
from datetime import date, datetime, timezone

from smartbudget.core.config import settings
from smartbudget.services.periodicity import classify_group
from smartbudget.services.records import (
    AmountRange,
    ApprovalStatus,
    DetectedPattern,
    DetectionData,
    SampleTransaction,
    TransactionRecord,
    new_record_id,
    round_amount,
)
from smartbudget.services.stores import PatternRepository, TransactionStore
from smartbudget.services.transaction_grouper import (
    TransactionGroup,
    group_similar_transactions,
    normalize_description,
)

logger = logging.getLogger(__name__)

# Below this many expenses there is nothing worth grouping
MIN_TRANSACTIONS_FOR_DETECTION = 3


# ─── Helpers ─────────────────────────────────────────────────────────────────

def make_pattern_id(description: str, category_id: str | None, sub_category_id: str | None) -> str:
    key = "|".join([normalize_description(description), category_id or "", sub_category_id or ""])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def shift_months(day: date, months: int) -> date:
    """Same day ``months`` later (negative = earlier), clamped to month end."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def analysis_window(months_to_analyze: int, today: date | None = None) -> tuple[date, date]:
    end = today or date.today()
    return shift_months(end, -months_to_analyze), end


def is_detectable_expense(txn: TransactionRecord) -> bool:
    return txn.amount < 0 and txn.category_id is not None


def _samples(group: TransactionGroup, limit: int) -> list[SampleTransaction]:
    return [
        SampleTransaction(
            transaction_id=t.id,
            description=t.description,
            amount=abs(t.amount),
            date=t.processed_date,
        )
        for t in group.transactions[:limit]
    ]


# ─── Synthesis ────────────────────────────────────────────────────────────────

def build_detected_patterns(
    user_id: str,
    groups: list[TransactionGroup],
    months_to_analyze: int,
    *,
    min_confidence: float | None = None,
    sample_size: int | None = None,
    now: datetime | None = None,
) -> list[DetectedPattern]:
    """Classify each group and build a pending pattern for every confident match."""
    min_confidence = settings.pattern_min_confidence if min_confidence is None else min_confidence
    sample_size = settings.pattern_sample_size if sample_size is None else sample_size
    now = now or datetime.now(timezone.utc)

    patterns: list[DetectedPattern] = []
    for group in groups:
        if len(group.transactions) < 2:
            continue

        match = classify_group(group, months_to_analyze)
        if match is None:
            continue
        if match.confidence < min_confidence:
            logger.debug(
                "Dropping %s pattern for '%s': confidence %.2f below %.2f",
                match.type.value, group.common_description, match.confidence, min_confidence,
            )
            continue

        patterns.append(
            DetectedPattern(
                pattern_id=make_pattern_id(
                    group.common_description, group.category_id, group.sub_category_id
                ),
                user_id=user_id,
                description=group.common_description,
                category_id=group.category_id,
                sub_category_id=group.sub_category_id,
                amount_range=AmountRange(min=group.min_amount, max=group.max_amount),
                recurrence_pattern=match.type,
                scheduled_months=match.scheduled_months,
                average_amount=round_amount(group.average_amount),
                detection_data=DetectionData(
                    confidence=match.confidence,
                    last_detected=now,
                    analysis_months=months_to_analyze,
                    sample_transactions=_samples(group, sample_size),
                ),
            )
        )
    return patterns


# ─── Main detector ────────────────────────────────────────────────────────────

async def detect_patterns(
    store: TransactionStore,
    user_id: str,
    months_to_analyze: int | None = None,
    *,
    today: date | None = None,
) -> list[DetectedPattern]:
    """Run one detection pass. Nothing is persisted; see ``store_detected_patterns``."""
    months_to_analyze = months_to_analyze or settings.pattern_analysis_months
    logger.info(
        "Starting pattern detection for user %s with %d months of data", user_id, months_to_analyze
    )

    start, end = analysis_window(months_to_analyze, today)
    transactions = [t for t in await store.find(user_id, start, end) if is_detectable_expense(t)]
    logger.info("Found %d expense transactions for pattern analysis", len(transactions))

    if len(transactions) < MIN_TRANSACTIONS_FOR_DETECTION:
        logger.info("Not enough transactions for pattern detection")
        return []

    groups = group_similar_transactions(transactions)
    logger.info("Grouped transactions into %d potential patterns", len(groups))

    patterns = build_detected_patterns(user_id, groups, months_to_analyze)
    logger.info("Detected %d high-confidence patterns", len(patterns))
    return patterns


async def store_detected_patterns(
    repository: PatternRepository,
    patterns: list[DetectedPattern],
    id_factory: Callable[[], str] = new_record_id,
) -> list[DetectedPattern]:
    """
    Upsert by ``pattern_id``.

    Existing records get fresh detection data, average and schedule but keep
    their approval decision; new records are inserted as pending.
    """
    saved: list[DetectedPattern] = []
    for pattern in patterns:
        existing = await repository.find_one(pattern.user_id, pattern.pattern_id)

        if existing is None:
            pattern.id = id_factory()
            pattern.approval_status = ApprovalStatus.pending
            pattern.is_active = False
            saved.append(await repository.save(pattern))
            logger.info("Saved new transaction pattern: %s", pattern.display_name)
        else:
            existing.detection_data = pattern.detection_data
            existing.average_amount = pattern.average_amount
            existing.scheduled_months = pattern.scheduled_months
            saved.append(await repository.save(existing))
            logger.info("Updated existing transaction pattern: %s", existing.display_name)

    return saved
