"""
Async SQLAlchemy implementations of the engine's collaborator protocols.

Rows are converted to and from the dataclasses in ``services/records.py``.
Ids are UUIDs in the database and strings in the engine. Writes are flushed,
never committed; the request handler owns the transaction.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from smartbudget.models.budget import MonthlyBudget
from smartbudget.models.pattern import TransactionPattern
from smartbudget.models.transaction import Transaction
from smartbudget.services.pattern_matching import should_pattern_occur_in_month
from smartbudget.services.records import (
    AmountRange,
    ApprovalStatus,
    DetectedPattern,
    DetectionData,
    RecurrencePattern,
    SampleTransaction,
    TransactionRecord,
)
from smartbudget.services.smart_budget import BudgetLine, SmartBudget

logger = logging.getLogger(__name__)


# ─── Conversion helpers ───────────────────────────────────────────────────────

def _uuid(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _str(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


def to_transaction_record(row: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=str(row.id),
        description=row.description,
        amount=row.amount,
        processed_date=row.processed_date,
        category_id=_str(row.category_id),
        sub_category_id=_str(row.sub_category_id),
    )


def detection_data_to_json(data: DetectionData) -> dict:
    return {
        "confidence": data.confidence,
        "last_detected": data.last_detected.isoformat(),
        "analysis_months": data.analysis_months,
        "sample_transactions": [
            {
                "transaction_id": s.transaction_id,
                "description": s.description,
                "amount": str(s.amount),
                "date": s.date.isoformat(),
            }
            for s in data.sample_transactions
        ],
    }


def detection_data_from_json(raw: dict) -> DetectionData:
    return DetectionData(
        confidence=float(raw.get("confidence", 0)),
        last_detected=datetime.fromisoformat(raw["last_detected"]),
        analysis_months=int(raw.get("analysis_months", 0)),
        sample_transactions=[
            SampleTransaction(
                transaction_id=s["transaction_id"],
                description=s["description"],
                amount=Decimal(s["amount"]),
                date=date.fromisoformat(s["date"]),
            )
            for s in raw.get("sample_transactions", [])
        ],
    )


def to_detected_pattern(row: TransactionPattern) -> DetectedPattern:
    return DetectedPattern(
        id=str(row.id),
        pattern_id=row.pattern_id,
        user_id=str(row.user_id),
        description=row.description,
        category_id=_str(row.category_id),
        sub_category_id=_str(row.sub_category_id),
        amount_range=AmountRange(min=row.amount_min, max=row.amount_max),
        recurrence_pattern=RecurrencePattern(row.recurrence_pattern),
        scheduled_months=list(row.scheduled_months or []),
        average_amount=row.average_amount,
        detection_data=detection_data_from_json(row.detection_data),
        approval_status=ApprovalStatus(row.approval_status),
        is_active=row.is_active,
        approved_at=row.approved_at,
        notes=row.notes,
    )


def _pattern_values(pattern: DetectedPattern) -> dict:
    return {
        "description": pattern.description,
        "category_id": _uuid(pattern.category_id),
        "sub_category_id": _uuid(pattern.sub_category_id),
        "amount_min": pattern.amount_range.min,
        "amount_max": pattern.amount_range.max,
        "average_amount": pattern.average_amount,
        "recurrence_pattern": pattern.recurrence_pattern.value,
        "scheduled_months": list(pattern.scheduled_months),
        "detection_data": detection_data_to_json(pattern.detection_data),
        "approval_status": pattern.approval_status.value,
        "is_active": pattern.is_active,
        "approved_at": pattern.approved_at,
        "notes": pattern.notes,
    }


def _apply_pattern(row: TransactionPattern, pattern: DetectedPattern) -> None:
    for column, value in _pattern_values(pattern).items():
        setattr(row, column, value)


# Fields a detection pass may refresh; the approval decision is never among them
DETECTION_FIELDS = ("detection_data", "average_amount", "scheduled_months")


def pattern_upsert_statement(pattern: DetectedPattern):
    """
    Insert keyed on (user_id, pattern_id). A concurrent pass that inserted the
    same pattern first is updated in place, last writer wins.
    """
    stmt = pg_insert(TransactionPattern).values(
        id=_uuid(pattern.id) or uuid.uuid4(),
        user_id=_uuid(pattern.user_id),
        pattern_id=pattern.pattern_id,
        **_pattern_values(pattern),
    )
    return stmt.on_conflict_do_update(
        constraint="uq_transaction_patterns_user_pattern",
        set_={
            **{column: stmt.excluded[column] for column in DETECTION_FIELDS},
            "updated_at": func.now(),
        },
    ).returning(TransactionPattern)


def budget_line_to_json(line: BudgetLine) -> dict:
    payload = {
        "category_id": line.category_id,
        "sub_category_id": line.sub_category_id,
        "budgeted_amount": int(line.budgeted_amount),
        "actual_amount": int(line.actual_amount),
        "source": line.source.value,
    }
    if line.reasoning:
        payload["reasoning"] = line.reasoning
    if line.pattern_info:
        payload["pattern_info"] = {
            "pattern_id": line.pattern_info.pattern_id,
            "pattern_type": line.pattern_info.pattern_type.value,
            "recurring_amount": int(line.pattern_info.recurring_amount),
        }
    return payload


# ─── Stores ───────────────────────────────────────────────────────────────────

class SqlTransactionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, user_id: str, start: date, end: date) -> list[TransactionRecord]:
        rows = (
            await self.db.execute(
                select(Transaction)
                .where(
                    Transaction.user_id == _uuid(user_id),
                    Transaction.processed_date >= start,
                    Transaction.processed_date <= end,
                )
                .order_by(Transaction.processed_date)
            )
        ).scalars().all()
        return [to_transaction_record(r) for r in rows]


class SqlPatternRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _list(self, user_id: str, *conditions) -> list[DetectedPattern]:
        rows = (
            await self.db.execute(
                select(TransactionPattern)
                .where(TransactionPattern.user_id == _uuid(user_id), *conditions)
                .order_by(TransactionPattern.created_at)
            )
        ).scalars().all()
        return [to_detected_pattern(r) for r in rows]

    async def find_one(self, user_id: str, pattern_id: str) -> DetectedPattern | None:
        row = (
            await self.db.execute(
                select(TransactionPattern).where(
                    TransactionPattern.user_id == _uuid(user_id),
                    TransactionPattern.pattern_id == pattern_id,
                )
            )
        ).scalar_one_or_none()
        return to_detected_pattern(row) if row else None

    async def get(self, user_id: str, record_id: str) -> DetectedPattern | None:
        row = (
            await self.db.execute(
                select(TransactionPattern).where(
                    TransactionPattern.id == _uuid(record_id),
                    TransactionPattern.user_id == _uuid(user_id),
                )
            )
        ).scalar_one_or_none()
        return to_detected_pattern(row) if row else None

    async def save(self, pattern: DetectedPattern) -> DetectedPattern:
        row = await self.db.get(TransactionPattern, _uuid(pattern.id)) if pattern.id else None
        if row is not None:
            _apply_pattern(row, pattern)
            await self.db.flush()
            return pattern

        result = await self.db.execute(pattern_upsert_statement(pattern))
        await self.db.flush()
        row = result.scalar_one()
        await self.db.refresh(row)
        if str(row.id) != pattern.id:
            logger.info("Pattern %s was stored concurrently, merged into %s", pattern.pattern_id, row.id)
        return to_detected_pattern(row)

    async def get_user_patterns(self, user_id: str) -> list[DetectedPattern]:
        return await self._list(user_id)

    async def get_pending_patterns(self, user_id: str) -> list[DetectedPattern]:
        return await self._list(user_id, TransactionPattern.approval_status == ApprovalStatus.pending.value)

    async def get_active_patterns(self, user_id: str) -> list[DetectedPattern]:
        return await self._list(
            user_id,
            TransactionPattern.approval_status == ApprovalStatus.approved.value,
            TransactionPattern.is_active.is_(True),
        )

    async def get_patterns_for_month(self, user_id: str, month: int) -> list[DetectedPattern]:
        # Projection beyond the stored months is not expressible in SQL
        patterns = await self.get_active_patterns(user_id)
        return [p for p in patterns if should_pattern_occur_in_month(p, month)]


class SqlBudgetStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save_monthly_budget(self, user_id: str, budget: SmartBudget) -> str:
        """One budget per user and month; recalculating replaces the lines."""
        existing = (
            await self.db.execute(
                select(MonthlyBudget).where(
                    MonthlyBudget.user_id == _uuid(user_id),
                    MonthlyBudget.year == budget.year,
                    MonthlyBudget.month == budget.month,
                )
            )
        ).scalar_one_or_none()

        if existing is None:
            existing = MonthlyBudget(user_id=_uuid(user_id), year=budget.year, month=budget.month)
            self.db.add(existing)
        else:
            logger.info("Replacing budget %s for %d-%02d", existing.id, budget.year, budget.month)

        existing.currency = budget.currency
        existing.expense_budgets = [budget_line_to_json(line) for line in budget.expense_budgets]
        existing.total_budgeted_expenses = budget.total_budgeted_expenses
        existing.is_auto_calculated = budget.is_auto_calculated
        existing.notes = budget.notes
        existing.status = budget.status
        await self.db.flush()
        return str(existing.id)
