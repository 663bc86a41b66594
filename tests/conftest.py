"""
In-memory stand-ins for the engine's collaborators.

Every fake records the calls it receives so tests can assert on what the
engine did (or did not) touch.
"""
import itertools
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from smartbudget.services.pattern_matching import should_pattern_occur_in_month
from smartbudget.services.records import (
    AmountRange,
    ApprovalStatus,
    DetectedPattern,
    DetectionData,
    RecurrencePattern,
    TransactionRecord,
)

USER_ID = "user-1"


class FakeTransactionStore:
    def __init__(self):
        self.transactions: list[TransactionRecord] = []
        self.calls: list[tuple[str, date, date]] = []

    async def find(self, user_id: str, start: date, end: date) -> list[TransactionRecord]:
        self.calls.append((user_id, start, end))
        found = [t for t in self.transactions if start <= t.processed_date <= end]
        return sorted(found, key=lambda t: t.processed_date)


class FakePatternRepository:
    def __init__(self):
        self.records: dict[str, DetectedPattern] = {}
        self.calls: list[str] = []
        self._ids = itertools.count(1)

    def add(self, *patterns: DetectedPattern) -> None:
        for p in patterns:
            if p.id is None:
                p.id = f"rec-{next(self._ids)}"
            self.records[p.id] = p

    async def find_one(self, user_id, pattern_id):
        self.calls.append("find_one")
        return next(
            (p for p in self.records.values() if p.user_id == user_id and p.pattern_id == pattern_id),
            None,
        )

    async def get(self, user_id, record_id):
        self.calls.append("get")
        return self.records.get(record_id)

    async def save(self, pattern):
        self.calls.append("save")
        if pattern.id is None:
            pattern.id = f"rec-{next(self._ids)}"
        self.records[pattern.id] = pattern
        return pattern

    async def get_user_patterns(self, user_id):
        self.calls.append("get_user_patterns")
        return [p for p in self.records.values() if p.user_id == user_id]

    async def get_pending_patterns(self, user_id):
        self.calls.append("get_pending_patterns")
        return [
            p for p in self.records.values()
            if p.user_id == user_id and p.approval_status is ApprovalStatus.pending
        ]

    async def get_active_patterns(self, user_id):
        self.calls.append("get_active_patterns")
        return [
            p for p in self.records.values()
            if p.user_id == user_id and p.approval_status is ApprovalStatus.approved and p.is_active
        ]

    async def get_patterns_for_month(self, user_id, month):
        self.calls.append("get_patterns_for_month")
        return [p for p in await self.get_active_patterns(user_id) if should_pattern_occur_in_month(p, month)]


class FakeBudgetStore:
    def __init__(self):
        self.saved: list[tuple[str, object]] = []

    async def save_monthly_budget(self, user_id, budget):
        self.saved.append((user_id, budget))
        return f"budget-{len(self.saved)}"


@pytest.fixture
def make_txn():
    ids = itertools.count(1)

    def _make(description, amount, on, category_id="cat-utilities", sub_category_id=None):
        if isinstance(on, str):
            on = date.fromisoformat(on)
        return TransactionRecord(
            id=f"txn-{next(ids)}",
            description=description,
            amount=Decimal(str(amount)),
            processed_date=on,
            category_id=category_id,
            sub_category_id=sub_category_id,
        )

    return _make


@pytest.fixture
def make_pattern():
    ids = itertools.count(1)

    def _make(
        description="municipal tax",
        recurrence=RecurrencePattern.bi_monthly,
        scheduled_months=(1, 3, 5),
        average=450,
        amount_min=400,
        amount_max=500,
        category_id="cat-tax",
        sub_category_id=None,
        status=ApprovalStatus.approved,
        user_id=USER_ID,
    ):
        n = next(ids)
        return DetectedPattern(
            id=f"pat-{n}",
            pattern_id=f"key-{n}",
            user_id=user_id,
            description=description,
            category_id=category_id,
            sub_category_id=sub_category_id,
            amount_range=AmountRange(min=Decimal(amount_min), max=Decimal(amount_max)),
            recurrence_pattern=recurrence,
            scheduled_months=list(scheduled_months),
            average_amount=Decimal(average),
            detection_data=DetectionData(
                confidence=0.9,
                last_detected=datetime(2024, 6, 1, tzinfo=timezone.utc),
                analysis_months=6,
            ),
            approval_status=status,
            is_active=status is ApprovalStatus.approved,
        )

    return _make


@pytest.fixture
def transaction_store():
    return FakeTransactionStore()


@pytest.fixture
def pattern_repo():
    return FakePatternRepository()


@pytest.fixture
def budget_store():
    return FakeBudgetStore()
