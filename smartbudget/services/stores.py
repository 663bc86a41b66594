"""Collaborator interfaces consumed by the pattern engine and the smart-budget workflow."""
from datetime import date
from typing import Protocol

from smartbudget.services.records import DetectedPattern, TransactionRecord


class TransactionStore(Protocol):
    async def find(self, user_id: str, start: date, end: date) -> list[TransactionRecord]:
        """All of the user's transactions in ``[start, end]``, oldest first."""
        ...


class PatternRepository(Protocol):
    async def find_one(self, user_id: str, pattern_id: str) -> DetectedPattern | None:
        """Lookup by the deterministic pattern key."""
        ...

    async def get(self, user_id: str, record_id: str) -> DetectedPattern | None:
        """Lookup by persisted record id."""
        ...

    async def save(self, pattern: DetectedPattern) -> DetectedPattern:
        ...

    async def get_user_patterns(self, user_id: str) -> list[DetectedPattern]:
        ...

    async def get_pending_patterns(self, user_id: str) -> list[DetectedPattern]:
        ...

    async def get_active_patterns(self, user_id: str) -> list[DetectedPattern]:
        """Approved and active."""
        ...

    async def get_patterns_for_month(self, user_id: str, month: int) -> list[DetectedPattern]:
        """Active patterns due in ``month``, scheduled or projected."""
        ...


class BudgetStore(Protocol):
    async def save_monthly_budget(self, user_id: str, budget) -> str:
        """Persist a calculated ``SmartBudget``; returns the stored budget id."""
        ...
