"""
Tests for the smart budget workflow, against in-memory stores.
"""
from datetime import date
from decimal import Decimal

import pytest

from smartbudget.services.periodicity import check_bi_monthly_pattern
from smartbudget.services.records import ApprovalStatus, RecurrencePattern
from smartbudget.services.smart_budget import (
    ApprovalRequired,
    BudgetCalculated,
    BudgetLine,
    BudgetSource,
    DetectionComplete,
    PatternInfo,
    PendingPatternsError,
    SmartBudgetOrchestrator,
    WorkflowState,
    advance,
    budget_window,
    group_transactions_by_category,
    merge_budget_components,
    should_pattern_occur_in_month,
)

USER_ID = "user-1"
TODAY = date(2024, 6, 15)


@pytest.fixture
def orchestrator(transaction_store, pattern_repo, budget_store):
    return SmartBudgetOrchestrator(transaction_store, pattern_repo, budget_store, today=TODAY)


def _history(make_txn):
    """Jan-Jun 2024: monthly groceries, irregular restaurant visits, bi-monthly municipal tax."""
    txns = [make_txn("Grocery Store", -300, f"2024-{m:02d}-03", category_id="cat-food") for m in range(1, 7)]
    txns += [
        make_txn("Restaurant", -100, "2024-01-05", category_id="cat-fun"),
        make_txn("Restaurant", -140, "2024-01-20", category_id="cat-fun"),
        make_txn("Restaurant", -120, "2024-04-12", category_id="cat-fun"),
        make_txn("Municipal Tax", -400, "2024-01-10", category_id="cat-tax"),
        make_txn("Municipal Tax", -450, "2024-03-10", category_id="cat-tax"),
        make_txn("Municipal Tax", -500, "2024-05-10", category_id="cat-tax"),
        make_txn("Salary", 12000, "2024-02-01", category_id="cat-income"),
    ]
    return txns


# ── pure helpers ─────────────────────────────────────────────────────────────

class TestMergeBudgetComponents:
    def _line(self, amount, source, key=("cat-tax", "general")):
        return BudgetLine(key[0], key[1], Decimal(amount), source)

    def test_same_key_combines(self):
        average = self._line(100, BudgetSource.non_recurring_average)
        recurring = self._line(50, BudgetSource.recurring_pattern)
        recurring.pattern_info = PatternInfo("pat-1", RecurrencePattern.bi_monthly, Decimal(50))

        merged = merge_budget_components([average], [recurring])

        assert len(merged) == 1
        assert merged[0].budgeted_amount == Decimal("150")
        assert merged[0].source is BudgetSource.combined
        assert merged[0].pattern_info.pattern_id == "pat-1"

    def test_disjoint_key_appends(self):
        average = self._line(100, BudgetSource.non_recurring_average, key=("cat-food", "general"))
        recurring = self._line(50, BudgetSource.recurring_pattern)

        merged = merge_budget_components([average], [recurring])

        assert [(line.key, line.budgeted_amount, line.source) for line in merged] == [
            (("cat-food", "general"), Decimal("100"), BudgetSource.non_recurring_average),
            (("cat-tax", "general"), Decimal("50"), BudgetSource.recurring_pattern),
        ]

    def test_inputs_untouched(self):
        average = self._line(100, BudgetSource.non_recurring_average)
        merge_budget_components([average], [self._line(50, BudgetSource.recurring_pattern)])
        assert average.budgeted_amount == Decimal("100")
        assert average.source is BudgetSource.non_recurring_average

    def test_two_patterns_same_key_stay_recurring(self):
        first = self._line(50, BudgetSource.recurring_pattern)
        second = self._line(30, BudgetSource.recurring_pattern)
        merged = merge_budget_components([], [first, second])
        assert len(merged) == 1
        assert merged[0].budgeted_amount == Decimal("80")
        assert merged[0].source is BudgetSource.recurring_pattern


class TestShouldPatternOccurInMonth:
    @pytest.mark.parametrize(
        "recurrence, months, target, expected",
        [
            (RecurrencePattern.quarterly, [3, 6, 9, 12], 6, True),
            (RecurrencePattern.quarterly, [3, 6, 9, 12], 5, False),
            (RecurrencePattern.bi_monthly, [2, 4, 6], 8, True),
            (RecurrencePattern.bi_monthly, [2, 4, 6], 7, False),
            (RecurrencePattern.quarterly, [3, 6, 9], 12, True),
            (RecurrencePattern.quarterly, [3, 6, 9], 10, False),
            (RecurrencePattern.yearly, [6], 6, True),
            (RecurrencePattern.yearly, [6], 7, False),
        ],
    )
    def test_projection(self, make_pattern, recurrence, months, target, expected):
        pattern = make_pattern(recurrence=recurrence, scheduled_months=months)
        assert should_pattern_occur_in_month(pattern, target) is expected

    def test_no_schedule(self, make_pattern):
        assert not should_pattern_occur_in_month(make_pattern(scheduled_months=()), 3)

    def test_shifted_bi_monthly_cycle_is_budgeted_every_other_month(self, make_pattern):
        match = check_bi_monthly_pattern([1, 3, 6, 8], 8)
        pattern = make_pattern(scheduled_months=match.scheduled_months)
        due = [m for m in range(1, 13) if should_pattern_occur_in_month(pattern, m)]
        assert due == [2, 4, 6, 8, 10, 12]

    def test_mixed_schedule_projects_from_latest_cycle(self, make_pattern):
        pattern = make_pattern(scheduled_months=[1, 3, 6, 8])
        assert should_pattern_occur_in_month(pattern, 10)
        assert not should_pattern_occur_in_month(pattern, 5)
        assert not should_pattern_occur_in_month(pattern, 11)


class TestHelpers:
    def test_budget_window(self):
        assert budget_window(2024, 7, 6) == (date(2024, 1, 1), date(2024, 6, 30))

    def test_budget_window_across_year(self):
        assert budget_window(2024, 2, 6) == (date(2023, 8, 1), date(2024, 1, 31))

    def test_missing_ids_grouped_as_unknown_general(self, make_txn):
        groups = group_transactions_by_category([make_txn("Cash", -50, "2024-01-01", category_id=None)])
        assert list(groups) == [("unknown", "general")]

    def test_illegal_transition(self):
        with pytest.raises(RuntimeError):
            advance(WorkflowState.BUDGET_CALCULATED, WorkflowState.DETECTING)


# ── calculate_smart_budget ───────────────────────────────────────────────────

class TestCalculateSmartBudget:
    @pytest.mark.asyncio
    async def test_pending_blocks_before_reading_transactions(
        self, orchestrator, make_pattern, pattern_repo, transaction_store
    ):
        pattern_repo.add(make_pattern(status=ApprovalStatus.pending))

        with pytest.raises(PendingPatternsError) as exc_info:
            await orchestrator.calculate_smart_budget(USER_ID, 2024, 7, 6)

        assert exc_info.value.pending_count == 1
        assert "Cannot calculate budget with 1 pending patterns" in str(exc_info.value)
        assert transaction_store.calls == []

    @pytest.mark.asyncio
    async def test_pattern_aware_budget(
        self, orchestrator, make_txn, make_pattern, pattern_repo, transaction_store
    ):
        transaction_store.transactions.extend(_history(make_txn))
        pattern_repo.add(make_pattern(scheduled_months=(1, 3, 5), average=450))

        result = await orchestrator.calculate_smart_budget(USER_ID, 2024, 7, 6)

        lines = {line.key: line for line in result.budget.expense_budgets}
        food = lines[("cat-food", "general")]
        assert food.budgeted_amount == Decimal("300")
        assert food.source is BudgetSource.non_recurring_average
        assert "Regular expense appearing in all 6 available months" in food.reasoning

        fun = lines[("cat-fun", "general")]
        assert fun.budgeted_amount == Decimal("180")  # 360 over the 2 months present

        tax = lines[("cat-tax", "general")]
        assert tax.budgeted_amount == Decimal("450")
        assert tax.source is BudgetSource.recurring_pattern

        assert result.budget.total_budgeted_expenses == Decimal("930")
        assert result.budget.status == "draft"
        assert result.budget.is_auto_calculated
        assert "Includes 1 approved recurring patterns" in result.budget.notes

        calc = result.calculation
        assert calc.total_transactions == 12
        assert calc.recurring_transactions == 3
        assert calc.non_recurring_transactions == 9
        assert calc.approved_patterns == 1
        assert calc.methodology == "pattern-aware-calculation"

    @pytest.mark.asyncio
    async def test_pattern_not_due_this_month(
        self, orchestrator, make_txn, make_pattern, pattern_repo, transaction_store
    ):
        transaction_store.transactions.extend(_history(make_txn))
        pattern_repo.add(make_pattern(scheduled_months=(1, 3, 5), average=450))

        result = await orchestrator.calculate_smart_budget(USER_ID, 2024, 8, 6)

        keys = {line.key for line in result.budget.expense_budgets}
        assert ("cat-tax", "general") not in keys


# ── execute_smart_budget_workflow ────────────────────────────────────────────

class TestWorkflow:
    @pytest.mark.asyncio
    async def test_pending_requires_approval(
        self, orchestrator, make_pattern, pattern_repo, transaction_store, budget_store
    ):
        pattern_repo.add(make_pattern(status=ApprovalStatus.pending))

        outcome = await orchestrator.execute_smart_budget_workflow(USER_ID, 2024, 7, 6)

        assert isinstance(outcome, ApprovalRequired)
        assert outcome.step is WorkflowState.PATTERN_APPROVAL_REQUIRED
        assert not outcome.success
        assert outcome.next_action == "approve-patterns"
        assert transaction_store.calls == []
        assert budget_store.saved == []

    @pytest.mark.asyncio
    async def test_first_run_detects_and_stops(
        self, orchestrator, make_txn, pattern_repo, transaction_store, budget_store
    ):
        transaction_store.transactions.extend(_history(make_txn))

        outcome = await orchestrator.execute_smart_budget_workflow(USER_ID, 2024, 7, 6)

        assert isinstance(outcome, DetectionComplete)
        assert outcome.step is WorkflowState.PATTERNS_DETECTED
        assert [p.description for p in outcome.detected_patterns] == ["municipal tax"]
        assert all(p.approval_status is ApprovalStatus.pending for p in pattern_repo.records.values())
        assert budget_store.saved == []

    @pytest.mark.asyncio
    async def test_nothing_detected_calculates(self, orchestrator, make_txn, transaction_store, budget_store):
        transaction_store.transactions.extend(
            make_txn("Grocery Store", -300, f"2024-{m:02d}-03", category_id="cat-food") for m in range(1, 7)
        )

        outcome = await orchestrator.execute_smart_budget_workflow(USER_ID, 2024, 7, 6)

        assert isinstance(outcome, BudgetCalculated)
        assert outcome.success
        assert outcome.budget_id == "budget-1"
        assert budget_store.saved[0][1] is outcome.result.budget

    @pytest.mark.asyncio
    async def test_existing_patterns_skip_detection(
        self, orchestrator, make_txn, make_pattern, pattern_repo, transaction_store
    ):
        transaction_store.transactions.extend(_history(make_txn))
        pattern_repo.add(make_pattern())

        outcome = await orchestrator.execute_smart_budget_workflow(USER_ID, 2024, 7, 6)

        assert isinstance(outcome, BudgetCalculated)
        assert len(transaction_store.calls) == 1

    @pytest.mark.asyncio
    async def test_forced_detection_of_known_pattern_calculates(
        self, orchestrator, make_txn, pattern_repo, transaction_store
    ):
        transaction_store.transactions.extend(_history(make_txn))
        first = await orchestrator.execute_smart_budget_workflow(USER_ID, 2024, 7, 6)
        for p in first.detected_patterns:
            p.approve()

        outcome = await orchestrator.execute_smart_budget_workflow(
            USER_ID, 2024, 7, 6, force_detection=True
        )

        assert isinstance(outcome, BudgetCalculated)
        assert len(pattern_repo.records) == 1

    @pytest.mark.asyncio
    async def test_reject_pending_and_calculate(
        self, orchestrator, make_txn, make_pattern, pattern_repo, transaction_store
    ):
        transaction_store.transactions.extend(_history(make_txn))
        pending = make_pattern(status=ApprovalStatus.pending)
        pattern_repo.add(pending)

        outcome = await orchestrator.reject_pending_and_calculate(USER_ID, 2024, 7, 6)

        assert isinstance(outcome, BudgetCalculated)
        assert pending.approval_status is ApprovalStatus.rejected
        assert outcome.result.calculation.approved_patterns == 0
        assert outcome.result.calculation.recurring_transactions == 0
