"""
Smart budget workflow: detect → approval gate → synthesize → merge.

Budget synthesis never runs while any of the user's patterns is still
pending: a transaction could otherwise be counted both under an unapproved
pattern and inside a category average. The workflow reports that situation
(and freshly detected patterns) as explicit outcomes the caller has to
branch on, instead of producing a budget.
"""
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal

from smartbudget.core.config import settings
from smartbudget.services.averaging import ENHANCED, DenominatorPolicy, get_averaging_strategy
from smartbudget.services.pattern_approval import reject_all_pending
from smartbudget.services.pattern_matching import matches_transaction, should_pattern_occur_in_month
from smartbudget.services.recurring_detector import (
    detect_patterns,
    shift_months,
    store_detected_patterns,
)
from smartbudget.services.records import (
    ApprovalStatus,
    DetectedPattern,
    RecurrencePattern,
    TransactionRecord,
    new_record_id,
    round_amount,
)
from smartbudget.services.stores import BudgetStore, PatternRepository, TransactionStore

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "unknown"
GENERAL_SUBCATEGORY = "general"
METHODOLOGY = "pattern-aware-calculation"

CategoryKey = tuple[str, str]


# ─── Workflow states ──────────────────────────────────────────────────────────

class WorkflowState(str, enum.Enum):
    INITIAL = "initial"
    DETECTING = "detecting"
    PATTERN_APPROVAL_REQUIRED = "pattern-approval-required"
    PATTERNS_DETECTED = "pattern-detection-complete"
    BUDGET_CALCULATED = "budget-calculated"


_TRANSITIONS: dict[WorkflowState, set[WorkflowState]] = {
    WorkflowState.INITIAL: {
        WorkflowState.DETECTING,
        WorkflowState.PATTERN_APPROVAL_REQUIRED,
        WorkflowState.BUDGET_CALCULATED,
    },
    WorkflowState.DETECTING: {
        WorkflowState.PATTERN_APPROVAL_REQUIRED,
        WorkflowState.PATTERNS_DETECTED,
        WorkflowState.BUDGET_CALCULATED,
    },
    WorkflowState.PATTERN_APPROVAL_REQUIRED: set(),
    WorkflowState.PATTERNS_DETECTED: set(),
    WorkflowState.BUDGET_CALCULATED: set(),
}


def advance(current: WorkflowState, target: WorkflowState) -> WorkflowState:
    if target not in _TRANSITIONS[current]:
        raise RuntimeError(f"Illegal workflow transition {current.value} -> {target.value}")
    logger.debug("Workflow %s -> %s", current.value, target.value)
    return target


class PendingPatternsError(Exception):
    """Budget calculation refused while patterns await a decision."""

    def __init__(self, patterns: list[DetectedPattern]):
        self.patterns = patterns
        self.pending_count = len(patterns)
        super().__init__(
            f"Cannot calculate budget with {self.pending_count} pending patterns. "
            "Please approve or reject patterns first."
        )


# ─── Budget value types ───────────────────────────────────────────────────────

class BudgetSource(str, enum.Enum):
    non_recurring_average = "non-recurring-average"
    recurring_pattern = "recurring-pattern"
    combined = "combined-average-and-pattern"


@dataclass
class PatternInfo:
    pattern_id: str | None
    pattern_type: RecurrencePattern
    recurring_amount: Decimal


@dataclass
class BudgetLine:
    category_id: str
    sub_category_id: str
    budgeted_amount: Decimal
    source: BudgetSource
    actual_amount: Decimal = Decimal("0")
    reasoning: str | None = None
    pattern_info: PatternInfo | None = None

    @property
    def key(self) -> CategoryKey:
        return self.category_id, self.sub_category_id


@dataclass
class SmartBudget:
    year: int
    month: int
    currency: str
    expense_budgets: list[BudgetLine]
    total_budgeted_expenses: Decimal
    notes: str
    is_auto_calculated: bool = True
    status: str = "draft"


@dataclass
class CalculationSummary:
    analysis_months: int
    total_transactions: int
    recurring_transactions: int
    non_recurring_transactions: int
    approved_patterns: int
    methodology: str = METHODOLOGY


@dataclass
class ApprovedPatternSummary:
    id: str | None
    description: str
    type: RecurrencePattern
    amount: Decimal
    months: list[int]


@dataclass
class SmartBudgetResult:
    budget: SmartBudget
    calculation: CalculationSummary
    approved_patterns: list[ApprovedPatternSummary]
    success: bool = True


@dataclass
class DetectionResult:
    patterns: list[DetectedPattern]
    success: bool = True

    @property
    def total_detected(self) -> int:
        return len(self.patterns)

    @property
    def requires_user_approval(self) -> bool:
        return any(p.approval_status is ApprovalStatus.pending for p in self.patterns)


@dataclass
class PendingPatternsCheck:
    patterns: list[DetectedPattern]

    @property
    def pending_count(self) -> int:
        return len(self.patterns)

    @property
    def has_pending(self) -> bool:
        return bool(self.patterns)

    @property
    def message(self) -> str:
        if self.has_pending:
            return f"You have {self.pending_count} detected spending patterns awaiting your approval"
        return "No pending patterns - ready for budget calculation"


# ─── Workflow outcomes ────────────────────────────────────────────────────────

@dataclass
class ApprovalRequired:
    pending_patterns: list[DetectedPattern]
    step: WorkflowState = WorkflowState.PATTERN_APPROVAL_REQUIRED
    success: bool = False
    next_action: str = "approve-patterns"

    @property
    def message(self) -> str:
        return (
            f"Found {len(self.pending_patterns)} spending patterns that need your approval "
            "before calculating budget"
        )


@dataclass
class DetectionComplete:
    detected_patterns: list[DetectedPattern]
    step: WorkflowState = WorkflowState.PATTERNS_DETECTED
    success: bool = False
    next_action: str = "approve-patterns"

    @property
    def message(self) -> str:
        return (
            f"Detected {len(self.detected_patterns)} new spending patterns. "
            "Please review and approve them to continue with budget calculation."
        )


@dataclass
class BudgetCalculated:
    result: SmartBudgetResult
    budget_id: str | None = None
    step: WorkflowState = WorkflowState.BUDGET_CALCULATED
    success: bool = True
    message: str = "Smart budget calculated with pattern-aware logic"


WorkflowResult = ApprovalRequired | DetectionComplete | BudgetCalculated


# ─── Pure synthesis helpers ───────────────────────────────────────────────────

def budget_window(year: int, month: int, analysis_months: int) -> tuple[date, date]:
    """First day ``analysis_months`` before the target month through the last day before it."""
    first_of_target = date(year, month, 1)
    return shift_months(first_of_target, -analysis_months), first_of_target - timedelta(days=1)


def category_key(category_id: str | None, sub_category_id: str | None) -> CategoryKey:
    return category_id or UNKNOWN_CATEGORY, sub_category_id or GENERAL_SUBCATEGORY


def separate_recurring_transactions(
    transactions: list[TransactionRecord], approved_patterns: list[DetectedPattern]
) -> tuple[list[TransactionRecord], list[TransactionRecord]]:
    """Split into (matched by some approved pattern, everything else)."""
    recurring: list[TransactionRecord] = []
    non_recurring: list[TransactionRecord] = []
    for txn in transactions:
        if any(matches_transaction(p, txn) for p in approved_patterns):
            recurring.append(txn)
        else:
            non_recurring.append(txn)
    return recurring, non_recurring


def group_transactions_by_category(
    transactions: list[TransactionRecord],
) -> dict[CategoryKey, list[TransactionRecord]]:
    groups: dict[CategoryKey, list[TransactionRecord]] = {}
    for txn in transactions:
        groups.setdefault(category_key(txn.category_id, txn.sub_category_id), []).append(txn)
    return groups


def build_non_recurring_budgets(
    groups: dict[CategoryKey, list[TransactionRecord]],
    all_data_months: set[int],
    requested_months: int,
    policy: DenominatorPolicy = ENHANCED,
) -> list[BudgetLine]:
    lines: list[BudgetLine] = []
    for (category_id, sub_category_id), txns in groups.items():
        total = sum((abs(t.amount) for t in txns), Decimal("0"))
        strategy = get_averaging_strategy(
            {t.month_key for t in txns}, all_data_months, requested_months, policy
        )
        amount = round_amount(total / strategy.denominator)
        if amount <= 0:
            continue
        lines.append(
            BudgetLine(
                category_id=category_id,
                sub_category_id=sub_category_id,
                budgeted_amount=amount,
                source=BudgetSource.non_recurring_average,
                reasoning=strategy.reasoning,
            )
        )
    return lines


def calculate_recurring_budgets(
    approved_patterns: list[DetectedPattern], target_month: int
) -> list[BudgetLine]:
    lines: list[BudgetLine] = []
    for pattern in approved_patterns:
        if not should_pattern_occur_in_month(pattern, target_month):
            continue
        category_id, sub_category_id = category_key(pattern.category_id, pattern.sub_category_id)
        amount = round_amount(pattern.average_amount)
        lines.append(
            BudgetLine(
                category_id=category_id,
                sub_category_id=sub_category_id,
                budgeted_amount=amount,
                source=BudgetSource.recurring_pattern,
                pattern_info=PatternInfo(pattern.id, pattern.recurrence_pattern, amount),
            )
        )
    return lines


def merge_budget_components(
    expense_budgets: list[BudgetLine], recurring_budgets: list[BudgetLine]
) -> list[BudgetLine]:
    """
    Fold recurring lines into category averages. Inputs are not modified.

    A recurring line whose key already has a line is added onto it; a line
    built from an average becomes ``combined-average-and-pattern``.
    """
    merged = [replace(line) for line in expense_budgets]
    index = {line.key: line for line in merged}

    for recurring in recurring_budgets:
        existing = index.get(recurring.key)
        if existing is None:
            line = replace(recurring)
            merged.append(line)
            index[line.key] = line
            continue

        existing.budgeted_amount += recurring.budgeted_amount
        if existing.source is not BudgetSource.recurring_pattern:
            existing.source = BudgetSource.combined
            existing.pattern_info = recurring.pattern_info

    return merged


# ─── Orchestrator ─────────────────────────────────────────────────────────────

class SmartBudgetOrchestrator:
    def __init__(
        self,
        transactions: TransactionStore,
        patterns: PatternRepository,
        budgets: BudgetStore | None = None,
        *,
        id_factory: Callable[[], str] = new_record_id,
        today: date | None = None,
        currency: str | None = None,
    ):
        self.transactions = transactions
        self.patterns = patterns
        self.budgets = budgets
        self.id_factory = id_factory
        self.today = today
        self.currency = currency or settings.budget_currency

    async def detect_patterns_for_user(self, user_id: str, analysis_months: int | None = None) -> DetectionResult:
        analysis_months = analysis_months or settings.pattern_analysis_months
        detected = await detect_patterns(self.transactions, user_id, analysis_months, today=self.today)
        if not detected:
            return DetectionResult(patterns=[])

        stored = await store_detected_patterns(self.patterns, detected, self.id_factory)
        logger.info("Stored %d detected patterns for user %s", len(stored), user_id)
        return DetectionResult(patterns=stored)

    async def check_pending_patterns(self, user_id: str) -> PendingPatternsCheck:
        return PendingPatternsCheck(patterns=await self.patterns.get_pending_patterns(user_id))

    async def calculate_smart_budget(
        self,
        user_id: str,
        year: int,
        month: int,
        analysis_months: int | None = None,
        policy: DenominatorPolicy = ENHANCED,
    ) -> SmartBudgetResult:
        """Raises ``PendingPatternsError`` before reading any transaction."""
        analysis_months = analysis_months or settings.pattern_analysis_months

        pending = await self.check_pending_patterns(user_id)
        if pending.has_pending:
            raise PendingPatternsError(pending.patterns)

        approved = await self.patterns.get_active_patterns(user_id)
        logger.info("Found %d approved patterns for budget calculation", len(approved))

        start, end = budget_window(year, month, analysis_months)
        expenses = [t for t in await self.transactions.find(user_id, start, end) if t.amount < 0]

        recurring, non_recurring = separate_recurring_transactions(expenses, approved)
        logger.info(
            "Separated transactions: %d recurring, %d non-recurring", len(recurring), len(non_recurring)
        )

        all_data_months = {t.month_key for t in expenses}
        lines = merge_budget_components(
            build_non_recurring_budgets(
                group_transactions_by_category(non_recurring), all_data_months, analysis_months, policy
            ),
            calculate_recurring_budgets(approved, month),
        )

        budget = SmartBudget(
            year=year,
            month=month,
            currency=self.currency,
            expense_budgets=lines,
            total_budgeted_expenses=sum((line.budgeted_amount for line in lines), Decimal("0")),
            notes=(
                f"Smart budget calculated from {analysis_months} months of data, excluding recurring "
                f"patterns. Includes {len(approved)} approved recurring patterns."
            ),
        )
        return SmartBudgetResult(
            budget=budget,
            calculation=CalculationSummary(
                analysis_months=analysis_months,
                total_transactions=len(expenses),
                recurring_transactions=len(recurring),
                non_recurring_transactions=len(non_recurring),
                approved_patterns=len(approved),
            ),
            approved_patterns=[
                ApprovedPatternSummary(
                    id=p.id,
                    description=p.display_name,
                    type=p.recurrence_pattern,
                    amount=p.average_amount,
                    months=list(p.scheduled_months),
                )
                for p in approved
            ],
        )

    async def execute_smart_budget_workflow(
        self,
        user_id: str,
        year: int,
        month: int,
        analysis_months: int | None = None,
        *,
        force_detection: bool = False,
        detect: bool = True,
    ) -> WorkflowResult:
        """
        Single entry point. Returns one of three outcomes and only computes a
        budget when nothing is pending and no new patterns came out of detection.
        """
        analysis_months = analysis_months or settings.pattern_analysis_months
        state = WorkflowState.INITIAL
        logger.info("Executing smart budget workflow for user %s, %d-%02d", user_id, year, month)

        pending = await self.check_pending_patterns(user_id)
        if pending.has_pending:
            advance(state, WorkflowState.PATTERN_APPROVAL_REQUIRED)
            return ApprovalRequired(pending_patterns=pending.patterns)

        if detect:
            existing = await self.patterns.get_user_patterns(user_id)
            if force_detection or not existing:
                state = advance(state, WorkflowState.DETECTING)
                detection = await self.detect_patterns_for_user(user_id, analysis_months)
                new_patterns = [
                    p for p in detection.patterns if p.approval_status is ApprovalStatus.pending
                ]
                if new_patterns:
                    advance(state, WorkflowState.PATTERNS_DETECTED)
                    return DetectionComplete(detected_patterns=new_patterns)
            else:
                logger.info("Found %d existing patterns - skipping detection", len(existing))

        result = await self.calculate_smart_budget(user_id, year, month, analysis_months)
        advance(state, WorkflowState.BUDGET_CALCULATED)

        budget_id = None
        if self.budgets is not None:
            budget_id = await self.budgets.save_monthly_budget(user_id, result.budget)
            logger.info("Smart budget %s saved for user %s", budget_id, user_id)

        return BudgetCalculated(result=result, budget_id=budget_id)

    async def reject_pending_and_calculate(
        self, user_id: str, year: int, month: int, analysis_months: int | None = None
    ) -> BudgetCalculated:
        """Auto-reject whatever is still pending, then calculate without a new detection pass."""
        await reject_all_pending(self.patterns, user_id)
        outcome = await self.execute_smart_budget_workflow(
            user_id, year, month, analysis_months, detect=False
        )
        if isinstance(outcome, ApprovalRequired):
            # Another request detected patterns between the reject and the check
            raise PendingPatternsError(outcome.pending_patterns)
        return outcome
