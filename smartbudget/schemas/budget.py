from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from smartbudget.schemas.pattern import PatternResponse
from smartbudget.services.averaging import SpendingPatternType
from smartbudget.services.records import RecurrencePattern
from smartbudget.services.smart_budget import BudgetSource, WorkflowState


class SmartBudgetRequest(BaseModel):
    year: int = Field(ge=2020, le=2050)
    month: int = Field(ge=1, le=12)
    months_to_analyze: int = Field(default=6, ge=6, le=24)
    force_detection: bool = False


class PatternInfoResponse(BaseModel):
    pattern_id: str | None
    pattern_type: RecurrencePattern
    recurring_amount: Decimal

    model_config = {"from_attributes": True}


class BudgetLineResponse(BaseModel):
    category_id: str
    sub_category_id: str
    budgeted_amount: Decimal
    actual_amount: Decimal
    source: BudgetSource
    reasoning: str | None
    pattern_info: PatternInfoResponse | None

    model_config = {"from_attributes": True}


class SmartBudgetResponse(BaseModel):
    year: int
    month: int
    currency: str
    expense_budgets: list[BudgetLineResponse]
    total_budgeted_expenses: Decimal
    is_auto_calculated: bool
    notes: str
    status: str

    model_config = {"from_attributes": True}


class CalculationSummaryResponse(BaseModel):
    analysis_months: int
    total_transactions: int
    recurring_transactions: int
    non_recurring_transactions: int
    approved_patterns: int
    methodology: str

    model_config = {"from_attributes": True}


class ApprovedPatternResponse(BaseModel):
    id: str | None
    description: str
    type: RecurrencePattern
    amount: Decimal
    months: list[int]

    model_config = {"from_attributes": True}


class SmartBudgetWorkflowResponse(BaseModel):
    """One of three steps; only ``budget-calculated`` carries a budget."""
    step: WorkflowState
    success: bool
    message: str
    next_action: str | None = None
    pending_patterns: list[PatternResponse] | None = None
    detected_patterns: list[PatternResponse] | None = None
    budget_id: str | None = None
    budget: SmartBudgetResponse | None = None
    calculation: CalculationSummaryResponse | None = None
    approved_patterns: list[ApprovedPatternResponse] | None = None


class AveragingStrategyRequest(BaseModel):
    category_months: list[int]
    all_data_months: list[int]
    requested_months: int
    policy: Literal["legacy", "enhanced"] = "enhanced"


class SpendingPatternAnalysisResponse(BaseModel):
    pattern_type: SpendingPatternType
    confidence: int
    coverage_percentage: int
    months_present: list[int]
    all_data_months: list[int]

    model_config = {"from_attributes": True}


class AveragingStrategyResponse(BaseModel):
    denominator: int
    analysis: SpendingPatternAnalysisResponse
    reasoning: str

    model_config = {"from_attributes": True}
