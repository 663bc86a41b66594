import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from smartbudget.core.database import get_db
from smartbudget.core.deps import get_current_user_id
from smartbudget.core.rate_limit import limiter
from smartbudget.schemas.budget import (
    ApprovedPatternResponse,
    AveragingStrategyRequest,
    AveragingStrategyResponse,
    CalculationSummaryResponse,
    SmartBudgetRequest,
    SmartBudgetResponse,
    SmartBudgetWorkflowResponse,
)
from smartbudget.schemas.pattern import PatternResponse
from smartbudget.services.averaging import ENHANCED, LEGACY, get_averaging_strategy
from smartbudget.services.smart_budget import (
    ApprovalRequired,
    BudgetCalculated,
    DetectionComplete,
    SmartBudgetOrchestrator,
    WorkflowResult,
)
from smartbudget.services.sql_stores import SqlBudgetStore, SqlPatternRepository, SqlTransactionStore

router = APIRouter(prefix="/budgets", tags=["budgets"])


def _orchestrator(db: AsyncSession) -> SmartBudgetOrchestrator:
    return SmartBudgetOrchestrator(
        SqlTransactionStore(db), SqlPatternRepository(db), SqlBudgetStore(db)
    )


def _workflow_response(outcome: WorkflowResult) -> SmartBudgetWorkflowResponse:
    payload = SmartBudgetWorkflowResponse(
        step=outcome.step, success=outcome.success, message=outcome.message
    )
    if isinstance(outcome, ApprovalRequired):
        payload.next_action = outcome.next_action
        payload.pending_patterns = [PatternResponse.model_validate(p) for p in outcome.pending_patterns]
    elif isinstance(outcome, DetectionComplete):
        payload.next_action = outcome.next_action
        payload.detected_patterns = [PatternResponse.model_validate(p) for p in outcome.detected_patterns]
    elif isinstance(outcome, BudgetCalculated):
        payload.budget_id = outcome.budget_id
        payload.budget = SmartBudgetResponse.model_validate(outcome.result.budget)
        payload.calculation = CalculationSummaryResponse.model_validate(outcome.result.calculation)
        payload.approved_patterns = [
            ApprovedPatternResponse.model_validate(p) for p in outcome.result.approved_patterns
        ]
    return payload


@router.post("/smart-calculate", response_model=SmartBudgetWorkflowResponse)
@limiter.limit("20/minute")
async def smart_calculate(
    request: Request,
    payload: SmartBudgetRequest,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Detect → approve → calculate. Returns 202 with the patterns to review when
    approval is required, 200 with the saved budget otherwise.
    """
    outcome = await _orchestrator(db).execute_smart_budget_workflow(
        str(user_id),
        payload.year,
        payload.month,
        payload.months_to_analyze,
        force_detection=payload.force_detection,
    )
    await db.commit()

    if not isinstance(outcome, BudgetCalculated):
        response.status_code = 202
    return _workflow_response(outcome)


@router.post("/smart-calculate/skip-patterns", response_model=SmartBudgetWorkflowResponse)
@limiter.limit("20/minute")
async def smart_calculate_skip_patterns(
    request: Request,
    payload: SmartBudgetRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Reject every pending pattern, then calculate without a new detection pass."""
    outcome = await _orchestrator(db).reject_pending_and_calculate(
        str(user_id), payload.year, payload.month, payload.months_to_analyze
    )
    await db.commit()
    return _workflow_response(outcome)


@router.post("/averaging-strategy", response_model=AveragingStrategyResponse)
async def averaging_strategy(
    payload: AveragingStrategyRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    policy = LEGACY if payload.policy == "legacy" else ENHANCED
    strategy = get_averaging_strategy(
        payload.category_months, payload.all_data_months, payload.requested_months, policy
    )
    return AveragingStrategyResponse.model_validate(strategy)
