import uuid

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from smartbudget.core.database import get_db
from smartbudget.core.deps import get_current_user_id
from smartbudget.core.rate_limit import limiter
from smartbudget.schemas.pattern import (
    DetectionResponse,
    MonthPreviewResponse,
    PatternApproveRequest,
    PatternBulkApproveRequest,
    PatternBulkApproveResponse,
    PatternRejectRemainingResponse,
    PatternRejectRequest,
    PatternResponse,
    PendingPatternsResponse,
)
from smartbudget.services import pattern_approval
from smartbudget.services.smart_budget import SmartBudgetOrchestrator
from smartbudget.services.sql_stores import SqlPatternRepository, SqlTransactionStore

router = APIRouter(prefix="/patterns", tags=["patterns"])


def _orchestrator(db: AsyncSession) -> SmartBudgetOrchestrator:
    return SmartBudgetOrchestrator(SqlTransactionStore(db), SqlPatternRepository(db))


@router.post("/detect", response_model=DetectionResponse)
@limiter.limit("10/minute")
async def detect_patterns(
    request: Request,
    months_to_analyze: int = Query(default=6, ge=1, le=24),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Run a detection pass over the last ``months_to_analyze`` months and store
    the results. New patterns come back pending; existing ones keep their
    approval decision.
    """
    result = await _orchestrator(db).detect_patterns_for_user(str(user_id), months_to_analyze)
    await db.commit()
    return DetectionResponse.model_validate(result)


@router.get("/pending", response_model=PendingPatternsResponse)
async def pending_patterns(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    check = await _orchestrator(db).check_pending_patterns(str(user_id))
    return PendingPatternsResponse.model_validate(check)


@router.get("", response_model=list[PatternResponse])
async def list_patterns(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    patterns = await SqlPatternRepository(db).get_user_patterns(str(user_id))
    return [PatternResponse.model_validate(p) for p in patterns]


@router.post("/approve", response_model=PatternResponse)
async def approve_pattern(
    payload: PatternApproveRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    pattern = await pattern_approval.approve_pattern(
        SqlPatternRepository(db), str(user_id), str(payload.id)
    )
    await db.commit()
    return PatternResponse.model_validate(pattern)


@router.post("/reject", response_model=PatternResponse)
async def reject_pattern(
    payload: PatternRejectRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    pattern = await pattern_approval.reject_pattern(
        SqlPatternRepository(db), str(user_id), str(payload.id), payload.reason
    )
    await db.commit()
    return PatternResponse.model_validate(pattern)


@router.put("/bulk-approve", response_model=PatternBulkApproveResponse)
async def bulk_approve(
    payload: PatternBulkApproveRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Approve the listed patterns that are still pending; anything else is skipped."""
    approved = await pattern_approval.bulk_approve(
        SqlPatternRepository(db), str(user_id), [str(i) for i in payload.ids]
    )
    await db.commit()
    return PatternBulkApproveResponse(
        approved_patterns=[PatternResponse.model_validate(p) for p in approved],
        total_approved=len(approved),
    )


@router.post("/reject-remaining", response_model=PatternRejectRemainingResponse)
async def reject_remaining(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rejected = await pattern_approval.reject_all_pending(SqlPatternRepository(db), str(user_id))
    await db.commit()
    return PatternRejectRemainingResponse(
        rejected_patterns=[PatternResponse.model_validate(p) for p in rejected],
        total_rejected=len(rejected),
    )


@router.get("/preview/{year}/{month}", response_model=MonthPreviewResponse)
async def preview_month(
    year: int = Path(ge=2020, le=2050),
    month: int = Path(ge=1, le=12),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Approved patterns that land in the given month and their combined amount."""
    preview = await pattern_approval.preview_month(SqlPatternRepository(db), str(user_id), year, month)
    return MonthPreviewResponse.model_validate(preview)
