import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from smartbudget.services.records import ApprovalStatus, RecurrencePattern


class AmountRangeResponse(BaseModel):
    min: Decimal
    max: Decimal

    model_config = {"from_attributes": True}


class SampleTransactionResponse(BaseModel):
    transaction_id: str
    description: str
    amount: Decimal
    date: date

    model_config = {"from_attributes": True}


class DetectionDataResponse(BaseModel):
    confidence: float
    last_detected: datetime
    analysis_months: int
    sample_transactions: list[SampleTransactionResponse]

    model_config = {"from_attributes": True}


class PatternResponse(BaseModel):
    id: str | None
    pattern_id: str                 # deterministic key (description + category + subcategory)
    description: str
    display_name: str
    category_id: str | None
    sub_category_id: str | None
    recurrence_pattern: RecurrencePattern
    scheduled_months: list[int]
    average_amount: Decimal
    amount_range: AmountRangeResponse
    confidence: float
    approval_status: ApprovalStatus
    is_active: bool
    approved_at: datetime | None
    notes: str | None
    detection_data: DetectionDataResponse

    model_config = {"from_attributes": True}


class DetectionResponse(BaseModel):
    success: bool
    patterns: list[PatternResponse]
    total_detected: int
    requires_user_approval: bool

    model_config = {"from_attributes": True}


class PendingPatternsResponse(BaseModel):
    has_pending: bool
    pending_count: int
    patterns: list[PatternResponse]
    message: str

    model_config = {"from_attributes": True}


class PatternApproveRequest(BaseModel):
    id: uuid.UUID                   # persisted record id


class PatternRejectRequest(BaseModel):
    id: uuid.UUID
    reason: str | None = Field(default=None, max_length=500)


class PatternBulkApproveRequest(BaseModel):
    ids: list[uuid.UUID] = Field(min_length=1)


class PatternBulkApproveResponse(BaseModel):
    approved_patterns: list[PatternResponse]
    total_approved: int


class PatternRejectRemainingResponse(BaseModel):
    rejected_patterns: list[PatternResponse]
    total_rejected: int


class PatternPreviewLineResponse(BaseModel):
    pattern: PatternResponse
    amount: Decimal

    model_config = {"from_attributes": True}


class MonthPreviewResponse(BaseModel):
    year: int
    month: int
    month_name: str
    lines: list[PatternPreviewLineResponse]
    total_pattern_amount: Decimal
    pattern_count: int
    has_patterns: bool

    model_config = {"from_attributes": True}
