"""
Value types shared by the pattern engine and the smart-budget workflow.

Nothing here touches the database: ORM rows are converted to and from these
dataclasses at the store boundary (see ``services/sql_stores.py``).

Amount convention: a negative ``amount`` is an expense. Amounts derived from
transactions (averages, ranges, samples) are stored as absolute values.
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal


class RecurrencePattern(str, enum.Enum):
    bi_monthly = "bi-monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class ApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


def new_record_id() -> str:
    """Id for a newly persisted record (never used as the pattern upsert key)."""
    return str(uuid.uuid4())


def round_amount(value: Decimal) -> Decimal:
    """Round half-up to whole currency units."""
    return Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    description: str
    amount: Decimal                 # signed; negative = expense
    processed_date: date
    category_id: str | None = None
    sub_category_id: str | None = None

    @property
    def month_key(self) -> int:
        """``year * 100 + month``, sortable across year boundaries."""
        return self.processed_date.year * 100 + self.processed_date.month


@dataclass
class AmountRange:
    min: Decimal
    max: Decimal


@dataclass
class SampleTransaction:
    transaction_id: str
    description: str
    amount: Decimal
    date: date


@dataclass
class DetectionData:
    confidence: float
    last_detected: datetime
    analysis_months: int
    sample_transactions: list[SampleTransaction] = field(default_factory=list)


@dataclass
class DetectedPattern:
    pattern_id: str                 # deterministic upsert key
    user_id: str
    description: str
    category_id: str | None
    sub_category_id: str | None
    amount_range: AmountRange
    recurrence_pattern: RecurrencePattern
    scheduled_months: list[int]
    average_amount: Decimal
    detection_data: DetectionData
    approval_status: ApprovalStatus = ApprovalStatus.pending
    is_active: bool = False
    approved_at: datetime | None = None
    notes: str | None = None
    id: str | None = None           # persisted record id, assigned on first save

    @property
    def confidence(self) -> float:
        return self.detection_data.confidence

    @property
    def display_name(self) -> str:
        return f"{self.description} ({self.recurrence_pattern.value})"

    def approve(self) -> "DetectedPattern":
        self.approval_status = ApprovalStatus.approved
        self.is_active = True
        self.approved_at = datetime.now(timezone.utc)
        return self

    def reject(self, reason: str | None = None) -> "DetectedPattern":
        self.approval_status = ApprovalStatus.rejected
        self.is_active = False
        self.approved_at = datetime.now(timezone.utc)
        if reason:
            self.notes = reason
        return self
