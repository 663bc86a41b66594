import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from smartbudget.core.database import Base


class TransactionPattern(Base):
    __tablename__ = "transaction_patterns"
    __table_args__ = (UniqueConstraint("user_id", "pattern_id", name="uq_transaction_patterns_user_pattern"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    pattern_id: Mapped[str] = mapped_column(String(64))  # deterministic hash, upsert key
    description: Mapped[str] = mapped_column(String(500))
    category_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    sub_category_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    amount_min: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    amount_max: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    average_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    recurrence_pattern: Mapped[str] = mapped_column(String(20))  # bi-monthly | quarterly | yearly
    scheduled_months: Mapped[list] = mapped_column(JSONB, default=list)
    # confidence, last_detected, analysis_months, sample_transactions
    detection_data: Mapped[dict] = mapped_column(JSONB, default=dict)
    approval_status: Mapped[str] = mapped_column(
        String(10), default="pending", server_default="pending", index=True
    )  # pending | approved | rejected
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), onupdate=func.now()
    )
