import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class OkrObjective(Base):
    __tablename__ = "okr_objectives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    brand_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    target_date_id: Mapped[int] = mapped_column(Integer, ForeignKey("dim_date.id"), nullable=False)
    granularity: Mapped[str] = mapped_column(String(20), nullable=False)
    metric_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("dim_metric_type.id"), nullable=False)
    platform_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("dim_platform.id"), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    master_template_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("okr_master.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True)
