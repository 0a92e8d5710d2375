import uuid
from datetime import date

from sqlalchemy import Boolean, Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class OkrMaster(Base):
    __tablename__ = "okr_master"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    industry: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    category: Mapped[str] = mapped_column(String(120), nullable=False)
    objective_title: Mapped[str] = mapped_column(String(200), nullable=False)
    objective_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_timeframe: Mapped[str | None] = mapped_column(String(20), nullable=True)
    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")


class OkrMasterMetric(Base):
    __tablename__ = "okr_master_metrics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    okr_master_id: Mapped[str] = mapped_column(String(36), ForeignKey("okr_master.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("dim_metric_type.id"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    target_improvement_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)


class DimMetricType(Base):
    __tablename__ = "dim_metric_type"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(40), nullable=True)
    category: Mapped[str | None] = mapped_column(String(80), nullable=True)


class DimDate(Base):
    __tablename__ = "dim_date"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    date_value: Mapped[date] = mapped_column(Date, nullable=False, unique=True)


class DimPlatform(Base):
    __tablename__ = "dim_platform"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[str | None] = mapped_column(String(80), nullable=True)
