"""SQLAlchemy models for KPI planning, assignment and completion tracking."""
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from .database import Base


class ProductionChain(Base):
    """Production chain (managed by the chain CRUD service, read here)."""
    __tablename__ = "production_chains"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(['active', 'inactive']), name='chk_production_chain_status'),
    )

    # Relationships
    steps = relationship("ProductionChainStep", back_populates="chain", cascade="all, delete-orphan")
    kpis = relationship("ChainKpi", back_populates="chain", cascade="all, delete-orphan")


class ProductionChainStep(Base):
    """Ordered step of a production chain."""
    __tablename__ = "production_chain_steps"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chain_id = Column(UUID(as_uuid=True), ForeignKey("production_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('chain_id', 'step_order', name='uq_chain_step_order'),
    )

    # Relationships
    chain = relationship("ProductionChain", back_populates="steps")


class ChainKpi(Base):
    """Numeric target of a production chain with its week/day breakdown.

    ``weeks`` holds the validated breakdown::

        [{"week_index": 1, "start_date": "2024-06-03", "end_date": "2024-06-07",
          "target_value": 10,
          "day_breakdown": [{"date": "2024-06-03", "target_value": 2, "is_working_day": true}, ...]}]
    """
    __tablename__ = "chain_kpis"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chain_id = Column(UUID(as_uuid=True), ForeignKey("production_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    target_value = Column(Integer, nullable=False)
    unit_label = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    year = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    weeks = Column(JSONB, nullable=True)
    is_accumulated = Column(Boolean, nullable=False, default=False)
    accumulated_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(target_value > 0, name='chk_chain_kpi_target_positive'),
        CheckConstraint('month IS NULL OR (month >= 1 AND month <= 12)', name='chk_chain_kpi_month'),
        CheckConstraint(
            'start_date IS NULL OR end_date IS NULL OR start_date <= end_date',
            name='chk_chain_kpi_date_range'
        ),
    )

    # Relationships
    chain = relationship("ProductionChain", back_populates="kpis")
    assignments = relationship("ChainKpiAssignment", back_populates="kpi", cascade="all, delete-orphan")
    completions = relationship("KpiCompletion", back_populates="kpi", cascade="all, delete-orphan")


class ChainKpiAssignment(Base):
    """Slice of one KPI week handed to one worker for one chain step.

    ``day_assignments`` maps ``YYYY-MM-DD`` to a slot count; ``day_results`` and
    ``day_titles`` map the same dates to per-slot lists (``null`` = empty slot)
    that never grow past the slot count.
    """
    __tablename__ = "chain_kpi_assignments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chain_kpi_id = Column(UUID(as_uuid=True), ForeignKey("chain_kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    week_index = Column(Integer, nullable=False)
    step_id = Column(UUID(as_uuid=True), ForeignKey("production_chain_steps.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to = Column(UUID(as_uuid=True), nullable=False, index=True)
    day_assignments = Column(JSONB, nullable=False, default=dict)
    day_results = Column(JSONB, nullable=False, default=dict)
    day_titles = Column(JSONB, nullable=False, default=dict)
    accepted = Column(Boolean, nullable=False, default=False)
    accepted_by = Column(UUID(as_uuid=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    handed_over = Column(Boolean, nullable=False, default=False)
    handed_over_by = Column(UUID(as_uuid=True), nullable=True)
    handed_over_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(week_index > 0, name='chk_assignment_week_index_positive'),
        CheckConstraint(
            '(accepted = false) OR (accepted_by IS NOT NULL AND accepted_at IS NOT NULL)',
            name='chk_assignment_accepted_stamp'
        ),
        CheckConstraint(
            '(handed_over = false) OR (handed_over_by IS NOT NULL AND handed_over_at IS NOT NULL)',
            name='chk_assignment_handed_over_stamp'
        ),
        UniqueConstraint('chain_kpi_id', 'week_index', 'step_id', name='uq_assignment_kpi_week_step'),
    )

    # Relationships
    kpi = relationship("ChainKpi", back_populates="assignments")
    step = relationship("ProductionChainStep")


class KpiCompletion(Base):
    """Ledger row: its existence marks a KPI week or day as completed."""
    __tablename__ = "kpi_completions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chain_kpi_id = Column(UUID(as_uuid=True), ForeignKey("chain_kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    completion_type = Column(String(10), nullable=False)
    week_index = Column(Integer, nullable=True)
    date_iso = Column(Date, nullable=True)
    completed_by = Column(UUID(as_uuid=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(completion_type.in_(['week', 'day']), name='chk_kpi_completion_type'),
        CheckConstraint(
            "(completion_type = 'week' AND week_index IS NOT NULL AND date_iso IS NULL) OR "
            "(completion_type = 'day' AND date_iso IS NOT NULL AND week_index IS NULL)",
            name='chk_kpi_completion_key'
        ),
        Index(
            'uq_kpi_completion_week', 'chain_kpi_id', 'week_index',
            unique=True, postgresql_where=(completion_type == 'week')
        ),
        Index(
            'uq_kpi_completion_day', 'chain_kpi_id', 'date_iso',
            unique=True, postgresql_where=(completion_type == 'day')
        ),
    )

    # Relationships
    kpi = relationship("ChainKpi", back_populates="completions")


class Notification(Base):
    """In-app notification written by the notification worker."""
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    meta_data = Column(JSONB, default={})  # 'metadata' is reserved by SQLAlchemy
    status = Column(String(20), nullable=False, default='unread', index=True)
    recipient_role = Column(String(20), nullable=False, index=True)
    recipient_user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(status.in_(['unread', 'read']), name='chk_notification_status'),
        CheckConstraint(recipient_role.in_(['admin', 'leader', 'user']), name='chk_notification_recipient_role'),
        CheckConstraint(
            "recipient_role <> 'user' OR recipient_user_id IS NOT NULL",
            name='chk_notification_user_recipient'
        ),
    )
