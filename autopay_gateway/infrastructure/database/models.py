"""SQLAlchemy ORM models for schedules, execution history, locks and budgets"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class ObligationRow(Base):
    """Scheduled debit or credit; kind selects which column group applies"""

    __tablename__ = "recurring_obligation"

    id = Column(String(36), primary_key=True, default=_new_id)
    kind = Column(String(16), nullable=False, index=True)  # DEBIT | CREDIT
    name = Column(Text, nullable=False)
    day_of_month = Column(Integer, nullable=False)
    execute_time = Column(Time, nullable=False)
    reminder_lead_days = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True)

    # Amount: exactly one of the two is set
    fixed_amount_cents = Column(BigInteger, nullable=True)
    amount_basis = Column(String(32), nullable=True)

    # Progress
    next_execute_at = Column(DateTime, nullable=True, index=True)
    current_period = Column(String(7), nullable=True)
    last_executed_at = Column(DateTime, nullable=True)
    last_period = Column(String(7), nullable=True)

    # DEBIT
    payment_type = Column(String(32), nullable=True)
    card_account_id = Column(Text, nullable=True)
    liability_account_id = Column(Text, nullable=True)
    shortfall_policy = Column(String(32), nullable=True)
    total_periods = Column(Integer, nullable=True)
    completed_periods = Column(Integer, nullable=False, default=0)
    installment_start_date = Column(Date, nullable=True)

    # CREDIT
    income_type = Column(String(32), nullable=True)
    target_account_id = Column(Text, nullable=True)
    category = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    sources = relationship(
        "ObligationSourceRow",
        back_populates="obligation",
        cascade="all, delete-orphan",
        order_by="ObligationSourceRow.priority",
    )


class ObligationSourceRow(Base):
    """Funding account of a debit with its waterfall priority"""

    __tablename__ = "obligation_source"
    __table_args__ = (UniqueConstraint("obligation_id", "priority", name="uq_source_priority"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    obligation_id = Column(String(36), ForeignKey("recurring_obligation.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False)

    obligation = relationship("ObligationRow", back_populates="sources")


class ExecutionLogRow(Base):
    """Append-only execution attempt; at most one terminal row per obligation and period"""

    __tablename__ = "execution_log"
    __table_args__ = (
        Index(
            "uq_execution_log_terminal",
            "obligation_id",
            "period",
            unique=True,
            postgresql_where=text("terminal"),
            sqlite_where=text("terminal = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    obligation_id = Column(String(36), nullable=False, index=True)
    period = Column(String(7), nullable=False)
    attempted_at = Column(DateTime, nullable=False)
    status = Column(String(32), nullable=False)
    amount_cents = Column(BigInteger, nullable=False, default=0)
    terminal = Column(Boolean, nullable=False, default=False)
    source_account_id = Column(Text, nullable=True)
    ledger_record_id = Column(Text, nullable=True)
    message = Column(Text, nullable=True)


class ExecutionDrawRow(Base):
    """Ledger debit of a period, written before the ledger call and confirmed after it"""

    __tablename__ = "execution_draw"
    __table_args__ = (UniqueConstraint("obligation_id", "period", "sequence", name="uq_draw_sequence"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    obligation_id = Column(String(36), nullable=False, index=True)
    period = Column(String(7), nullable=False)
    sequence = Column(Integer, nullable=False)
    account_id = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    ledger_record_id = Column(Text, nullable=True)  # NULL until the ledger confirms
    drawn_at = Column(DateTime, nullable=False)


class ExecutionLockRow(Base):
    """Lease held while one obligation executes; expired leases can be taken over"""

    __tablename__ = "execution_lock"

    obligation_id = Column(String(36), primary_key=True)
    period = Column(String(7), nullable=False)
    owner = Column(String(36), nullable=False)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class BudgetRow(Base):
    """Monthly budget; category_key is "" for the aggregate budget"""

    __tablename__ = "recurring_budget"
    __table_args__ = (UniqueConstraint("month", "category_key", name="uq_budget_month_category"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    month = Column(String(7), nullable=False, index=True)
    category = Column(Text, nullable=True)
    category_key = Column(Text, nullable=False, default="")
    amount_cents = Column(BigInteger, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
