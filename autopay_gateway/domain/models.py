"""Domain models - pure Python dataclasses representing recurring obligations and their outcomes"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import ClassVar, List, Optional, Union


class ObligationKind(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class PaymentType(str, Enum):
    """What a scheduled debit pays off"""

    CREDIT_CARD_FULL = "CREDIT_CARD_FULL"
    CREDIT_CARD_MIN = "CREDIT_CARD_MIN"
    LOAN = "LOAN"
    MORTGAGE = "MORTGAGE"
    SUBSCRIPTION = "SUBSCRIPTION"


class IncomeType(str, Enum):
    """What a scheduled credit represents"""

    SALARY = "SALARY"
    HOUSING_FUND = "HOUSING_FUND"
    PENSION = "PENSION"
    RENTAL = "RENTAL"
    INVESTMENT_RETURN = "INVESTMENT_RETURN"
    OTHER = "OTHER"

    @property
    def default_category(self) -> str:
        return _INCOME_CATEGORIES[self]


_INCOME_CATEGORIES = {
    IncomeType.SALARY: "salary",
    IncomeType.HOUSING_FUND: "housing_fund",
    IncomeType.PENSION: "pension",
    IncomeType.RENTAL: "rent",
    IncomeType.INVESTMENT_RETURN: "investment_return",
    IncomeType.OTHER: "other_income",
}


class ShortfallPolicy(str, Enum):
    """Behaviour when the primary funding source does not cover the amount due"""

    NOTIFY = "NOTIFY"
    RETRY_NEXT_DAY = "RETRY_NEXT_DAY"
    PARTIAL_PAY = "PARTIAL_PAY"
    TRY_NEXT_SOURCE = "TRY_NEXT_SOURCE"
    SKIP = "SKIP"


class ExecutionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    PARTIAL = "PARTIAL"
    SKIPPED = "SKIPPED"


class AmountBasis(str, Enum):
    """Where a derived amount is read from at execution time"""

    LIABILITY_MONTHLY_PAYMENT = "LIABILITY_MONTHLY_PAYMENT"
    STATEMENT_BALANCE = "STATEMENT_BALANCE"
    MINIMUM_DUE = "MINIMUM_DUE"


@dataclass(frozen=True)
class FixedAmount:
    amount_cents: int


@dataclass(frozen=True)
class DerivedAmount:
    basis: AmountBasis


AmountSpec = Union[FixedAmount, DerivedAmount]


@dataclass(frozen=True)
class RevolvingCreditTarget:
    """Credit card being paid down"""

    card_account_id: str


@dataclass(frozen=True)
class TermLiabilityTarget:
    """Loan or mortgage being repaid"""

    liability_account_id: str


DebitTarget = Union[RevolvingCreditTarget, TermLiabilityTarget]


@dataclass(frozen=True)
class FundingSource:
    """Account a debit may draw from; lower priority is tried first"""

    account_id: str
    priority: int


@dataclass
class InstallmentPlan:
    """Finite-term progress of a loan-type debit"""

    total_periods: int
    completed_periods: int = 0
    start_date: Optional[date] = None

    @property
    def remaining_periods(self) -> int:
        return self.total_periods - self.completed_periods

    @property
    def is_complete(self) -> bool:
        return self.completed_periods >= self.total_periods

    @property
    def progress_ratio(self) -> float:
        if self.total_periods <= 0:
            return 0.0
        return self.completed_periods / self.total_periods


@dataclass
class ScheduleProgress:
    """Mutable execution state of a schedule, owned by the orchestrator"""

    next_execute_at: Optional[datetime] = None
    current_period: Optional[str] = None  # "YYYY-MM" the next run belongs to
    last_executed_at: Optional[datetime] = None
    last_period: Optional[str] = None  # most recent period resolved terminally


@dataclass(kw_only=True)
class RecurringObligation:
    """Common shape of scheduled debits and credits"""

    kind: ClassVar[ObligationKind]

    id: str
    name: str
    day_of_month: int
    execute_time: time = time(9, 0)
    reminder_lead_days: int = 0
    enabled: bool = True
    amount: AmountSpec
    progress: ScheduleProgress = field(default_factory=ScheduleProgress)


@dataclass(kw_only=True)
class DebitObligation(RecurringObligation):
    """Scheduled payment drawn from one or more funding accounts"""

    kind: ClassVar[ObligationKind] = ObligationKind.DEBIT

    payment_type: PaymentType
    target: Optional[DebitTarget] = None
    sources: List[FundingSource] = field(default_factory=list)
    shortfall_policy: ShortfallPolicy = ShortfallPolicy.NOTIFY
    installment: Optional[InstallmentPlan] = None

    def ordered_sources(self) -> List[FundingSource]:
        return sorted(self.sources, key=lambda s: s.priority)

    @property
    def counterparty_account_id(self) -> Optional[str]:
        if isinstance(self.target, RevolvingCreditTarget):
            return self.target.card_account_id
        if isinstance(self.target, TermLiabilityTarget):
            return self.target.liability_account_id
        return None


@dataclass(kw_only=True)
class CreditObligation(RecurringObligation):
    """Scheduled income credited to a single account"""

    kind: ClassVar[ObligationKind] = ObligationKind.CREDIT

    income_type: IncomeType = IncomeType.OTHER
    target_account_id: str
    category: Optional[str] = None

    @property
    def effective_category(self) -> str:
        return self.category or self.income_type.default_category


Obligation = Union[DebitObligation, CreditObligation]


@dataclass(frozen=True)
class Draw:
    """
    One ledger booking made while resolving a period (a draw for debits).

    A draw without ledger_record_id was sent to the ledger but never confirmed;
    it is settled by replaying its idempotency key on the next attempt.
    """

    sequence: int
    account_id: str
    amount_cents: int
    ledger_record_id: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.ledger_record_id is not None


@dataclass
class ResolutionOutcome:
    """Result of satisfying one period's amount due; applied by the orchestrator"""

    status: ExecutionStatus
    amount_due_cents: int
    draws: List[Draw] = field(default_factory=list)
    retry: bool = False
    policy_violation: bool = False
    message: Optional[str] = None

    @property
    def drawn_cents(self) -> int:
        return sum(d.amount_cents for d in self.draws)


@dataclass
class ExecutionLogEntry:
    """Append-only record of one execution attempt"""

    obligation_id: str
    period: str
    attempted_at: datetime
    status: ExecutionStatus
    amount_cents: int
    terminal: bool
    source_account_id: Optional[str] = None
    ledger_record_id: Optional[str] = None
    message: Optional[str] = None
    id: Optional[str] = None


@dataclass
class RecurringBudget:
    """Monthly spending budget; category None is the aggregate budget"""

    month: str
    amount_cents: int
    category: Optional[str] = None
    is_recurring: bool = False
    name: Optional[str] = None
    id: Optional[str] = None
