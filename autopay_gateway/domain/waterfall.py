"""Waterfall resolution of a debit against priority-ordered funding sources"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from autopay_gateway.domain.exceptions import InsufficientFundsError, PolicyViolation, TransientLedgerError
from autopay_gateway.domain.interfaces import LedgerReceipt, LedgerService
from autopay_gateway.domain.models import (
    DebitObligation,
    Draw,
    ExecutionStatus,
    FundingSource,
    ResolutionOutcome,
    ShortfallPolicy,
)

logger = logging.getLogger(__name__)


def debit_idempotency_key(obligation_id: str, period: str, sequence: int) -> str:
    """Deterministic ledger key for the n-th draw of a period"""
    return f"{obligation_id}:{period}:debit:{sequence}"


def credit_idempotency_key(obligation_id: str, period: str) -> str:
    return f"{obligation_id}:{period}:credit"


class DrawJournal:
    """
    Bookkeeping hooks around each ledger debit.

    pending() runs before the ledger is called, confirmed() once it booked the
    debit and discarded() when it rejected it. The base class keeps nothing.
    """

    def pending(self, draw: Draw) -> None:
        pass

    def confirmed(self, draw: Draw) -> None:
        pass

    def discarded(self, draw: Draw) -> None:
        pass


class WaterfallResolver:
    """
    Decides how much to draw from each funding source of a debit obligation.

    Flow:
    1. Unconfirmed draws of an earlier attempt are replayed under their key
    2. Sources sorted by ascending priority
    3. Primary source covers the remainder -> draw it all, SUCCESS
    4. Otherwise the shortfall policy decides (NOTIFY, RETRY_NEXT_DAY,
       PARTIAL_PAY, TRY_NEXT_SOURCE, SKIP)
    5. A ledger error ends resolution as FAILED, keeping the draws already made

    Every debit is announced to the journal before the ledger call and
    confirmed right after it, so the caller can persist both. The resolver
    never touches schedule state.
    """

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    async def resolve(
        self,
        obligation: DebitObligation,
        amount_due_cents: int,
        period: str,
        prior_draws: Iterable[Draw] = (),
        journal: Optional[DrawJournal] = None,
    ) -> ResolutionOutcome:
        journal = journal or DrawJournal()
        prior_draws = list(prior_draws)
        draws: List[Draw] = [d for d in prior_draws if d.confirmed]
        policy = obligation.shortfall_policy

        def outcome(status: ExecutionStatus, **kwargs) -> ResolutionOutcome:
            return ResolutionOutcome(status=status, amount_due_cents=amount_due_cents, draws=draws, **kwargs)

        try:
            for pending in prior_draws:
                if not pending.confirmed:
                    await self._settle(obligation, period, pending, draws, journal)

            remaining = amount_due_cents - sum(d.amount_cents for d in draws)
            if remaining <= 0 and not draws:
                return outcome(ExecutionStatus.SKIPPED, message="Nothing due")
            if remaining <= 0:
                return outcome(ExecutionStatus.SUCCESS, message="Amount due already drawn")
            if draws and policy is ShortfallPolicy.PARTIAL_PAY:
                # The partial draw was made by an earlier attempt that never got logged
                return outcome(ExecutionStatus.PARTIAL, message="Partial payment recovered from earlier attempt")

            try:
                sources = self._funding_sources(obligation)
            except PolicyViolation as e:
                logger.warning(
                    f"Policy violation, treating as NOTIFY: {e}",
                    extra={"obligation_id": obligation.id, "period": period, "policy": policy.value},
                )
                return outcome(ExecutionStatus.INSUFFICIENT_FUNDS, policy_violation=True, message=str(e))

            if policy is ShortfallPolicy.TRY_NEXT_SOURCE and len(sources) == 1:
                policy = ShortfallPolicy.NOTIFY

            primary = sources[0]
            balance = await self.ledger.get_balance(primary.account_id)
            if balance >= remaining:
                draw = await self._draw(obligation, period, primary, remaining, draws, journal)
                if draw is not None:
                    return outcome(ExecutionStatus.SUCCESS)
                balance = 0

            known = {primary.account_id: balance}
            shortfall = f"Balance {balance} in {primary.account_id} below {remaining} due"

            if policy is ShortfallPolicy.NOTIFY:
                return outcome(ExecutionStatus.INSUFFICIENT_FUNDS, message=shortfall)

            if policy is ShortfallPolicy.RETRY_NEXT_DAY:
                return outcome(ExecutionStatus.INSUFFICIENT_FUNDS, retry=True, message=shortfall)

            if policy is ShortfallPolicy.PARTIAL_PAY:
                return await self._partial_pay(obligation, period, sources, known, draws, amount_due_cents, journal)

            if policy is ShortfallPolicy.TRY_NEXT_SOURCE:
                return await self._try_next_source(obligation, period, sources, known, draws, amount_due_cents, journal)

            return outcome(ExecutionStatus.SKIPPED, message=shortfall)

        except TransientLedgerError as e:
            logger.error(
                f"Ledger error during waterfall: {e}",
                extra={"obligation_id": obligation.id, "period": period, "drawn_cents": sum(d.amount_cents for d in draws)},
            )
            return outcome(ExecutionStatus.FAILED, message=f"Ledger error: {e}")

    @staticmethod
    def _funding_sources(obligation: DebitObligation) -> List[FundingSource]:
        sources = obligation.ordered_sources()
        if not sources:
            raise PolicyViolation(f"{obligation.shortfall_policy.value} configured without funding sources")
        return sources

    async def _balance(self, source: FundingSource, known: Dict[str, int]) -> int:
        if source.account_id not in known:
            known[source.account_id] = await self.ledger.get_balance(source.account_id)
        return known[source.account_id]

    async def _partial_pay(
        self,
        obligation: DebitObligation,
        period: str,
        sources: List[FundingSource],
        known: Dict[str, int],
        draws: List[Draw],
        amount_due_cents: int,
        journal: DrawJournal,
    ) -> ResolutionOutcome:
        """Draw what the first source with any balance holds"""
        for source in sources:
            balance = await self._balance(source, known)
            if balance <= 0:
                continue
            remaining = amount_due_cents - sum(d.amount_cents for d in draws)
            draw = await self._draw(obligation, period, source, min(balance, remaining), draws, journal)
            if draw is None:
                continue
            status = ExecutionStatus.SUCCESS if draw.amount_cents >= remaining else ExecutionStatus.PARTIAL
            return ResolutionOutcome(status=status, amount_due_cents=amount_due_cents, draws=draws)

        return ResolutionOutcome(
            status=ExecutionStatus.INSUFFICIENT_FUNDS,
            amount_due_cents=amount_due_cents,
            draws=draws,
            message="No funding source has any balance",
        )

    async def _try_next_source(
        self,
        obligation: DebitObligation,
        period: str,
        sources: List[FundingSource],
        known: Dict[str, int],
        draws: List[Draw],
        amount_due_cents: int,
        journal: DrawJournal,
    ) -> ResolutionOutcome:
        """Accumulate draws across sources in priority order until the amount is covered"""
        for source in sources:
            remaining = amount_due_cents - sum(d.amount_cents for d in draws)
            if remaining <= 0:
                break
            balance = await self._balance(source, known)
            if balance <= 0:
                continue
            await self._draw(obligation, period, source, min(balance, remaining), draws, journal)

        remaining = amount_due_cents - sum(d.amount_cents for d in draws)
        if remaining <= 0:
            status = ExecutionStatus.SUCCESS
            message = None
        elif draws:
            status = ExecutionStatus.PARTIAL
            message = f"Sources exhausted with {remaining} still due"
        else:
            status = ExecutionStatus.INSUFFICIENT_FUNDS
            message = "No funding source has any balance"
        return ResolutionOutcome(status=status, amount_due_cents=amount_due_cents, draws=draws, message=message)

    async def _debit(self, obligation: DebitObligation, period: str, draw: Draw) -> LedgerReceipt:
        return await self.ledger.debit(
            draw.account_id,
            draw.amount_cents,
            f"{obligation.name} ({period})",
            idempotency_key=debit_idempotency_key(obligation.id, period, draw.sequence),
            counterparty_account_id=obligation.counterparty_account_id,
        )

    async def _settle(
        self,
        obligation: DebitObligation,
        period: str,
        pending: Draw,
        draws: List[Draw],
        journal: DrawJournal,
    ) -> None:
        """Replay a debit whose outcome was never confirmed; the ledger answers with the original booking"""
        try:
            receipt = await self._debit(obligation, period, pending)
        except InsufficientFundsError:
            logger.info(
                "Unconfirmed draw was never booked",
                extra={"obligation_id": obligation.id, "period": period, "sequence": pending.sequence},
            )
            journal.discarded(pending)
            return

        draw = replace(pending, amount_cents=receipt.amount_cents, ledger_record_id=receipt.record_id)
        draws.append(draw)
        journal.confirmed(draw)
        logger.info(
            "Unconfirmed draw settled",
            extra={"obligation_id": obligation.id, "period": period, "sequence": draw.sequence, "replayed": receipt.replayed},
        )

    async def _draw(
        self,
        obligation: DebitObligation,
        period: str,
        source: FundingSource,
        amount_cents: int,
        draws: List[Draw],
        journal: DrawJournal,
    ) -> Optional[Draw]:
        """Single atomic debit; None when the ledger rejects it for balance"""
        pending = Draw(sequence=len(draws), account_id=source.account_id, amount_cents=amount_cents)
        journal.pending(pending)
        try:
            receipt = await self._debit(obligation, period, pending)
        except InsufficientFundsError as e:
            logger.info(
                f"Ledger rejected draw: {e}",
                extra={"obligation_id": obligation.id, "period": period, "account_id": source.account_id},
            )
            journal.discarded(pending)
            return None

        draw = replace(pending, amount_cents=receipt.amount_cents, ledger_record_id=receipt.record_id)
        draws.append(draw)
        journal.confirmed(draw)
        return draw
