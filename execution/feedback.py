"""
execution/feedback.py - Execution outcome feedback.

Settlement (flash-loan borrow, two swaps, repay) lives behind the
SettlementExecutor protocol. ExecutionFeedback is the only path from a
validated candidate to the executor: it re-checks the circuit breaker right
before submission and records every outcome into it.

Accounting (USD):
    success: record_execution(profit_usd, gas_cost_usd)
    failure: record_execution(0, gas_cost_usd), a loss of the gas spent
"""

from decimal import Decimal
from typing import Optional, Protocol

from core.exceptions import ErrorCode
from core.logging import get_logger, log_error
from core.math import ZERO
from core.models import ExecutionOutcome, OpportunityCandidate
from risk.circuit_breaker import CircuitBreaker

logger = get_logger(__name__)


class SettlementExecutor(Protocol):
    """Executes a validated opportunity and reports what happened."""

    async def execute(self, candidate: OpportunityCandidate) -> ExecutionOutcome:
        ...


class ExecutionFeedback:
    """
    Usage:
        feedback = ExecutionFeedback(breaker, executor)
        outcome = await feedback.submit(candidate)
        if outcome is None:
            ...  # breaker blocked submission
    """

    def __init__(self, breaker: CircuitBreaker, executor: SettlementExecutor):
        self.breaker = breaker
        self.executor = executor

    async def submit(self, candidate: OpportunityCandidate) -> Optional[ExecutionOutcome]:
        """
        Execute a validated candidate and feed the outcome to the breaker.

        Returns:
            The outcome, or None when the breaker is active
        """
        if self.breaker.is_tripped():
            logger.warning(
                f"Submission blocked by circuit breaker: {candidate.pair}",
                extra={"context": {"pair": candidate.pair, "venue_pair": candidate.venue_pair}},
            )
            return None

        try:
            outcome = await self.executor.execute(candidate)
        except Exception as e:
            log_error(
                logger,
                ErrorCode.UNKNOWN.value,
                f"Executor raised for {candidate.pair}: {e}",
                pair=candidate.pair,
                error_type=type(e).__name__,
            )
            outcome = ExecutionOutcome(
                success=False,
                profit_usd=ZERO,
                gas_cost_usd=ZERO,
                error=str(e),
            )

        self.record(candidate, outcome)
        return outcome

    def record(self, candidate: OpportunityCandidate, outcome: ExecutionOutcome) -> bool:
        """Feed one outcome to the breaker. Returns True if it tripped."""
        profit = Decimal(outcome.profit_usd) if outcome.success else ZERO
        tripped = self.breaker.record_execution(
            profit,
            Decimal(outcome.gas_cost_usd),
            candidate.pair,
        )

        logger.info(
            f"Execution {'succeeded' if outcome.success else 'failed'}: {candidate.pair}",
            extra={"context": {
                **outcome.to_dict(),
                "pair": candidate.pair,
                "venue_pair": candidate.venue_pair,
                "breaker_tripped": tripped,
            }},
        )
        return tripped
