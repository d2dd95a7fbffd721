"""
risk/circuit_breaker.py - Circuit breaker state machine.

States:
    NORMAL (active=False) -> TRIPPED (active=True, cooldown_until set)
    TRIPPED -> NORMAL when now >= cooldown_until, checked lazily on every
    status query, or at the daily rollover.

Trips:
- consecutive non-positive executions >= max_consecutive_failures
- daily loss > max_daily_loss
- market-condition checks (venue price deviation, liquidity availability)
- manual trip()

The breaker is constructed once and injected into the orchestrator and the
execution feedback path. Those can run on different threads, so every
read-modify-write happens under one re-entrant lock. Notifications are
delivered after the lock is released.
"""

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

from core.constants import (
    BREACH_HISTORY_LIMIT,
    BREACHES_KEPT_ON_DAILY_RESET,
    EXECUTION_HISTORY_LIMIT,
)
from core.logging import get_logger
from core.math import ZERO, validate_no_float
from core.time import local_date, seconds_until_local_midnight, timestamp_to_iso
from monitoring.notifier import (
    LEVEL_CRITICAL,
    LEVEL_INFO,
    Notifier,
    safe_notify,
)
from strategy.config import CircuitBreakerConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionRecord:
    timestamp: float
    token_pair: str
    profit: Decimal
    gas_cost: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class Breach:
    timestamp: float
    reason: str
    cooldown_until: float
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": timestamp_to_iso(self.timestamp),
            "reason": self.reason,
            "cooldown_until": timestamp_to_iso(self.cooldown_until),
            "details": {k: str(v) if isinstance(v, Decimal) else v for k, v in self.details.items()},
        }


_Pending = list[tuple[str, str, dict[str, Any]]]


class CircuitBreaker:
    """
    Risk gate consulted before every validation and every submission.

    Usage:
        breaker = CircuitBreaker(config, notifier=LoggingNotifier())
        if not breaker.is_tripped():
            ...
        breaker.record_execution(profit_usd, gas_cost_usd, "WETH/USDC")
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.RLock()

        self._active = False
        self._consecutive_failures = 0
        self._daily_loss = ZERO
        self._cooldown_until: float | None = None
        self._last_reset_time = clock()
        self._trip_count = 0
        self._execution_history: deque[ExecutionRecord] = deque(maxlen=EXECUTION_HISTORY_LIMIT)
        self._breaches: deque[Breach] = deque(maxlen=BREACH_HISTORY_LIMIT)

        if not config.enabled:
            logger.info("Circuit breaker disabled")

    # =========================================================================
    # READ GATE
    # =========================================================================

    def is_tripped(self) -> bool:
        """
        True while the breaker blocks new executions.

        Clears an expired cooldown as a side effect (and notifies), and applies
        a pending daily rollover.
        """
        if not self.config.enabled:
            return False

        pending: _Pending = []
        with self._lock:
            self._refresh_locked(self._clock(), pending)
            active = self._active
        self._deliver(pending)
        return active

    def _refresh_locked(self, now: float, pending: _Pending) -> None:
        if local_date(now) != local_date(self._last_reset_time):
            self._reset_daily_locked(now, pending)

        if self._active and self._cooldown_until is not None and now >= self._cooldown_until:
            self._active = False
            logger.info("Circuit breaker cooldown expired, resuming")
            pending.append((
                LEVEL_INFO,
                "Cooldown period expired, resetting circuit breaker",
                {
                    "cooldown_expired": True,
                    "previous_breaches": len(self._breaches),
                },
            ))

    # =========================================================================
    # WRITES
    # =========================================================================

    def record_execution(
        self,
        profit: Decimal,
        gas_cost: Decimal,
        token_pair: str,
    ) -> bool:
        """
        Record an executed trade (USD amounts).

        net = profit - gas_cost. Positive net resets the failure streak;
        non-positive net adds |net| to the daily loss and extends the streak.
        Update and trip decision are one atomic step.

        Returns:
            True if this recording tripped the breaker
        """
        if not self.config.enabled:
            return False

        validate_no_float(profit, gas_cost)
        profit = Decimal(profit)
        gas_cost = Decimal(gas_cost)
        net_profit = profit - gas_cost

        pending: _Pending = []
        tripped = False

        with self._lock:
            now = self._clock()
            self._refresh_locked(now, pending)

            self._execution_history.append(ExecutionRecord(
                timestamp=now,
                token_pair=token_pair,
                profit=profit,
                gas_cost=gas_cost,
                net_profit=net_profit,
            ))

            if net_profit > 0:
                self._consecutive_failures = 0
            else:
                self._daily_loss += abs(net_profit)
                self._consecutive_failures += 1

            if not self._active:
                if self._consecutive_failures >= self.config.max_consecutive_failures:
                    recent = list(self._execution_history)[-self.config.max_consecutive_failures:]
                    self._trip_locked(
                        now,
                        "Max consecutive failures reached",
                        {
                            "consecutive_failures": self._consecutive_failures,
                            "threshold": self.config.max_consecutive_failures,
                            "recent_pairs": [r.token_pair for r in recent],
                        },
                        pending,
                    )
                    tripped = True
                elif self._daily_loss > self.config.max_daily_loss:
                    self._trip_locked(
                        now,
                        "Daily loss threshold exceeded",
                        {
                            "daily_loss": self._daily_loss,
                            "threshold": self.config.max_daily_loss,
                            "execution_count": len(self._execution_history),
                        },
                        pending,
                    )
                    tripped = True

            failures = self._consecutive_failures
            daily_loss = self._daily_loss

        logger.info(
            f"Execution recorded: {token_pair} net={net_profit}",
            extra={"context": {
                "token_pair": token_pair,
                "net_profit_usd": str(net_profit),
                "consecutive_failures": failures,
                "daily_loss_usd": str(daily_loss),
                "tripped": tripped,
            }},
        )
        self._deliver(pending)
        return tripped

    def check_market_conditions(
        self,
        price_data: dict[str, Any] | None = None,
        liquidity_data: dict[str, Any] | None = None,
    ) -> bool:
        """
        System-wide safety checks, coarser than the per-opportunity validators.

        price_data: {"deviation_pct": Decimal, "token0", "token1", "price0", "price1"}
        liquidity_data: {"available_pct": Decimal, "token0", "token1", ...}

        Returns:
            True when conditions allow trading, False when tripped (now or before)
        """
        if not self.config.enabled:
            return True

        pending: _Pending = []
        with self._lock:
            now = self._clock()
            self._refresh_locked(now, pending)

            if self._active:
                ok = False
            elif price_data and Decimal(price_data.get("deviation_pct", 0)) > self.config.max_price_deviation_pct:
                self._trip_locked(
                    now,
                    "Excessive price deviation detected",
                    {**price_data, "threshold": self.config.max_price_deviation_pct},
                    pending,
                )
                ok = False
            elif (
                liquidity_data
                and "available_pct" in liquidity_data
                and Decimal(liquidity_data["available_pct"]) < self.config.min_liquidity_pct
            ):
                self._trip_locked(
                    now,
                    "Insufficient liquidity detected",
                    {**liquidity_data, "threshold": self.config.min_liquidity_pct},
                    pending,
                )
                ok = False
            else:
                ok = True

        self._deliver(pending)
        return ok

    def trip(self, reason: str, details: dict[str, Any] | None = None) -> Breach | None:
        """Trip manually. An active breaker gets a fresh cooldown."""
        if not self.config.enabled:
            return None

        pending: _Pending = []
        with self._lock:
            breach = self._trip_locked(self._clock(), reason, details or {}, pending)
        self._deliver(pending)
        return breach

    def _trip_locked(
        self,
        now: float,
        reason: str,
        details: dict[str, Any],
        pending: _Pending,
    ) -> Breach:
        self._active = True
        self._cooldown_until = now + self.config.cooldown_seconds
        self._trip_count += 1

        breach = Breach(
            timestamp=now,
            reason=reason,
            cooldown_until=self._cooldown_until,
            details=dict(details),
        )
        self._breaches.append(breach)

        logger.warning(
            f"Circuit breaker tripped: {reason}",
            extra={"context": {
                "reason": reason,
                "cooldown_until": timestamp_to_iso(self._cooldown_until),
                "consecutive_failures": self._consecutive_failures,
                "daily_loss_usd": str(self._daily_loss),
            }},
        )
        pending.append((
            LEVEL_CRITICAL,
            f"Circuit breaker tripped: {reason}",
            {
                **breach.to_dict()["details"],
                "active": True,
                "cooldown_until": timestamp_to_iso(self._cooldown_until),
                "consecutive_failures": self._consecutive_failures,
                "daily_loss": str(self._daily_loss),
            },
        ))
        return breach

    # =========================================================================
    # DAILY RESET
    # =========================================================================

    def reset_daily_stats(self) -> None:
        """Zero daily loss and history; keep the last breaches for audit."""
        pending: _Pending = []
        with self._lock:
            self._reset_daily_locked(self._clock(), pending)
        self._deliver(pending)

    def _reset_daily_locked(self, now: float, pending: _Pending) -> None:
        was_active = self._active
        self._last_reset_time = now
        self._daily_loss = ZERO
        self._execution_history.clear()
        kept = list(self._breaches)[-BREACHES_KEPT_ON_DAILY_RESET:]
        self._breaches.clear()
        self._breaches.extend(kept)
        self._active = False

        logger.info("Circuit breaker daily statistics reset")
        pending.append((
            LEVEL_INFO,
            "Daily circuit breaker statistics reset",
            {"was_active": was_active, "breaches_kept": len(kept)},
        ))

    async def run_daily_reset(self, stop: asyncio.Event | None = None) -> None:
        """Fire reset_daily_stats at every local midnight until stop is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            delay = seconds_until_local_midnight(self._clock())
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                self.reset_daily_stats()

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        """Status snapshot. Also applies the lazy cooldown transition."""
        pending: _Pending = []
        with self._lock:
            if self.config.enabled:
                self._refresh_locked(self._clock(), pending)
            status = {
                "enabled": self.config.enabled,
                "active": self._active,
                "consecutive_failures": self._consecutive_failures,
                "daily_loss": str(self._daily_loss),
                "max_daily_loss": str(self.config.max_daily_loss),
                "last_reset_time": timestamp_to_iso(self._last_reset_time),
                "cooldown_until": (
                    timestamp_to_iso(self._cooldown_until) if self._cooldown_until else None
                ),
                "execution_count": len(self._execution_history),
                "trip_count": self._trip_count,
                "recent_breaches": [b.to_dict() for b in list(self._breaches)[-3:]],
            }
        self._deliver(pending)
        return status

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def daily_loss(self) -> Decimal:
        with self._lock:
            return self._daily_loss

    @property
    def breaches(self) -> list[Breach]:
        with self._lock:
            return list(self._breaches)

    @property
    def execution_history(self) -> list[ExecutionRecord]:
        with self._lock:
            return list(self._execution_history)

    def _deliver(self, pending: _Pending) -> None:
        for level, message, data in pending:
            safe_notify(self._notifier, level, message, data)
