#!/usr/bin/env python3
"""
strategy/jobs/run_scan.py - CLI entrypoint for opportunity validation.

Candidates are discovered upstream; this job only validates them. Each cycle
first compares the price sources for every token in the batch and feeds the
result to the circuit breaker's market-condition check, then runs every candidate through the validation pipeline in order, hands valid
ones to the settlement executor when one is configured, and persists the
spread history.

Usage:
    flashgate-scan validate --chain ethereum --candidates config/candidates.yaml
    flashgate-scan scan --chain ethereum --candidates config/candidates.yaml
    python -m strategy.jobs.run_scan validate -c ethereum --volatility high
"""

import asyncio
import json
import signal
import sys
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click

from core.constants import DEFAULT_ANOMALY_THRESHOLD_PCT, RiskLevel, Volatility
from core.exceptions import ConfigError, ErrorCode, FlashgateError
from core.logging import get_logger, log_error, set_global_context, setup_logging
from core.math import human_to_wei
from core.models import OpportunityCandidate, Token, ValidationVerdict
from core.time import now_ms
from config import load_chain, load_venues, load_yaml, load_yaml_file, parse_price_sources, parse_tokens
from chains.gas import GasPriceSource
from chains.providers import RPCProvider
from dex.adapters import build_adapters
from execution.feedback import ExecutionFeedback
from monitoring.notifier import LoggingNotifier
from oracles.prices import PriceSourceConfig, TokenPriceSource
from risk.circuit_breaker import CircuitBreaker
from strategy.config import StrategyConfig, load_strategy_config
from strategy.orchestrator import ValidationOrchestrator
from strategy.plausibility import SpreadHistory

logger = get_logger("flashgate.scan")

CandidateSource = Callable[[], Awaitable[list[OpportunityCandidate]]]


# =============================================================================
# SCAN LOOP
# =============================================================================

class ScanLoop:
    """
    Sequential validation of candidate batches.

    Usage:
        loop = ScanLoop(orchestrator, feedback, prices=prices)
        results = await loop.run_cycle(candidates)
        await loop.run(source, interval_seconds=5, stop=stop_event)
    """

    def __init__(
        self,
        orchestrator: ValidationOrchestrator,
        feedback: Optional[ExecutionFeedback] = None,
        prices: Optional[TokenPriceSource] = None,
        anomaly_threshold_pct: Decimal = DEFAULT_ANOMALY_THRESHOLD_PCT,
    ):
        self.orchestrator = orchestrator
        self.feedback = feedback
        self.prices = prices
        self.anomaly_threshold_pct = anomaly_threshold_pct
        self.cycles = 0
        self.totals: Counter[str] = Counter()

    async def run_cycle(
        self,
        candidates: list[OpportunityCandidate],
    ) -> list[tuple[OpportunityCandidate, ValidationVerdict]]:
        """
        Validate candidates one at a time.

        A BREAKER_TRIPPED verdict ends the cycle; the remaining candidates
        would be rejected the same way.
        """
        results: list[tuple[OpportunityCandidate, ValidationVerdict]] = []
        categories: Counter[str] = Counter()

        if self.prices is not None:
            await self.check_markets(candidates)

        for candidate in candidates:
            verdict = await self.orchestrator.validate_opportunity(candidate)
            results.append((candidate, verdict))
            categories[verdict.category.value] += 1

            if verdict.is_breaker_tripped:
                logger.warning(
                    "Circuit breaker active, ending cycle",
                    extra={"context": {"skipped": len(candidates) - len(results)}},
                )
                break

            if verdict.is_valid and self.feedback is not None:
                await self.feedback.submit(candidate)

        self.cycles += 1
        self.totals.update(categories)
        self.orchestrator.history.save()

        logger.info(
            f"Cycle {self.cycles} complete: {len(results)}/{len(candidates)} validated",
            extra={"context": {"cycle": self.cycles, **categories}},
        )
        return results

    async def check_markets(self, candidates: list[OpportunityCandidate]) -> bool:
        """
        Cross-source price check for every token in the batch.

        Each comparison goes to the breaker, which trips on a deviation above
        its own limit. Returns False when the breaker is (now) active.
        """
        symbols = sorted({c.token_a.symbol for c in candidates} | {c.token_b.symbol for c in candidates})
        anomalies = await asyncio.gather(
            *(self.prices.detect_anomaly(symbol, self.anomaly_threshold_pct) for symbol in symbols)
        )

        breaker = self.orchestrator.breaker
        for anomaly in anomalies:
            if len(anomaly.prices) < 2:
                continue
            if not breaker.check_market_conditions(price_data=anomaly.to_price_data()):
                return False
        return True

    async def run(
        self,
        source: CandidateSource,
        interval_seconds: float,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Pull candidates from source and validate them until stop is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                candidates = await source()
            except FlashgateError as e:
                log_error(logger, e.code.value, f"Candidate source failed: {e.message}")
                candidates = []

            if candidates:
                await self.run_cycle(candidates)

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Scan loop terminated", extra={"context": {"cycles": self.cycles, **self.totals}})


# =============================================================================
# WIRING
# =============================================================================

@dataclass
class Runtime:
    """Everything built from config for one chain."""
    chain: str
    tokens: dict[str, Token]
    strategy: StrategyConfig
    provider: RPCProvider
    prices: TokenPriceSource
    breaker: CircuitBreaker
    orchestrator: ValidationOrchestrator

    async def close(self) -> None:
        logger.info("RPC endpoint stats", extra={"context": {"endpoints": self.provider.get_stats_summary()}})
        self.orchestrator.history.save()
        await self.prices.close()
        await self.provider.close()


def build_runtime(
    chain: str,
    strategy_path: Optional[Path] = None,
    history_path: Optional[Path] = None,
) -> Runtime:
    """
    Load config files for one chain and wire the pipeline.

    Raises:
        ConfigError: any missing or invalid setting
    """
    strategy = load_strategy_config(strategy_path, chain=chain)
    chain_settings = load_chain(chain)

    token_data = load_yaml("tokens.yaml")
    tokens = parse_tokens(token_data, chain)
    venues = load_venues(chain, tokens)
    if len(venues) < 2:
        raise ConfigError(
            f"At least two enabled venues are needed on {chain}, found {len(venues)}",
            code=ErrorCode.CONFIG_MISSING,
            details={"chain": chain},
        )

    provider = RPCProvider(
        chain_settings["chain_id"],
        chain_settings["rpc_urls"],
        timeout_seconds=chain_settings["timeout_seconds"],
    )
    if not provider.rpc_urls:
        raise ConfigError(
            f"No usable RPC endpoint for {chain}; check the .env keys",
            code=ErrorCode.CONFIG_MISSING,
            details={"chain": chain},
        )

    prices = TokenPriceSource(
        provider,
        PriceSourceConfig(**parse_price_sources(token_data, chain), use_median=strategy.prices.use_median),
    )
    breaker = CircuitBreaker(strategy.breaker, notifier=LoggingNotifier())

    path = history_path or (Path(strategy.spread_history_path) if strategy.spread_history_path else None)
    window = strategy.validation.spread.history_window
    history = SpreadHistory.load(path, window=window) if path else SpreadHistory(window=window)

    orchestrator = ValidationOrchestrator(
        adapters=build_adapters(venues, provider),
        breaker=breaker,
        gas_source=GasPriceSource(provider),
        prices=prices,
        config=strategy.validation,
        history=history,
    )

    return Runtime(
        chain=chain,
        tokens=tokens,
        strategy=strategy,
        provider=provider,
        prices=prices,
        breaker=breaker,
        orchestrator=orchestrator,
    )


def parse_candidates(data: dict[str, Any], tokens: dict[str, Token]) -> list[OpportunityCandidate]:
    """
    Candidates from a YAML mapping:

        candidates:
          - token_a: WETH
            token_b: USDC
            amount_in: "19"          # token_a human units
            buy_venue: uniswap_v2
            sell_venue: sushiswap
            raw_profit_estimate_usd: "120"
    """
    entries = data.get("candidates") or []
    if not isinstance(entries, list):
        raise ConfigError("candidates must be a list")

    candidates = []
    for i, entry in enumerate(entries):
        try:
            token_a = tokens[str(entry["token_a"]).upper()]
            token_b = tokens[str(entry["token_b"]).upper()]
            candidates.append(OpportunityCandidate(
                token_a=token_a,
                token_b=token_b,
                amount_in=human_to_wei(str(entry["amount_in"]), token_a.decimals),
                buy_venue=str(entry["buy_venue"]),
                sell_venue=str(entry["sell_venue"]),
                raw_profit_estimate_usd=Decimal(str(entry.get("raw_profit_estimate_usd", "0"))),
                hops=int(entry.get("hops", 2)),
                discovered_at_ms=now_ms(),
            ))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise ConfigError(
                f"Candidate #{i} is incomplete or invalid: {e}",
                details={"index": i},
            )
    return candidates


def load_candidates(path: Path, tokens: dict[str, Token]) -> list[OpportunityCandidate]:
    return parse_candidates(load_yaml_file(path), tokens)


def _print_verdict(candidate: OpportunityCandidate, verdict: ValidationVerdict) -> None:
    click.echo(json.dumps({"candidate": candidate.to_dict(), "verdict": verdict.to_dict()}, default=str))


# =============================================================================
# CLI
# =============================================================================

_common_options = [
    click.option("--chain", "-c", default="ethereum", help="Chain key from chains.yaml"),
    click.option(
        "--candidates",
        "candidates_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        required=True,
        help="YAML file with a `candidates` list",
    ),
    click.option("--strategy", "strategy_path", type=click.Path(path_type=Path), default=None),
    click.option("--history", "history_path", type=click.Path(path_type=Path), default=None),
    click.option(
        "--volatility",
        type=click.Choice([v.value for v in Volatility]),
        default=Volatility.NORMAL.value,
    ),
    click.option("--risk", type=click.Choice([r.value for r in RiskLevel]), default=RiskLevel.MEDIUM.value),
    click.option("--log-level", "-l", default="INFO", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])),
    click.option("--json-logs/--no-json-logs", default=True),
]


def common_options(func):
    for option in reversed(_common_options):
        func = option(func)
    return func


def _scan_loop(runtime: Runtime) -> ScanLoop:
    return ScanLoop(
        runtime.orchestrator,
        prices=runtime.prices,
        anomaly_threshold_pct=runtime.strategy.prices.anomaly_threshold_pct,
    )


def _start(chain: str, log_level: str, json_logs: bool, strategy_path, history_path, volatility, risk) -> Runtime:
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="flashgate", chain=chain)
    try:
        runtime = build_runtime(chain, strategy_path, history_path)
    except ConfigError as e:
        log_error(logger, e.code.value, f"Startup failed: {e.message}", **e.details)
        sys.exit(2)
    runtime.orchestrator.set_market_conditions(volatility, risk)
    return runtime


@click.group()
def cli() -> None:
    """Flashgate - pre-execution validation for flash-loan arbitrage candidates."""


@cli.command()
@common_options
def validate(
    chain: str,
    candidates_path: Path,
    strategy_path: Optional[Path],
    history_path: Optional[Path],
    volatility: str,
    risk: str,
    log_level: str,
    json_logs: bool,
) -> None:
    """Validate every candidate in the file once and print verdicts as JSON lines."""
    runtime = _start(chain, log_level, json_logs, strategy_path, history_path, volatility, risk)

    async def run() -> list[tuple[OpportunityCandidate, ValidationVerdict]]:
        try:
            candidates = load_candidates(candidates_path, runtime.tokens)
            return await _scan_loop(runtime).run_cycle(candidates)
        finally:
            await runtime.close()

    try:
        results = asyncio.run(run())
    except FlashgateError as e:
        log_error(logger, e.code.value, e.message)
        sys.exit(1)

    for candidate, verdict in results:
        _print_verdict(candidate, verdict)


@cli.command()
@common_options
@click.option("--interval", "-i", type=float, default=None, help="Seconds between cycles (default from strategy.yaml)")
def scan(
    chain: str,
    candidates_path: Path,
    strategy_path: Optional[Path],
    history_path: Optional[Path],
    volatility: str,
    risk: str,
    log_level: str,
    json_logs: bool,
    interval: Optional[float],
) -> None:
    """Re-read the candidate file and validate it every interval until interrupted."""
    runtime = _start(chain, log_level, json_logs, strategy_path, history_path, volatility, risk)
    interval_seconds = interval or runtime.strategy.scan_interval_seconds
    loop = _scan_loop(runtime)

    async def source() -> list[OpportunityCandidate]:
        return load_candidates(candidates_path, runtime.tokens)

    async def run() -> None:
        stop = asyncio.Event()
        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            event_loop.add_signal_handler(sig, stop.set)

        logger.info(
            "Starting Flashgate scan",
            extra={"context": {"chain": chain, "interval_seconds": interval_seconds}},
        )
        try:
            await asyncio.gather(
                loop.run(source, interval_seconds, stop),
                runtime.breaker.run_daily_reset(stop),
            )
        finally:
            await runtime.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Scanner interrupted")

    logger.info("Final scan summary", extra={"context": {"cycles": loop.cycles, **loop.totals}})


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
