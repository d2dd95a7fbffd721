"""
Configuration loading utilities for Flashgate.

Reference data (tokens, venues, chains) is read once at startup from the YAML
files in this directory. Anything missing or malformed raises ConfigError;
the scan loop never starts on a half-valid configuration.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.constants import VenueKind
from core.exceptions import ConfigError, ErrorCode, ValidationError
from core.models import Token, Venue


CONFIG_DIR = Path(__file__).parent


def load_yaml_file(filepath: Path) -> Dict[str, Any]:
    """
    Load a YAML file into a dict.

    Raises:
        ConfigError: file missing, unparsable, or not a mapping
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise ConfigError(
            f"Config file not found: {filepath}",
            code=ErrorCode.CONFIG_MISSING,
            details={"path": str(filepath)},
        )

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {filepath}: {e}", details={"path": str(filepath)})

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {filepath} must be a mapping", details={"path": str(filepath)})
    return data


def load_yaml(filename: str) -> Dict[str, Any]:
    """Load a YAML file from the config directory."""
    return load_yaml_file(CONFIG_DIR / filename)


def _chain_section(data: Dict[str, Any], chain: str, source: str) -> Dict[str, Any]:
    if chain not in data:
        raise ConfigError(
            f"No {source} configured for chain: {chain}",
            code=ErrorCode.CONFIG_MISSING,
            details={"chain": chain},
        )
    section = data[chain] or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{source} for {chain} must be a mapping", details={"chain": chain})
    return section


# =============================================================================
# CHAINS
# =============================================================================

def parse_chain(data: Dict[str, Any], chain: str) -> Dict[str, Any]:
    section = _chain_section(data, chain, "chain settings")
    chain_id = section.get("chain_id")
    if not isinstance(chain_id, int) or chain_id <= 0:
        raise ConfigError(f"chain_id missing or invalid for {chain}", details={"chain": chain})

    rpc_urls = section.get("rpc_urls") or []
    if not rpc_urls:
        raise ConfigError(
            f"No rpc_urls for {chain}",
            code=ErrorCode.CONFIG_MISSING,
            details={"chain": chain},
        )

    return {
        "chain_id": chain_id,
        "rpc_urls": [str(u) for u in rpc_urls],
        "timeout_seconds": section.get("timeout_seconds", 10),
    }


def load_chain(chain: str, path: Optional[Path] = None) -> Dict[str, Any]:
    """Chain id and RPC endpoints for one chain."""
    data = load_yaml_file(path) if path else load_yaml("chains.yaml")
    return parse_chain(data, chain)


# =============================================================================
# TOKENS
# =============================================================================

def parse_tokens(data: Dict[str, Any], chain: str) -> Dict[str, Token]:
    section = _chain_section(data, chain, "tokens")
    tokens: Dict[str, Token] = {}

    for symbol, entry in section.items():
        symbol = str(symbol).upper()
        if not isinstance(entry, dict) or "address" not in entry or "decimals" not in entry:
            raise ConfigError(
                f"Token {symbol} needs address and decimals",
                code=ErrorCode.CONFIG_MISSING,
                details={"symbol": symbol},
            )
        try:
            tokens[symbol] = Token(
                symbol=symbol,
                address=str(entry["address"]),
                decimals=int(entry["decimals"]),
            )
        except (ValidationError, ValueError) as e:
            raise ConfigError(f"Invalid token {symbol}: {e}", details={"symbol": symbol})

    return tokens


def load_tokens(chain: str, path: Optional[Path] = None) -> Dict[str, Token]:
    data = load_yaml_file(path) if path else load_yaml("tokens.yaml")
    return parse_tokens(data, chain)


def parse_price_sources(data: Dict[str, Any], chain: str) -> Dict[str, Dict[str, Any]]:
    """
    Per-symbol price lookup settings from tokens.yaml.

    Returns {"chainlink_feeds": {...}, "coingecko_ids": {...}, "static_prices": {...}}.
    """
    section = _chain_section(data, chain, "tokens")
    feeds: Dict[str, str] = {}
    coingecko: Dict[str, str] = {}
    static: Dict[str, Decimal] = {}

    for symbol, entry in section.items():
        symbol = str(symbol).upper()
        entry = entry or {}
        if entry.get("chainlink_feed"):
            feeds[symbol] = str(entry["chainlink_feed"])
        if entry.get("coingecko_id"):
            coingecko[symbol] = str(entry["coingecko_id"])
        if entry.get("static_price_usd") is not None:
            try:
                static[symbol] = Decimal(str(entry["static_price_usd"]))
            except InvalidOperation:
                raise ConfigError(
                    f"static_price_usd for {symbol} is not a number",
                    details={"symbol": symbol},
                )

    return {"chainlink_feeds": feeds, "coingecko_ids": coingecko, "static_prices": static}


# =============================================================================
# VENUES
# =============================================================================

def parse_venues(
    data: Dict[str, Any],
    chain: str,
    tokens: Dict[str, Token],
) -> Dict[str, Venue]:
    section = _chain_section(data, chain, "venues")
    venues: Dict[str, Venue] = {}

    for name, entry in section.items():
        entry = entry or {}
        if entry.get("enabled", True) is False:
            continue

        try:
            kind = VenueKind(str(entry.get("kind", "")).upper())
        except ValueError:
            raise ConfigError(
                f"Unknown venue kind for {name}: {entry.get('kind')}",
                details={"venue": name},
            )

        coins = []
        for symbol, index in (entry.get("coins") or {}).items():
            token = tokens.get(str(symbol).upper())
            if token is None:
                raise ConfigError(
                    f"Venue {name} lists unknown coin {symbol}",
                    details={"venue": name, "symbol": symbol},
                )
            coins.append((token.address, int(index)))

        venue = Venue(
            name=name,
            kind=kind,
            router=entry.get("router"),
            quoter=entry.get("quoter"),
            factory=entry.get("factory"),
            pool=entry.get("pool"),
            fee_tiers=tuple(int(t) for t in entry.get("fee_tiers") or ()),
            fee_bps=int(entry.get("fee_bps", 30)),
            coins=tuple(coins),
        )
        _check_venue(venue)
        venues[name] = venue

    return venues


def _check_venue(venue: Venue) -> None:
    if venue.fee_tiers and venue.kind != VenueKind.CONCENTRATED_LIQUIDITY:
        raise ConfigError(
            f"Venue {venue.name} ({venue.kind.value}) has one fee; use fee_bps, not fee_tiers",
            code=ErrorCode.CONFIG_INVALID,
            details={"venue": venue.name},
        )

    missing = None
    if venue.kind == VenueKind.CONSTANT_PRODUCT and not (venue.factory or venue.pool):
        missing = "factory or pool"
    elif venue.kind == VenueKind.CONCENTRATED_LIQUIDITY:
        if not venue.quoter:
            missing = "quoter"
        elif not venue.fee_tiers:
            missing = "fee_tiers"
    elif venue.kind == VenueKind.STABLE_SWAP and not (venue.pool and venue.coins):
        missing = "pool and coins"

    if missing:
        raise ConfigError(
            f"Venue {venue.name} ({venue.kind.value}) needs {missing}",
            code=ErrorCode.CONFIG_MISSING,
            details={"venue": venue.name},
        )


def load_venues(
    chain: str,
    tokens: Dict[str, Token],
    path: Optional[Path] = None,
) -> Dict[str, Venue]:
    data = load_yaml_file(path) if path else load_yaml("venues.yaml")
    return parse_venues(data, chain, tokens)
