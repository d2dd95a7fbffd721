"""
dex/abi.py - Minimal ABI word encoding for read-only venue calls.

Every call we make takes and returns static types only, so calldata is the
4-byte selector followed by 32-byte words, and responses are a run of words.
"""

from core.exceptions import ErrorCode, QuoteError

WORD_HEX = 64

# Constant-product pair / factory
SELECTOR_GET_RESERVES = "0x0902f1ac"        # getReserves()
SELECTOR_TOKEN0 = "0x0dfe1681"              # token0()
SELECTOR_GET_PAIR = "0xe6a43905"            # getPair(address,address)

# Concentrated liquidity
SELECTOR_GET_POOL = "0x1698ee82"            # getPool(address,address,uint24)
SELECTOR_LIQUIDITY = "0x1a686502"           # liquidity()
SELECTOR_SLOT0 = "0x3850c7bd"               # slot0()
# quoteExactInputSingle((address,address,uint256,uint24,uint160)) on QuoterV2
SELECTOR_QUOTE_EXACT_INPUT_SINGLE = "0xc6a5026a"

# Stable swap
SELECTOR_GET_DY = "0x5e0d443f"              # get_dy(int128,int128,uint256)
SELECTOR_BALANCES = "0x4903b0d1"            # balances(uint256)

# Chainlink aggregator
SELECTOR_LATEST_ROUND_DATA = "0xfeaf968c"   # latestRoundData()
SELECTOR_DECIMALS = "0x313ce567"            # decimals()


def encode_address(address: str) -> str:
    return address.lower().replace("0x", "").zfill(WORD_HEX)


def encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError(f"uint cannot be negative: {value}")
    return hex(value)[2:].zfill(WORD_HEX)


def encode_call(selector: str, *words: str) -> str:
    """Selector plus already-encoded static words."""
    return selector + "".join(words)


def decode_words(hex_result: str | None, count: int) -> list[int]:
    """
    Split a static response into `count` uint words.

    Raises:
        QuoteError: empty or short response
    """
    if not hex_result or hex_result == "0x":
        raise QuoteError(
            "Empty call response",
            code=ErrorCode.QUOTE_REVERT,
        )

    data = hex_result[2:] if hex_result.startswith("0x") else hex_result
    if len(data) < count * WORD_HEX:
        raise QuoteError(
            f"Call response too short: {len(data)} chars, expected {count} words",
            code=ErrorCode.QUOTE_MALFORMED,
            details={"data_length": len(data), "raw": hex_result[:100]},
        )

    try:
        return [
            int(data[i * WORD_HEX:(i + 1) * WORD_HEX], 16)
            for i in range(count)
        ]
    except ValueError as e:
        raise QuoteError(
            f"Call response is not hex: {e}",
            code=ErrorCode.QUOTE_MALFORMED,
            details={"raw": hex_result[:100]},
        )


def decode_signed(word: int) -> int:
    """Two's complement int256 from a raw word."""
    if word >= 2**255:
        return word - 2**256
    return word


def word_to_address(word: int) -> str:
    return "0x" + hex(word)[2:].zfill(40)[-40:]
