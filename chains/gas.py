"""
chains/gas.py - Current network fee level.
"""

from core.exceptions import FlashgateError
from core.logging import get_logger
from core.models import FeeEstimate
from chains.providers import RPCProvider

logger = get_logger(__name__)


class GasPriceSource:
    """
    Reads eth_gasPrice and eth_maxPriorityFeePerGas.

    The gas price is required; a node that does not support the priority fee
    method yields a zero priority fee.
    """

    def __init__(self, provider: RPCProvider):
        self.provider = provider

    async def current_fee_estimate(self) -> FeeEstimate:
        gas_price = await self.provider.get_gas_price()

        try:
            priority_fee = await self.provider.get_max_priority_fee()
        except FlashgateError as e:
            logger.debug(f"Priority fee unavailable: {e}")
            priority_fee = 0

        return FeeEstimate(gas_price_wei=gas_price, priority_fee_wei=priority_fee)
