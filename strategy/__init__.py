"""
Strategy package for Flashgate.

Modules:
- config: typed thresholds and market-condition derivation
- liquidity: liquidity depth validator
- plausibility: price plausibility validator and spread history
- profitability: cost and profitability analyzer
- orchestrator: the validation pipeline

Import modules directly; this package has no import side effects.
"""

__all__: list[str] = []
