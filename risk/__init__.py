"""
risk/ - Process-wide risk state.
"""

from risk.circuit_breaker import Breach, CircuitBreaker, ExecutionRecord

__all__ = ["Breach", "CircuitBreaker", "ExecutionRecord"]
