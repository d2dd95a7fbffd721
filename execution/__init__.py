"""
Execution layer for Flashgate.

Settlement itself is an external collaborator behind SettlementExecutor;
this package only routes validated candidates to it and feeds outcomes back
into the circuit breaker.
"""

from execution.feedback import ExecutionFeedback, SettlementExecutor

__all__ = [
    "ExecutionFeedback",
    "SettlementExecutor",
]
