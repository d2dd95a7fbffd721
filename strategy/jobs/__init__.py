"""
Strategy jobs package.

Entry points:
    flashgate-scan validate   # one pass over a candidate file
    flashgate-scan scan       # repeat every interval until interrupted

Modules here are not imported by the package to avoid side effects.
Import them directly:

    from strategy.jobs.run_scan import ScanLoop, build_runtime
"""

__all__: list[str] = []
