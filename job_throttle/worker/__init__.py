"""
Worker-side integration: handler registry and throttled execution.
"""

from job_throttle.worker.handlers import ExecutionHooks, HandlerRegistry

__all__ = ["ExecutionHooks", "HandlerRegistry"]
