"""Execution of confirmed actions."""

from kai.executor.service import ActionExecutor, Progress, import_idempotency_key

__all__ = ["ActionExecutor", "Progress", "import_idempotency_key"]
