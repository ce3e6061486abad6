"""
Evaluation of the inline scripts returned by the sign-in action.

The sign-in response redirects with JavaScript rather than HTTP, so the
final destination (which carries the user id and key) is only known after
running the page's scripts.
"""

import logging
from typing import Protocol

import quickjs

log = logging.getLogger(__name__)


class ScriptEvaluator(Protocol):
    """Runs script source and returns its completion value if it is a string."""

    def evaluate(self, source: str) -> str | None: ...


class QuickJsEvaluator:
    """ScriptEvaluator backed by an isolated QuickJS context per evaluation."""

    def __init__(self, memory_limit: int = 64 * 1024 * 1024, time_limit: float = 10.0):
        self.memory_limit = memory_limit
        self.time_limit = time_limit

    def evaluate(self, source: str) -> str | None:
        context = quickjs.Context()
        context.set_memory_limit(self.memory_limit)
        context.set_time_limit(self.time_limit)
        try:
            result = context.eval(source)
        except (quickjs.JSException, MemoryError) as e:
            log.debug(f"Sign-in script evaluation failed: {e}")
            return None
        if not isinstance(result, str):
            log.debug(f"Sign-in script produced {type(result).__name__}, not a string")
            return None
        return result
