"""
Per-model capability memory.

WHAT: Remember request parameters a model has rejected
WHY: Skip a known-bad parameter up front instead of paying a failed round trip every call
HOW: Lock-protected map of normalized model id -> rejected parameter names
"""

import threading

from ..utils.logger import get_logger

logger = get_logger(__name__)


class CapabilityMemory:
    """
    Injectable, thread-safe record of unsupported parameters.

    State per (model, parameter) is either unknown (send it) or
    known-unsupported (omit it). Losing the state only costs one retry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._unsupported: dict[str, set[str]] = {}

    @staticmethod
    def _normalize(model_id: str) -> str:
        return model_id.strip().lower()

    def is_supported(self, model_id: str, parameter: str) -> bool:
        with self._lock:
            return parameter not in self._unsupported.get(self._normalize(model_id), set())

    def mark_unsupported(self, model_id: str, parameter: str) -> bool:
        """
        Record that `model_id` rejects `parameter`.

        Returns:
            True on the unknown -> known-unsupported transition, False if already known
        """
        key = self._normalize(model_id)
        with self._lock:
            params = self._unsupported.setdefault(key, set())
            if parameter in params:
                return False
            params.add(parameter)
        logger.warning(f"Parameter '{parameter}' marked unsupported for model {key}")
        return True

    def unsupported_parameters(self, model_id: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._unsupported.get(self._normalize(model_id), set()))

    def reset(self) -> None:
        """Forget everything (useful for testing)."""
        with self._lock:
            self._unsupported.clear()


# Process-wide default instance; adapters accept their own for isolation
default_capability_memory = CapabilityMemory()
