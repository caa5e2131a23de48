"""
Per-key call coalescing.

While a call for a key is running, further calls for the same key wait for
its outcome instead of running again. The outcome (result or exception) is
delivered to every waiter, then the key is cleared so the next call starts
a fresh execution.
"""

import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Tuple


class _Call:
    __slots__ = ('future', 'dups')

    def __init__(self):
        self.future: Future = Future()
        self.dups = 0


class SingleFlight:
    """
    Example:
        flight = SingleFlight()
        result, shared = flight.do("ml", lambda: fetch("ml"))
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[str, _Call] = {}

    def do(self, key: str, fn: Callable[[], Any]) -> Tuple[Any, bool]:
        """
        Run fn once per key at a time.

        Returns:
            (result, shared) where shared is True if this caller waited on
            another caller's execution
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.dups += 1
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            return call.future.result(), True

        try:
            result = fn()
        except BaseException as e:
            self._forget(key)
            call.future.set_exception(e)
            raise

        self._forget(key)
        call.future.set_result(result)
        return result, False

    def _forget(self, key: str) -> None:
        with self._lock:
            self._calls.pop(key, None)

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def waiting(self, key: str) -> int:
        """Number of callers currently waiting on the key's execution."""
        with self._lock:
            call = self._calls.get(key)
            return call.dups if call else 0
