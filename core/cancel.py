from __future__ import annotations

import threading


class CancellationToken:
    def __init__(self) -> None:
        self._cancel_requested = False

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def request_cancel(self) -> None:
        self._cancel_requested = True


class CancellationRegistry:
    """Tokens for in-flight batches, keyed by batch id."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, batch_id: str) -> CancellationToken:
        with self._lock:
            token = self._tokens.get(batch_id)
            if token is None:
                token = CancellationToken()
                self._tokens[batch_id] = token
            return token

    def get(self, batch_id: str) -> CancellationToken | None:
        with self._lock:
            return self._tokens.get(batch_id)

    def request_cancel(self, batch_id: str) -> bool:
        token = self.get(batch_id)
        if token is None:
            return False
        token.request_cancel()
        return True

    def release(self, batch_id: str) -> None:
        with self._lock:
            self._tokens.pop(batch_id, None)


cancellations = CancellationRegistry()
