"""Cooperative cancellation for the artifact retrieval loop.

A single :class:`CancellationToken` is created at startup and passed to every
component that performs network calls.  :class:`SignalCancellation` converts the
first SIGINT/SIGTERM into one ``cancel()`` call on that token.  The
implementation avoids raising from signal handlers in favour of explicit checks
at network boundaries, so a file being written when the signal arrives is closed
normally and the checkpoint reached so far can still be reported.
"""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType, TracebackType
from typing import Dict, Optional, Sequence, Type

from .errors import OperationCancelled

__all__ = ["CancellationToken", "SignalCancellation", "default_signals"]

LOGGER = logging.getLogger("ArtifactFetch.cancellation")


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        True
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Request cancellation.

        Returns:
            ``True`` when this call performed the cancellation, ``False`` when the
            token had already been cancelled.
        """
        with self._lock:
            if self._is_cancelled.is_set():
                return False
            self._reason = reason
            self._is_cancelled.set()
            return True

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelled` when cancellation has been requested."""
        if self._is_cancelled.is_set():
            raise OperationCancelled(f"operation cancelled: {self._reason}")


def default_signals() -> Sequence[signal.Signals]:
    """Return the termination signals available on this platform."""

    found = []
    for name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, name, None)
        if sig is not None:
            found.append(sig)
    return tuple(found)


class SignalCancellation:
    """Context manager that cancels ``token`` on the first termination signal.

    Previous handlers are restored on exit.  Signals received after the first
    one are logged and otherwise ignored, so one run observes exactly one
    cancellation.  Handlers can only be installed from the main thread; in any
    other thread the manager is inert and logs a warning.
    """

    def __init__(
        self,
        token: CancellationToken,
        signals: Optional[Sequence[signal.Signals]] = None,
    ) -> None:
        self.token = token
        self.signals = tuple(signals) if signals is not None else default_signals()
        self._previous: Dict[signal.Signals, object] = {}

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        name = signal.Signals(signum).name
        if self.token.cancel(reason=f"received {name}"):
            LOGGER.warning(
                "cancellation requested",
                extra={"stage": "cancel", "signal": name},
            )
        else:
            LOGGER.debug(
                "ignoring repeated signal",
                extra={"stage": "cancel", "signal": name},
            )

    def __enter__(self) -> "SignalCancellation":
        if threading.current_thread() is not threading.main_thread():
            LOGGER.warning(
                "signal handlers not installed outside the main thread",
                extra={"stage": "cancel"},
            )
            return self
        for sig in self.signals:
            self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        for sig, previous in self._previous.items():
            # None means the previous handler was not installed from Python.
            restored = previous if previous is not None else signal.SIG_DFL
            signal.signal(sig, restored)  # type: ignore[arg-type]
        self._previous.clear()
# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.cancellation",
#   "purpose": "Provide the cancellation token and the signal-driven controller that cancels it",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"},
#     {"id": "signals", "name": "SignalCancellation", "anchor": "SIG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
