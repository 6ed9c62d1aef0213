"""Debounced recompute scheduler for (portfolio, asset) holdings."""

from __future__ import annotations

import threading
import time
import warnings
from typing import Callable

from .stores import TransactionChange

RecomputeKey = tuple[str, str]


class RecomputeScheduler:
    """Collapse bursts of edits into one recompute per (portfolio, asset).

    ``schedule`` pushes a key's deadline to ``now + debounce_seconds``; the
    last call wins. A due key runs once, reading whatever transactions exist
    when it runs. A key rescheduled while its recompute is running stays
    pending and runs again afterwards.

    The scheduler can be driven by hand with ``run_due``/``flush`` (tests,
    scripts) or by ``start``, which runs the same loop on a daemon thread.
    """

    def __init__(
        self,
        recompute: Callable[[str, str], object],
        debounce_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        check_interval: float | None = None,
    ):
        """Initialize the scheduler.

        Args:
            recompute: Callback run for a due key (signature:
                ``(portfolio_id, asset_id) -> Any``).
            debounce_seconds: Quiet time required after the last schedule
                before a key runs.
            clock: Monotonic time source in seconds.
            check_interval: Seconds between checks on the background thread.
                Defaults to a quarter of the debounce window.
        """
        self._recompute = recompute
        self._debounce = debounce_seconds
        self._clock = clock
        self._check_interval = check_interval if check_interval is not None else max(debounce_seconds / 4, 0.01)
        self._pending: dict[RecomputeKey, float] = {}
        self._in_flight: set[RecomputeKey] = set()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self.last_errors: dict[RecomputeKey, Exception] = {}
        self.runs = 0

    def schedule(self, portfolio_id: str, asset_id: str) -> None:
        with self._lock:
            self._pending[(portfolio_id, asset_id)] = self._clock() + self._debounce

    def on_transaction_change(self, change: TransactionChange) -> None:
        """Store listener: schedule the pair touched by a transaction write."""
        self.schedule(change.portfolio_id, change.asset_id)

    def pending(self) -> list[RecomputeKey]:
        with self._lock:
            return sorted(self._pending)

    def is_in_flight(self, portfolio_id: str, asset_id: str) -> bool:
        with self._lock:
            return (portfolio_id, asset_id) in self._in_flight

    def _take_due(self, now: float | None) -> list[RecomputeKey]:
        with self._lock:
            due = [
                key for key, deadline in self._pending.items()
                if key not in self._in_flight and (now is None or deadline <= now)
            ]
            for key in due:
                del self._pending[key]
                self._in_flight.add(key)
            return due

    def _execute(self, key: RecomputeKey) -> None:
        try:
            self._recompute(*key)
            self.last_errors.pop(key, None)
        except Exception as e:
            self.last_errors[key] = e
            warnings.warn(f"Recompute failed for {key[0]}/{key[1]}: {e}", RuntimeWarning, stacklevel=2)
        finally:
            self.runs += 1
            with self._lock:
                self._in_flight.discard(key)

    def run_due(self, now: float | None = None) -> list[RecomputeKey]:
        """Run every key whose deadline has passed.

        Args:
            now: Time to compare deadlines against. Defaults to the clock.

        Returns:
            The keys that were run.
        """
        due = self._take_due(self._clock() if now is None else now)
        for key in due:
            self._execute(key)
        return due

    def flush(self) -> list[RecomputeKey]:
        """Run every pending key immediately, ignoring deadlines."""
        due = self._take_due(None)
        for key in due:
            self._execute(key)
        return due

    def start(self) -> None:
        """Start the scheduler background thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and run whatever is still pending."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        self.flush()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_due()
            self._stop_event.wait(self._check_interval)
