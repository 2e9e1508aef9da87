"""extract_gate.arrival

Arrival watcher: block until every expected extract file is present in the
inbound directory.

Key behaviors:
- Files are checked strictly in the given priority order; file N+1 is not
  looked at until file N has been seen.
- Between checks the watcher waits `poll_interval_seconds` on a
  `threading.Event`, so setting the event from another thread (or a signal
  handler) unblocks it immediately.
- Waiting is bounded by `max_wait_seconds` across the whole watch and,
  optionally, by `max_attempts_per_file`. Exceeding either raises
  `ArrivalTimeoutError`.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Callable, List, Optional, Sequence

from .config import GateConfig, log_message
from .errors import ArrivalTimeoutError, WatchCancelledError
from .models import PollState


class ArrivalWatcher:
    def __init__(
        self,
        directory: str,
        poll_interval_seconds: float,
        max_wait_seconds: float,
        max_attempts_per_file: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.directory = directory
        self.poll_interval_seconds = poll_interval_seconds
        self.max_wait_seconds = max_wait_seconds
        self.max_attempts_per_file = max_attempts_per_file
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.poll_states: List[PollState] = []

    @classmethod
    def from_config(cls, gate_config: GateConfig, cancel_event: Optional[threading.Event] = None) -> "ArrivalWatcher":
        return cls(
            directory=gate_config.local_inbound_dir,
            poll_interval_seconds=gate_config.poll_interval_seconds,
            max_wait_seconds=gate_config.max_wait_seconds,
            max_attempts_per_file=gate_config.max_attempts_per_file,
            cancel_event=cancel_event,
        )

    def cancel(self) -> None:
        self.cancel_event.set()

    def is_present(self, name: str) -> bool:
        return os.path.exists(os.path.join(self.directory, name))

    def wait_for(self, names: Sequence[str]) -> List[PollState]:
        """Block until every file in `names` exists, checking them in order.

        Returns:
            One `PollState` per file, all with `found=True`.

        Raises:
            WatchCancelledError: The cancel event was set while waiting.
            ArrivalTimeoutError: The wait budget ran out before a file arrived.
        """
        log_message(f"Begin checking for extracts in {self.directory}: {', '.join(names)}")
        self.poll_states = []
        deadline = self.clock() + self.max_wait_seconds

        for name in names:
            state = PollState(name=name)
            self.poll_states.append(state)
            started = self.clock()

            while True:
                if self.cancel_event.is_set():
                    log_message(f"Watch cancelled while waiting for {name}.", level="WARN", depth=1)
                    raise WatchCancelledError(name)

                state.attempts += 1
                if self.is_present(name):
                    state.found = True
                    state.elapsed_seconds = self.clock() - started
                    log_message(f"{name} extract file found...", depth=1)
                    break

                now = self.clock()
                state.elapsed_seconds = now - started
                log_message(f"ERROR: {name} extract file not found (check {state.attempts})...", level="WARN", depth=1)

                remaining = deadline - now
                out_of_attempts = (
                    self.max_attempts_per_file is not None and state.attempts >= self.max_attempts_per_file
                )
                if remaining <= 0 or out_of_attempts:
                    log_message(
                        f"Giving up on {name} after {state.elapsed_seconds:.0f}s and {state.attempts} checks.",
                        level="ERROR",
                        depth=1,
                    )
                    raise ArrivalTimeoutError(name, state.elapsed_seconds, state.attempts)

                if self.cancel_event.wait(min(self.poll_interval_seconds, remaining)):
                    log_message(f"Watch cancelled while waiting for {name}.", level="WARN", depth=1)
                    raise WatchCancelledError(name)

        log_message("End checking for extracts.")
        return self.poll_states
