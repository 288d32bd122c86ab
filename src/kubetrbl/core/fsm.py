"""A small finite state machine with enter/update/exit hooks.

States are plain data: a name bound to up to three zero-argument callables.
The machine knows nothing about what the states do. Any exception raised by
a hook is handed to a single pluggable error handler, which decides whether
to retry, move on or give up.

Example:
    ```python
    machine = StateMachine()
    machine.register("start", State(on_enter=lambda: machine.change("done")))
    machine.register("done", State(on_enter=lambda: print("finished")))
    machine.change("start")
    ```
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from kubetrbl.core.errors import UnknownStateError

logger = logging.getLogger(__name__)

Hook = Callable[[], None]
ErrorHandler = Callable[["StateMachine", Exception], None]


@dataclass(frozen=True)
class State:
    """Lifecycle hooks for one named state. Every hook is optional."""

    on_enter: Hook | None = None
    on_update: Hook | None = None
    on_exit: Hook | None = None


def log_error(machine: StateMachine, error: Exception) -> None:
    """Default error handler: log the failure and stay in the current state."""
    logger.error("State %s failed: %s", machine.state, error)


class StateMachine:
    """Finite state machine with one active state at a time.

    Transitions requested while another transition is being dispatched (from a
    hook or from the error handler) are queued and run once the running hook
    returns, so long chains of states never grow the call stack.
    """

    def __init__(self, error_handler: ErrorHandler | None = None) -> None:
        """Initialize an empty machine.

        Args:
            error_handler: Called with (machine, error) whenever a hook fails
        """
        self.error_handler: ErrorHandler = error_handler or log_error
        self.history: list[str] = []
        self._states: dict[str, State] = {}
        self._state: str | None = None
        self._pending: deque[str] = deque()
        self._dispatching = False

    @property
    def state(self) -> str | None:
        """Name of the active state, or None before the first transition."""
        return self._state

    def register(self, name: str, state: State) -> None:
        """Register a state under a name, replacing any previous registration."""
        self._states[name] = state

    def unregister(self, name: str) -> None:
        """Remove a state from the machine."""
        self._states.pop(name, None)

    def has_state(self, name: str) -> bool:
        """Return True if a state is registered under the name."""
        return name in self._states

    def change(self, name: str) -> None:
        """Exit the active state and enter the named one.

        Args:
            name: Name of the state to enter

        Raises:
            UnknownStateError: If the name was never registered
        """
        self._pending.append(name)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                self._transition(self._pending.popleft())
        finally:
            self._dispatching = False
            self._pending.clear()

    def update(self) -> None:
        """Run the update hook of the active state."""
        if self._state is None:
            logger.warning("update() called on state machine without active state")
            return

        state = self._states.get(self._state)
        if state is not None and state.on_update is not None:
            self._invoke(state.on_update)

    def _transition(self, name: str) -> None:
        current = self._states.get(self._state) if self._state is not None else None
        if current is not None and current.on_exit is not None:
            if not self._invoke(current.on_exit):
                logger.debug("Exit of %s failed, staying put", self._state)
                return

        target = self._states.get(name)
        if target is None:
            raise UnknownStateError(name)

        logger.debug("Transition %s -> %s", self._state, name)
        self._state = name
        self.history.append(name)

        if target.on_enter is not None:
            self._invoke(target.on_enter)

    def _invoke(self, hook: Hook) -> bool:
        """Run a hook, routing any failure to the error handler."""
        try:
            hook()
        except UnknownStateError:
            raise
        except Exception as e:
            self.error_handler(self, e)
            return False
        return True
