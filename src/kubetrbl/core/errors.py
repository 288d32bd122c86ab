"""Error types raised by the diagnostic pipeline."""


class KubetrblError(Exception):
    """Base class for recoverable diagnostic failures."""

    pass


class InputError(KubetrblError):
    """Raised when operator input cannot be used; the step re-prompts."""

    pass


class InvalidInputError(InputError):
    """Raised when a numeric answer was expected but something else was typed."""

    pass


class OutOfRangeError(InputError):
    """Raised when a selection index is not a valid list position."""

    def __init__(self, index: int, size: int) -> None:
        self.index = index
        self.size = size
        if size:
            super().__init__(f"Selection {index} is out of range, choose 0 to {size - 1}")
        else:
            super().__init__(f"Selection {index} is out of range, there is nothing to choose")


class NotFoundError(KubetrblError):
    """Raised when a resource or port cannot be resolved."""

    pass


class AmbiguousError(KubetrblError):
    """Raised when more than one resource matches where exactly one is expected."""

    def __init__(self, message: str, candidates: list[str]) -> None:
        super().__init__(message)
        self.candidates = candidates


class TransportError(KubetrblError):
    """Raised when the cluster API or a tunnel cannot be reached."""

    pass


class OperatorAbortError(KubetrblError):
    """Raised when the operator closes input or cancels a prompt."""

    pass


class UnknownStateError(Exception):
    """Raised when a transition targets a state that was never registered.

    This is a programming error in the state wiring, not a runtime condition,
    so the state machine never routes it to its error handler.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"State machine has no state named {name!r}")
        self.name = name
