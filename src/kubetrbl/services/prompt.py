"""Line-based operator input."""

from __future__ import annotations

from typing import Protocol

import click

from kubetrbl.core.errors import InvalidInputError, OperatorAbortError


class Prompter(Protocol):
    """Reads answers from the operator, one line at a time."""

    def read_line(self, prompt: str, default: str | None = None) -> str: ...

    def read_index(self, prompt: str) -> int: ...


class ConsolePrompter:
    """Prompter reading from the terminal through click."""

    def read_line(self, prompt: str, default: str | None = None) -> str:
        """Read one line of text, stripped of surrounding whitespace.

        Raises:
            OperatorAbortError: On end of input or Ctrl-C at the prompt
        """
        try:
            answer = click.prompt(
                prompt,
                default=default if default is not None else "",
                show_default=bool(default),
                type=str,
            )
        except click.Abort as e:
            raise OperatorAbortError("Input closed by operator") from e
        return answer.strip()

    def read_index(self, prompt: str) -> int:
        """Read one line and parse it as a list index.

        Raises:
            InvalidInputError: If the answer is not an integer
            OperatorAbortError: On end of input
        """
        return parse_index(self.read_line(prompt))


def parse_index(answer: str) -> int:
    """Parse an operator answer as an integer index.

    Raises:
        InvalidInputError: If the answer is not an integer
    """
    try:
        return int(answer.strip())
    except ValueError as e:
        raise InvalidInputError(f"{answer!r} is not a number") from e
