from __future__ import annotations

from typing import Callable, Optional, Protocol

import click


class Console(Protocol):
    def ask(self, text: str, *, secret: bool = False) -> str: ...

    def say(self, text: str = "") -> None: ...

    def confirm(self, text: str) -> bool: ...


class ClickConsole:
    """Terminal implementation of :class:`Console`."""

    def ask(self, text: str, *, secret: bool = False) -> str:
        return click.prompt(
            text.rstrip(),
            default="",
            show_default=False,
            hide_input=secret,
            prompt_suffix=" ",
        )

    def say(self, text: str = "") -> None:
        click.echo(text)

    def confirm(self, text: str) -> bool:
        return click.confirm(text, default=False)


def prompt_until_valid(
    console: Console,
    text: str,
    is_valid: Callable[[str], bool],
    error: Optional[str] = None,
) -> str:
    """Ask until ``is_valid`` accepts the answer and return it."""
    while True:
        value = console.ask(text)
        if is_valid(value):
            return value
        if error:
            console.say(error)


def not_blank(value: str) -> bool:
    return bool(value and value.strip())
