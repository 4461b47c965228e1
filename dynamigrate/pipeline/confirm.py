"""Confirmation gates in front of irreversible steps.

A confirmer takes a description of what is about to happen and returns
whether to proceed.
"""

from collections.abc import Callable

import click

Confirmer = Callable[[str], bool]


def always_confirm(description: str) -> bool:
    """Confirmer for unattended runs."""
    return True


def never_confirm(description: str) -> bool:
    return False


def click_confirmer(description: str) -> bool:
    """Ask a yes/no question on the terminal; blocks until answered."""
    click.secho(f"⚠️  {description}", fg="yellow")
    return click.confirm("Continue?", default=False)


def typed_confirmer(word: str = "DELETE") -> Confirmer:
    """Require the operator to type ``word`` to proceed."""

    def _confirm(description: str) -> bool:
        click.secho(f"⚠️  {description}", fg="red")
        answer = click.prompt(f"Type '{word}' to confirm", default="", show_default=False)
        return answer.strip() == word

    return _confirm
