# src/wpmigrate/engine/prompts.py
"""Operator decision prompts for systemic failure escalation.

The detector asks a DecisionPrompt for a raw answer and interprets it with
parse_decision(). Anything that is not a recognisable continue or pause
answer is an abort, so a closed stdin or a stray keypress stops the run
rather than letting it keep damaging sites.
"""

from __future__ import annotations

import sys
from typing import Protocol

import typer

from wpmigrate.contracts import Decision
from wpmigrate.core.logging import get_logger

logger = get_logger(__name__)

_CONTINUE_ANSWERS = frozenset({"c", "continue"})
_PAUSE_ANSWERS = frozenset({"p", "pause"})


class DecisionPrompt(Protocol):
    """Asks the operator how to proceed. Returns the raw answer."""

    def ask(self, message: str) -> str: ...


def parse_decision(answer: str) -> Decision:
    choice = answer.strip().lower()
    if choice in _CONTINUE_ANSWERS:
        return Decision.CONTINUE
    if choice in _PAUSE_ANSWERS:
        return Decision.PAUSE
    return Decision.ABORT


class TerminalDecisionPrompt:
    """Interactive prompt on the controlling terminal.

    Blocks until the operator answers. EOF and Ctrl-C are reported as an
    empty answer, which parse_decision() treats as abort.
    """

    def ask(self, message: str) -> str:
        typer.secho(f"\n{message}", fg=typer.colors.RED, err=True)
        typer.secho("\nOptions:", fg=typer.colors.YELLOW, err=True)
        typer.echo("  c) Continue migration (may continue to fail)", err=True)
        typer.echo("  p) Pause migration (save current state and exit)", err=True)
        typer.echo("  a) Abort migration (stop immediately)", err=True)
        try:
            answer: str = typer.prompt(
                "\nWhat would you like to do? (c/p/a)",
                default="",
                show_default=False,
                err=True,
            )
        except (typer.Abort, EOFError, KeyboardInterrupt):
            return ""
        return answer


class FixedDecisionPrompt:
    """Non-interactive prompt that always gives the same answer.

    Used for headless and CI runs, where blocking on stdin would hang the
    job. Defaults to abort (fail closed).
    """

    def __init__(self, decision: Decision = Decision.ABORT) -> None:
        self._decision = Decision(decision)

    def ask(self, message: str) -> str:
        logger.warning("non_interactive_decision", message=message, decision=self._decision.value)
        return self._decision.value


def default_prompt(non_interactive_decision: Decision = Decision.ABORT, *, interactive: bool | None = None) -> DecisionPrompt:
    """Terminal prompt when attached to a TTY, fixed answer otherwise."""
    if interactive is None:
        interactive = sys.stdin.isatty()
    if interactive:
        return TerminalDecisionPrompt()
    return FixedDecisionPrompt(non_interactive_decision)
