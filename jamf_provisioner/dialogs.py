"""
Operator dialog surface.

Blocking terminal prompts (free text, hidden text, choose-from-list,
button choice) and the "please wait" indicator shown during long server
phases. Ctrl-C or end-of-input at any prompt raises UserCancelled.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from jamf_provisioner.errors import UserCancelled

logger = logging.getLogger(__name__)

TITLE = "Jamf Provisioner"


@contextmanager
def _cancellable() -> Iterator[None]:
    try:
        yield
    except (KeyboardInterrupt, EOFError):
        raise UserCancelled()


class Dialog:
    """Interactive prompts on a rich console."""

    def __init__(self, console: Optional[Console] = None, title: str = TITLE):
        self.console = console or Console()
        self.title = title

    def notify(self, message: str, title: Optional[str] = None) -> None:
        self.console.print(Panel(message, title=title or self.title, expand=False))

    def button(self, message: str, buttons: Sequence[str], default: Optional[str] = None) -> str:
        """Show a message and return the chosen button label."""
        self.notify(message)
        with _cancellable():
            return Prompt.ask(
                "Choose",
                console=self.console,
                choices=list(buttons),
                default=default or buttons[-1],
            )

    def confirm(self, message: str, proceed: str = "Proceed", cancel: str = "Quit") -> bool:
        """True when the operator picks the proceed button."""
        return self.button(message, [cancel, proceed], default=proceed) == proceed

    def ask_text(self, prompt: str, default: Optional[str] = None) -> str:
        with _cancellable():
            if default is None:
                return Prompt.ask(prompt, console=self.console).strip()
            return Prompt.ask(prompt, console=self.console, default=default).strip()

    def ask_secret(self, prompt: str) -> str:
        with _cancellable():
            return Prompt.ask(prompt, console=self.console, password=True)

    def choose(self, prompt: str, options: List[str]) -> Optional[str]:
        """
        Pick one option by number or name.

        Returns:
            The chosen option, or None when the operator enters nothing
        """
        self.console.print(prompt)
        for index, option in enumerate(options, start=1):
            self.console.print(f"  [cyan]{index}[/cyan]. {option}")

        while True:
            with _cancellable():
                answer = Prompt.ask("Selection", console=self.console, default="", show_default=False)
            answer = answer.strip()
            if not answer:
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1]
            if answer in options:
                return answer
            self.console.print(f"[red]'{answer}' is not one of the listed options[/red]")

    @contextmanager
    def waiting(self, title: str, message: str) -> Iterator[None]:
        """
        Show a spinner while a long server phase runs.

        The spinner runs on its own thread and is stopped on every exit path.
        """
        with self.console.status(f"[bold]{title}[/bold] {message}", spinner="dots"):
            yield
