from __future__ import annotations

import logging
import os
import sys
from typing import Callable, Optional, Sequence, TextIO

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def detect_interactive(*, non_interactive: bool, force_interactive: bool, dry_run: bool) -> bool:
    if force_interactive:
        return True
    if non_interactive or dry_run:
        return False
    if os.environ.get("TERM", "") == "dumb":
        return False
    return sys.stdin.isatty() and sys.stdout.isatty()


class Prompter:
    """Terminal questions. A non-interactive prompter answers every question with its default."""

    def __init__(
        self,
        interactive: bool,
        *,
        input_fn: Callable[[str], str] = input,
        out: Optional[TextIO] = None,
    ):
        self.interactive = interactive
        self._input = input_fn
        self._out = out or sys.stderr

    def _say(self, text: str) -> None:
        print(text, file=self._out)

    def warn_box(self, title: str, body: str) -> None:
        bar = "!" * max(len(title) + 8, 40)
        self._say(bar)
        self._say(f"!!! {title}")
        for line in body.splitlines():
            self._say(f"    {line}")
        self._say(bar)

    def confirm(self, question: str, *, default: bool = False) -> bool:
        if not self.interactive:
            logger.info("%s -> %s (non-interactive default)", question, "yes" if default else "no")
            return default
        hint = "[Y/n]" if default else "[y/N]"
        while True:
            answer = self._input(f"{question} {hint} ").strip().lower()
            if not answer:
                return default
            if answer in {"y", "yes"}:
                return True
            if answer in {"n", "no"}:
                return False
            self._say("Please answer 'y' or 'n'.")

    def choose(self, question: str, options: Sequence[str], *, default: int = 0) -> str:
        if not self.interactive:
            return options[default]
        self._say(question)
        for i, opt in enumerate(options, start=1):
            self._say(f"  {i}) {opt}")
        while True:
            answer = self._input(f"Select [1-{len(options)}] (default {default + 1}): ").strip()
            if not answer:
                return options[default]
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1]
            self._say("Invalid selection.")

    def ask(
        self,
        question: str,
        *,
        default: str = "",
        validator: Optional[Callable[[str], str]] = None,
        secret: bool = False,
    ) -> str:
        if not self.interactive:
            return default
        shown = "********" if (secret and default) else default
        while True:
            answer = self._input(f"{question} [{shown}]: ").strip() or default
            if validator is None:
                return answer
            try:
                return validator(answer)
            except ConfigurationError as e:
                self._say(str(e))
