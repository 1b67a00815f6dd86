# vimmarch/utils/prompts.py
import select
import sys
from typing import Optional, TextIO

from rich.console import Console

_YES = {"y", "yes"}


def confirm_with_timeout(console: Console,
                         prompt: str,
                         timeout: int = 30,
                         default: bool = True,
                         stream: Optional[TextIO] = None) -> bool:
    """
    Asks a yes/no question and waits at most ``timeout`` seconds for the answer.

    Without a terminal on stdin, or when the wait runs out, the default is taken.
    An empty answer also takes the default.
    """
    stream = sys.stdin if stream is None else stream
    default_word = "y" if default else "n"

    if not stream.isatty():
        return default

    console.print(f"[yellow]{prompt}[/] (y/n, default={default_word} in {timeout}s): ", end="")
    ready, _, _ = select.select([stream], [], [], timeout)
    if not ready:
        console.print()
        return default

    answer = stream.readline().strip().lower()
    if not answer:
        return default
    return answer in _YES
