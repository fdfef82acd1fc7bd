"""Terminal prompting used by the CLI when a required value was not passed as a flag."""

import getpass
import sys
from typing import Optional, TextIO


class PromptUnavailable(Exception):
    """Raised when prompting is needed but no interactive terminal is attached."""


class Prompter:
    """Reads hidden secrets and plain lines from the controlling terminal."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def _require_tty(self) -> None:
        if not (self.stdin.isatty() and self.stdout.isatty()):
            raise PromptUnavailable(
                "Interactive terminal required for prompts. Provide the value via flags instead."
            )

    def ask_secret(self, prompt: str = "Passphrase: ") -> str:
        self._require_tty()
        return getpass.getpass(prompt, stream=self.stdout)

    def ask_line(self, prompt: str = "> ") -> str:
        self._require_tty()
        self.stdout.write(prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            raise EOFError("Input closed while waiting for an answer")
        return line.strip()
