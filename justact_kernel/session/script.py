"""Pre-parsed scenario scripts — command documents stored as JSON."""

import json
from pathlib import Path
from typing import List, Union

from justact_kernel.errors import CommandError
from justact_kernel.interpreter.interpreter import parse_command
from justact_kernel.models.commands import Command


def parse_script(text: str) -> List[Command]:
    """
    Parse a script: either a JSON array of command documents, or one
    command document per line (blank lines and lines starting with '#'
    are skipped).
    """
    stripped = text.strip()
    if stripped.startswith("["):
        try:
            documents = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise CommandError("script", "malformed_script", str(e)) from e
        return [parse_command(doc) for doc in documents]

    commands = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            document = json.loads(line)
        except json.JSONDecodeError as e:
            raise CommandError(
                "script", "malformed_script", f"line {lineno}: {e.msg}"
            ) from e
        commands.append(parse_command(document))
    return commands


def load_script(path: Union[str, Path]) -> List[Command]:
    """Read and parse a script file."""
    return parse_script(Path(path).read_text(encoding="utf-8"))
