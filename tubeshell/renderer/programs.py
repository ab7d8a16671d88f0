"""
Renderer programs.

Plugins never build JavaScript strings. They describe what they want with a
RendererProgram (a behavior identifier plus a JSON config snapshot) and the
injector evaluates the matching fixed program body from ``renderer/js``
with the snapshot passed as a structured argument.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

PROGRAM_DIR = Path(__file__).parent / "js"

# Installed in every context ahead of plugin programs
RUNTIME_PROGRAM = "discovery"

# Invoke a method ("reassert", "update", "dispose") on an installed unit
CALL_EXPRESSION = """(args) => {
  const shell = window.__tubeshell;
  if (!shell) return { found: false };
  return shell.call(args.unit, args.method, args.config);
}"""


@dataclass(frozen=True)
class RendererProgram:
    """
    What a plugin wants running in a renderer context.

    Attributes:
        behavior: name of the program body (``renderer/js/<behavior>.js``)
        config: JSON-serializable snapshot handed to the body
        critical: re-assert on a polling loop as well (UI the page keeps removing)
    """

    behavior: str
    config: Mapping[str, Any] = field(default_factory=dict)
    critical: bool = False

    def __post_init__(self):
        # Fail at construction rather than inside the page
        json.dumps(dict(self.config))


class ProgramLibrary:
    """Loads program bodies from a directory, once per behavior."""

    def __init__(self, directory: Path = PROGRAM_DIR):
        self.directory = directory
        self._cache: dict[str, str] = {}

    def body(self, behavior: str) -> str:
        if behavior not in self._cache:
            path = self.directory / f"{behavior}.js"
            if not path.is_file():
                raise ValueError(f"Unknown renderer program: {behavior}")
            self._cache[behavior] = path.read_text(encoding="utf-8")
        return self._cache[behavior]

    def runtime(self) -> str:
        return self.body(RUNTIME_PROGRAM)

    def behaviors(self) -> list[str]:
        return sorted(path.stem for path in self.directory.glob("*.js"))


@lru_cache(maxsize=1)
def default_library() -> ProgramLibrary:
    return ProgramLibrary()
