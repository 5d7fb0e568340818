"""
Compiler service: turns source text into a loadable artifact.

The Python compiler front end is the builtin `compile()`. Rejected source is
reported as a CompilationError carrying a location-aware diagnostic with a
short excerpt of the offending lines.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Optional

from clasp.clasp_datatypes import Artifact, CompilationError, SourceUnit

logger = logging.getLogger(__name__)

_module_ids = itertools.count(1)


class Compiler(ABC):
    """The external compiler collaborator."""

    @abstractmethod
    def compile(self, source: SourceUnit) -> Artifact:
        """Compile `source`, raising CompilationError with diagnostic text on failure."""
        raise NotImplementedError


def source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    """Excerpt of `source` around `line`, marked with `>` and a caret under `col`."""
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        ln = str(i).rjust(width)
        content = lines[i - 1]
        out.append(f"{prefix} {ln} | {content}")
        if i == line and col is not None:
            caret = " " * max(col - 1, 0)
            out.append(f"  {' ' * width} | {caret}^")
    return "\n".join(out)


def format_syntax_error(e: SyntaxError, source: str) -> str:
    kind = type(e).__name__
    base = e.msg or str(e)
    line = e.lineno
    col = e.offset
    if line is not None and col is not None:
        msg = f"{kind}: {base} (line {line}, col {col})"
        context = source_context(source, line, col)
        return f"{msg}\n{context}" if context else msg
    if line is not None:
        return f"{kind}: {base} (line {line})"
    return f"{kind}: {base}"


class PythonCompiler(Compiler):
    """Compiles Python source with the builtin compiler."""

    def __init__(self, optimize: int = -1):
        self.optimize = optimize

    def compile(self, source: SourceUnit) -> Artifact:
        module_name = f"clasp_script_{next(_module_ids)}"
        filename = source.filename or f"<{module_name}>"
        logger.debug("Compiling %s (%d chars)", filename, len(source.text))
        try:
            code = compile(source.text, filename, "exec", dont_inherit=True, optimize=self.optimize)
        except SyntaxError as e:
            raise CompilationError(format_syntax_error(e, source.text)) from e
        except ValueError as e:
            # e.g. source containing null bytes
            raise CompilationError(f"ValueError: {e}") from e

        return Artifact(source=source, code=code, module_name=module_name, filename=filename)
