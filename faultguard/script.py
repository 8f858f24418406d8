"""
Scripts — ordered phases of statements and checks.

A script is data, not control flow. The Run Controller consumes it:

    script = Script("libstack")
    setup = script.phase("setup")
    setup.state(lambda ctx: setattr(ctx, "stack", Stack()), "stack = Stack()")
    setup.must(lambda ctx: ctx.stack is not None)
    setup.check(lambda ctx: ctx.stack.depth() == 0)

Operations:
    Note       — A heading printed in the report
    Statement  — Executed as-is; its own failure is NOT caught
    Check      — Evaluated under fault protection; optionally mandatory
                 (a failure stops the run) or isolated (runs in a child)

Every operation receives the shared RunContext, which carries state
between operations and between phases.
"""

from __future__ import annotations

import ast
import inspect
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union


# =============================================================================
# RUN CONTEXT
# =============================================================================

class RunContext:
    """
    Shared namespace for one run.

    Operations store whatever they need as attributes. Temporary files
    are handed out by `artifact()` and live in a per-run directory that
    is removed by `cleanup()` unless files are kept.
    """

    def __init__(self, keep_files: bool = False):
        self.keep_files = keep_files
        self._workdir: Optional[Path] = None

    @property
    def workdir(self) -> Path:
        """Per-run temporary directory, created on first use."""
        if self._workdir is None:
            self._workdir = Path(tempfile.mkdtemp(prefix="faultguard-"))
        return self._workdir

    def artifact(self, name: str) -> Path:
        """Path for a temporary artifact named `name`."""
        return self.workdir / name

    def cleanup(self) -> Optional[Path]:
        """
        Remove the artifact directory.

        Returns the directory if it was kept, None otherwise.
        """
        if self._workdir is None:
            return None
        if self.keep_files:
            return self._workdir
        shutil.rmtree(self._workdir, ignore_errors=True)
        self._workdir = None
        return None


Thunk = Callable[[RunContext], Any]


# =============================================================================
# EXPRESSION TEXT
# =============================================================================

_LAMBDA_HEAD = re.compile(r"\blambda\b[^:]*:")


def _cut_expression(text: str) -> str:
    """Cut `text` at the end of the first expression in it."""
    depth = 0
    quote = None
    escaped = False
    for i, ch in enumerate(text):
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "'\"":
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                return text[:i]
            depth -= 1
        elif depth == 0 and ch in ",#\n":
            return text[:i]
    return text


def _parse_fragment(source: str) -> tuple[Optional[ast.AST], int]:
    """
    Parse a source fragment as returned by inspect.getsource().

    An indented fragment is parsed under a dummy block so that column
    offsets still match the file. Returns the tree and the number of
    lines added in front, or (None, 0) if the fragment is not complete
    Python on its own.
    """
    for text, shift in ((source, 0), ("if True:\n" + source, 1)):
        try:
            return ast.parse(text), shift
        except SyntaxError:
            continue
    return None, 0


def _body_starts(code: Any) -> set[tuple[int, int]]:
    """(line, column) of every instruction of `code` that has a position."""
    positions = getattr(code, "co_positions", None)
    if positions is None:
        return set()
    return {
        (line, col)
        for line, _, col, _ in positions()
        if line is not None and col is not None
    }


def _lambda_body(fn: Callable[..., Any], lines: list[str], first: int) -> Optional[str]:
    """Source of the body of the lambda `fn`, found among `lines`."""
    source = "".join(lines)
    tree, shift = _parse_fragment(source)
    if tree is None:
        return None

    code = fn.__code__
    params = list(code.co_varnames[:code.co_argcount])
    offset = first - 1 - shift
    candidates = [
        node for node in ast.walk(tree)
        if isinstance(node, ast.Lambda)
        and node.lineno + offset == code.co_firstlineno
        and [arg.arg for arg in node.args.args] == params
    ]
    if len(candidates) > 1:
        starts = _body_starts(code)
        located = [
            node for node in candidates
            if (node.body.lineno + offset, node.body.col_offset) in starts
        ]
        candidates = located or candidates
    if not candidates:
        return None

    text = source if shift == 0 else "if True:\n" + source
    return ast.get_source_segment(text, candidates[0].body)


def describe(fn: Callable[..., Any]) -> str:
    """
    Textual form of a thunk for the report.

    For a lambda this is its body as written in the source; for a named
    function it is the call, e.g. "setup_core()". When a line holds
    several lambdas with the same parameters, the instruction positions
    of the code object tell them apart (Python 3.11+); on older versions
    the first one is used, so pass the text explicitly there.
    """
    name = getattr(fn, "__name__", None)
    if name and name != "<lambda>":
        return f"{getattr(fn, '__qualname__', name)}()"

    try:
        lines, first = inspect.getsourcelines(fn)
    except (OSError, TypeError):
        return repr(fn)

    body = _lambda_body(fn, lines, first)
    if body is not None:
        return " ".join(body.split())

    source = "".join(lines)
    match = _LAMBDA_HEAD.search(source)
    if match is None:
        return " ".join(source.split())
    return " ".join(_cut_expression(source[match.end():]).split())


def line_of(fn: Callable[..., Any]) -> int:
    """Source line where `fn` is defined, 0 if unknown."""
    code = getattr(fn, "__code__", None)
    return code.co_firstlineno if code is not None else 0


# =============================================================================
# OPERATIONS
# =============================================================================

@dataclass(frozen=True)
class Note:
    """A heading in the report."""
    text: str


@dataclass(frozen=True)
class Statement:
    """A side-effecting step. Always executed, never protected."""
    action: Thunk
    text: str
    line: int = 0


@dataclass(frozen=True)
class Check:
    """A boolean-valued expression evaluated under fault protection."""
    expr: Thunk
    text: str
    line: int = 0
    mandatory: bool = False
    isolated: bool = False


Operation = Union[Note, Statement, Check]


# =============================================================================
# PHASES AND SCRIPTS
# =============================================================================

@dataclass
class Phase:
    """A named, ordered list of operations."""
    name: str
    operations: list[Operation] = field(default_factory=list)

    def note(self, text: str) -> Phase:
        self.operations.append(Note(text))
        return self

    def state(self, action: Thunk, text: Optional[str] = None) -> Phase:
        """Append a statement."""
        self.operations.append(Statement(
            action=action,
            text=text or describe(action),
            line=line_of(action),
        ))
        return self

    def check(
        self,
        expr: Thunk,
        text: Optional[str] = None,
        *,
        isolated: bool = False,
    ) -> Phase:
        """Append an ordinary check. Its failure does not stop the run."""
        self.operations.append(Check(
            expr=expr,
            text=text or describe(expr),
            line=line_of(expr),
            isolated=isolated,
        ))
        return self

    def must(self, expr: Thunk, text: Optional[str] = None) -> Phase:
        """Append a mandatory check. Its failure stops the run."""
        self.operations.append(Check(
            expr=expr,
            text=text or describe(expr),
            line=line_of(expr),
            mandatory=True,
        ))
        return self

    @property
    def check_count(self) -> int:
        return sum(1 for op in self.operations if isinstance(op, Check))


@dataclass
class Script:
    """A named, ordered list of phases."""
    name: str
    phases: list[Phase] = field(default_factory=list)

    def phase(self, name: str) -> Phase:
        """Create a phase, append it and return it for building."""
        phase = Phase(name)
        self.phases.append(phase)
        return phase

    @property
    def check_count(self) -> int:
        """Number of checks in the script."""
        return sum(phase.check_count for phase in self.phases)
