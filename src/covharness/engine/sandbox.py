"""Compile instrumented code into a callable and run it against a coverage context.

Generated code is spliced into a function template so that it behaves like a function
body: ``args`` is the only parameter, ``output`` the only result. The function's globals
are the context namespace, which is where instrumented code finds (and creates) its
coverage variable.
"""

from __future__ import annotations

import ast
import builtins
import copy
import inspect
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from functools import cache
from typing import TYPE_CHECKING, Any

from covharness.errors import CompileError, ContextBusyError, ExecutionError
from covharness.model.types import ExecutionMode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

ENTRY_POINT = "__covharness_entry__"
OUTPUT_NAME = "output"

_TEMPLATES = {
    ExecutionMode.SYNC: f"def {ENTRY_POINT}(args):\n    {OUTPUT_NAME} = None\n    return {OUTPUT_NAME}\n",
    ExecutionMode.ASYNC: f"async def {ENTRY_POINT}(args):\n    {OUTPUT_NAME} = None\n    return {OUTPUT_NAME}\n",
}


class CoverageContext:
    """Explicit stand-in for the global object instrumented code writes counters to.

    Only one session may own a given coverage variable at a time; sessions using
    different variable names can share a context.
    """

    def __init__(self, namespace: dict[str, Any] | None = None) -> None:
        self.namespace: dict[str, Any] = namespace if namespace is not None else {}
        self.namespace.setdefault("__builtins__", builtins)
        self.namespace.setdefault("__name__", "__covharness__")
        self._lock = threading.Lock()
        self._claimed: set[str] = set()

    def read(self, variable: str) -> Any:
        return self.namespace.get(variable)

    def snapshot(self, variable: str) -> Any:
        return copy.deepcopy(self.namespace.get(variable))

    def clear(self, variable: str) -> None:
        self.namespace.pop(variable, None)

    def prime(self, variable: str, baseline: Any) -> None:
        """Reset *variable* to a deep copy of *baseline* (``None`` removes it)."""
        if baseline is None:
            self.clear(variable)
        else:
            self.namespace[variable] = copy.deepcopy(baseline)

    @contextmanager
    def claim(self, variable: str) -> Iterator[None]:
        with self._lock:
            if variable in self._claimed:
                msg = f"coverage variable {variable!r} is already in use by another session"
                raise ContextBusyError(msg)
            self._claimed.add(variable)
        try:
            yield
        finally:
            with self._lock:
                self._claimed.discard(variable)


@cache
def default_context() -> CoverageContext:
    """Process-wide context shared by sessions that do not bring their own."""
    return CoverageContext()


@dataclass(frozen=True, slots=True)
class CompiledUnit:
    """A compiled instrumented body ready to be bound to a context."""

    code: Any
    filename: str
    mode: ExecutionMode

    def bind(self, context: CoverageContext) -> Callable[[Any], Any]:
        """Materialise the entry function with *context* as its globals."""
        exec(self.code, context.namespace)  # noqa: S102
        return context.namespace.pop(ENTRY_POINT)


def compile_instrumented(code: str, filename: str, mode: ExecutionMode = ExecutionMode.SYNC) -> CompiledUnit:
    """Wrap *code* into ``def entry(args)`` (or ``async def``) and compile it."""
    try:
        module = ast.parse(code, filename=filename)
    except SyntaxError as exc:
        msg = f"instrumented code for {filename} does not parse: {exc}"
        raise CompileError(msg) from exc

    template = ast.parse(_TEMPLATES[mode], filename=filename)
    entry = template.body[0]
    # keep `output = None` first and `return output` last
    entry.body[1:1] = module.body
    try:
        compiled = compile(template, filename, "exec")
    except (SyntaxError, ValueError) as exc:
        msg = f"instrumented code for {filename} does not compile: {exc}"
        raise CompileError(msg) from exc
    return CompiledUnit(code=compiled, filename=filename, mode=mode)


def invoke(fn: Callable[[Any], Any], args: Any) -> Any:
    """Call a synchronous entry function."""
    try:
        return fn(args)
    except Exception as exc:
        msg = f"instrumented code raised {type(exc).__name__}: {exc}"
        raise ExecutionError(msg) from exc


async def ainvoke(fn: Callable[[Any], Any], args: Any) -> Any:
    """Call an entry function and await it when it is asynchronous."""
    try:
        result = fn(args)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        msg = f"instrumented code raised {type(exc).__name__}: {exc}"
        raise ExecutionError(msg) from exc
    return result


__all__ = [
    "ENTRY_POINT",
    "OUTPUT_NAME",
    "CompiledUnit",
    "CoverageContext",
    "ainvoke",
    "compile_instrumented",
    "default_context",
    "invoke",
]
