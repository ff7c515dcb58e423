"""
RestrictedPython sandbox for code-mode scripts.

The script body is compiled as the body of ``async def script_main()`` so
top-level ``await`` and ``return`` work. Globals are exactly: safe builtins,
the RestrictedPython guards, the capability root (``mysql``), a no-op
``console`` and ``gather`` for running capability calls concurrently.

Blocked: import, open, exec, eval, compile, underscore names/attributes,
and anything else outside that set.
"""

import ast
import asyncio
import builtins
import operator
from types import SimpleNamespace
from typing import Any

from RestrictedPython import RestrictingNodeTransformer, compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

ENTRYPOINT = "script_main"

# Never reachable from a script, even if a future safe_builtins grows them
_DENIED_BUILTINS = (
    "__import__",
    "open",
    "eval",
    "exec",
    "compile",
    "globals",
    "locals",
    "vars",
    "input",
    "breakpoint",
    "exit",
    "quit",
)

# Plain container/utility builtins scripts need to shape results
_EXTRA_BUILTINS = (
    "list",
    "dict",
    "set",
    "tuple",
    "min",
    "max",
    "sum",
    "any",
    "all",
    "enumerate",
    "reversed",
)

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


class CodeModePolicy(RestrictingNodeTransformer):
    """Default restrictions, plus ``async def`` and ``await``."""

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self.visit_FunctionDef(node)

    def visit_Await(self, node: ast.Await) -> ast.AST:
        return self.node_contents_visit(node)


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return fn(x, y)


def _apply(fn: Any, *args: Any, **kwargs: Any) -> Any:
    return fn(*args, **kwargs)


def _noop(*args: Any, **kwargs: Any) -> None:
    return None


async def gather(*aws: Any, return_exceptions: bool = False) -> list[Any]:
    """Await several capability calls at once; results keep argument order."""
    return list(await asyncio.gather(*aws, return_exceptions=return_exceptions))


def make_console() -> SimpleNamespace:
    """Script-visible console: every method accepts anything and does nothing."""
    return SimpleNamespace(log=_noop, info=_noop, warn=_noop, error=_noop, debug=_noop)


def _wrap_in_entrypoint(script: str, filename: str) -> ast.Module:
    tree = ast.parse(script, filename, "exec")
    module = ast.parse(f"async def {ENTRYPOINT}():\n    pass\n", filename, "exec")
    fn = module.body[0]
    if tree.body:
        fn.body = tree.body
    return module


def compile_script(script: str, filename: str = "<script>") -> Any:
    """
    Compile script with RestrictedPython. Raises SyntaxError on failure.

    Returns a code object that defines ``script_main`` when exec'd.
    """
    module = _wrap_in_entrypoint(script, filename)
    try:
        code = compile_restricted(module, filename, "exec", policy=CodeModePolicy)
    except SyntaxError as exc:
        # RestrictedPython reports every violation at once as a tuple
        if isinstance(exc.msg, (tuple, list)):
            raise SyntaxError("\n".join(str(m) for m in exc.msg)) from None
        raise
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def _make_safe_builtins() -> dict[str, Any]:
    safe = dict(safe_builtins)
    for name in _EXTRA_BUILTINS:
        safe.setdefault(name, getattr(builtins, name))
    for name in _DENIED_BUILTINS:
        safe.pop(name, None)
    return safe


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": safer_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "_print_": PrintCollector,
    }


def build_restricted_globals(root: Any, root_name: str = "mysql") -> dict[str, Any]:
    """Globals for exec(compiled, globals): builtins, guards, root object, console, gather."""
    g: dict[str, Any] = {
        "__builtins__": _make_safe_builtins(),
        "__name__": "script",
    }
    g.update(_make_guard_globals())
    g[root_name] = root
    g["console"] = make_console()
    g["gather"] = gather
    return g
