"""
Filter expressions selecting which pull requests get their CI re-run.

An expression is a Python-like boolean expression, compiled once per run and
evaluated against a read-only view of each pull request::

    not draft and "skip-ci" not in labels
    base == "main" and startswith(head, "renovate/")
    pr.user.login != "dependabot[bot]"

Names available during evaluation:

============  ==================================================
``number``    pull request number
``title``     title
``body``      description, empty string when unset
``draft``     whether the pull request is a draft
``labels``    tuple of label names
``author``    login of the author, empty string when unknown
``base``      base branch name
``head``      head branch name
``pr``        nested view: ``pr.base.ref``, ``pr.base.sha``,
              ``pr.head.ref``, ``pr.head.sha``, ``pr.user.login``,
              ``pr.state``, ``pr.html_url``, ...
============  ==================================================

``true``, ``false``, ``nil`` and ``null`` are accepted next to ``True``,
``False`` and ``None``. Callable helpers are limited to ``FUNCTIONS``.
"""
import ast
from dataclasses import dataclass, field
import operator
import re
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from run_ci.exceptions import CompileError, EvalError
from run_ci.github.model import PullRequest

CONSTANTS: Mapping[str, Any] = MappingProxyType(
    {"true": True, "false": False, "nil": None, "null": None}
)


def _matches(value: str, pattern: str) -> bool:
    return re.search(pattern, value) is not None


def _contains(value, item) -> bool:
    return item in value


def _any_label(labels, *names: str) -> bool:
    return any(name in labels for name in names)


FUNCTIONS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "len": len,
        "lower": str.lower,
        "upper": str.upper,
        "startswith": str.startswith,
        "endswith": str.endswith,
        "contains": _contains,
        "matches": _matches,
        "any_label": _any_label,
    }
)

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_UNARY_OPERATORS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.BinOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Load,
    *_BINARY_OPERATORS,
    *_UNARY_OPERATORS,
    *_COMPARISONS,
)

_EVALUATION_ERRORS = (
    AttributeError,
    IndexError,
    KeyError,
    TypeError,
    ValueError,
    ZeroDivisionError,
    re.error,
)


def _check(tree: ast.Expression, source: str) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise CompileError(
                f"unsupported syntax in expression {source!r}: {type(node).__name__}",
                source=source,
            )
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise CompileError(
                f"private attribute {node.attr!r} is not accessible", source=source
            )
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                raise CompileError(
                    f"only these functions can be called: {', '.join(sorted(FUNCTIONS))}",
                    source=source,
                )
            if node.keywords:
                raise CompileError(
                    "keyword arguments are not supported", source=source
                )


def _attribute(value: Any, name: str) -> Any:
    if not isinstance(value, Mapping):
        raise EvalError(f"{type(value).__name__} has no field {name!r}")
    if name not in value:
        raise EvalError(f"field {name!r} is not defined")
    return value[name]


def _evaluate(node: ast.AST, context: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in context:
            return context[node.id]
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise EvalError(f"name {node.id!r} is not defined")

    if isinstance(node, ast.Attribute):
        return _attribute(_evaluate(node.value, context), node.attr)

    if isinstance(node, ast.Subscript):
        return _evaluate(node.value, context)[_evaluate(node.slice, context)]

    if isinstance(node, ast.BoolOp):
        result = isinstance(node.op, ast.And)
        for value in node.values:
            result = _evaluate(value, context)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand, context))

    if isinstance(node, ast.BinOp):
        return _BINARY_OPERATORS[type(node.op)](
            _evaluate(node.left, context), _evaluate(node.right, context)
        )

    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, context)
        for op, comparator in zip(node.ops, node.comparators):
            right = _evaluate(comparator, context)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.IfExp):
        if _evaluate(node.test, context):
            return _evaluate(node.body, context)
        return _evaluate(node.orelse, context)

    if isinstance(node, ast.Call):
        function = FUNCTIONS[node.func.id]
        return function(*(_evaluate(arg, context) for arg in node.args))

    if isinstance(node, (ast.List, ast.Tuple)):
        return tuple(_evaluate(element, context) for element in node.elts)

    raise EvalError(f"unsupported expression {type(node).__name__}")


@dataclass(frozen=True)
class Predicate:
    source: str
    tree: Optional[ast.Expression] = field(default=None, repr=False, compare=False)

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        if self.tree is None:
            return True
        try:
            return bool(_evaluate(self.tree.body, context))
        except EvalError:
            raise
        except _EVALUATION_ERRORS as e:
            raise EvalError(f"evaluating {self.source!r} failed: {e}") from e


def compile_expr(source: Optional[str]) -> Predicate:
    if source is None or not source.strip():
        return Predicate(source="")
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except (SyntaxError, ValueError) as e:
        raise CompileError(f"invalid expression {source!r}: {e}", source=source) from e
    _check(tree, source)
    return Predicate(source=source, tree=tree)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def build_context(pr: PullRequest) -> Mapping[str, Any]:
    labels = tuple(label.name for label in pr.labels)
    author = pr.user.login if pr.user is not None else ""
    data = {
        "number": pr.number,
        "title": pr.title,
        "body": pr.body or "",
        "draft": pr.draft,
        "labels": labels,
        "author": author,
        "base": pr.base.ref,
        "head": pr.head.ref,
    }
    data["pr"] = {
        "number": pr.number,
        "title": pr.title,
        "body": pr.body or "",
        "state": pr.state,
        "draft": pr.draft,
        "labels": labels,
        "html_url": pr.html_url or "",
        "user": {"login": author},
        "base": {"ref": pr.base.ref, "sha": pr.base.sha, "label": pr.base.label},
        "head": {"ref": pr.head.ref, "sha": pr.head.sha, "label": pr.head.label},
    }
    return _freeze(data)
