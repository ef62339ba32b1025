""" Sandboxed guard expressions for edges, conditions and loops in workflow files. """
import ast
import functools
import logging
import operator
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

_COMPARE_OPERATORS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_LITERALS = {"true": True, "false": False, "none": None, "null": None}

_ALLOWED_NODES = (
    ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.Compare, ast.UnaryOp, ast.Not, ast.USub,
    ast.Name, ast.Load, ast.Constant, ast.Subscript, ast.List, ast.Tuple,
    *_COMPARE_OPERATORS,
)

Predicate = Callable[[Mapping[str, Any]], bool]


@functools.lru_cache(maxsize=512)
def compile_condition(expression: str) -> Predicate:
    """
    Compile a guard expression into a predicate over a name -> value mapping.

    Supports comparisons, and/or/not (also && and ||), literals, list/tuple
    literals for `in`, and subscripts such as results['node']. Anything else
    (calls, attribute access, arithmetic) is rejected with ValueError.
    Unknown names make the predicate evaluate to False.
    """
    text = expression.strip()
    if text.lower() in ("true", ""):  # Default to true
        return lambda namespace: True

    text = text.replace("&&", " and ").replace("||", " or ")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid guard expression {expression!r}: {e.msg}") from None

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ValueError(f"Unsupported syntax in guard expression {expression!r}: {type(node).__name__}")

    def predicate(namespace: Mapping[str, Any]) -> bool:
        try:
            return bool(_eval(tree.body, namespace))
        except Exception as e:
            logger.debug(f"Guard {expression!r} evaluated to False: {e!r}")
            return False

    predicate.expression = expression
    return predicate


def _eval(node: ast.AST, namespace: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            out = True
            for value in node.values:
                out = _eval(value, namespace)
                if not out:
                    return out
            return out
        out = False
        for value in node.values:
            out = _eval(value, namespace)
            if out:
                return out
        return out

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, namespace)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand

    if isinstance(node, ast.Compare):
        left = _eval(node.left, namespace)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval(comparator, namespace)
            if not _COMPARE_OPERATORS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.Subscript):
        return _eval(node.value, namespace)[_eval(node.slice, namespace)]

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval(element, namespace) for element in node.elts]

    if isinstance(node, ast.Name):
        if node.id in namespace:
            return namespace[node.id]
        if node.id.lower() in _LITERALS:
            return _LITERALS[node.id.lower()]
        raise KeyError(node.id)

    if isinstance(node, ast.Constant):
        return node.value

    raise ValueError(f"Unsupported expression: {type(node).__name__}")
