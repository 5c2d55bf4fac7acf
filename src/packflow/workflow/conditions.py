"""Stage dependency conditions.

``success``/``failure``/``completion`` conditions test the upstream stage's
outcome. ``custom`` conditions are small boolean expressions evaluated in a
sandbox over the upstream results, for example::

    success && output.score > 0.8
    !failed || results["review"].output == "approved"

JavaScript-style operators (``&&``, ``||``, ``!``, ``===``, ``!==``) and the
literals ``true``/``false``/``null`` are accepted next to their Python
spellings. Only literals, names, attribute and subscript lookups,
comparisons, boolean logic, arithmetic and a handful of builtins are allowed.
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any

from packflow.errors import ConditionExpressionError

from .models import ConditionType, DependencyCondition

logger = logging.getLogger(__name__)

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_ALLOWED_FUNCTIONS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
}

_LITERAL_NAMES = {"true": True, "false": False, "null": None, "undefined": None}

_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Compare,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.BinOp,
    ast.IfExp,
    ast.Call,
    ast.List,
    ast.Tuple,
    *_BINARY_OPS,
    *_COMPARISONS,
    *_UNARY_OPS,
)


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StageOutcome:
    """Terminal state of one stage, as seen by downstream conditions.

    Attributes:
        stage_id: Upstream stage id
        status: Aggregate status; a stage whose tasks were all skipped is skipped
        results: Task id -> task result mapping (``success``, ``output``, ``error`` ...)
    """

    stage_id: str
    status: StageStatus
    results: dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_results(cls, stage_id: str, results: dict[str, dict]) -> StageOutcome:
        if results and all(r.get("skipped") for r in results.values()):
            status = StageStatus.SKIPPED
        elif any(not r.get("success") for r in results.values()):
            status = StageStatus.FAILED
        else:
            status = StageStatus.SUCCESS
        return cls(stage_id=stage_id, status=status, results=results)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCESS

    def expression_context(self) -> dict[str, Any]:
        """Names visible to a custom expression."""
        outputs = {task_id: r.get("output") for task_id, r in self.results.items()}
        if len(outputs) == 1:
            output: Any = next(iter(outputs.values()))
        else:
            output = outputs
        errors = [r.get("error") for r in self.results.values() if r.get("error")]
        return {
            "success": self.succeeded,
            "failed": self.status == StageStatus.FAILED,
            "skipped": self.status == StageStatus.SKIPPED,
            "status": self.status.value,
            "output": output,
            "results": self.results,
            "error": errors[0] if errors else None,
            "stage": self.stage_id,
        }


# Single- or double-quoted literal, backslash escapes included
_STRING_LITERAL = re.compile(r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')""")


def _translate_operators(code: str) -> str:
    code = code.replace("===", "==").replace("!==", "!=")
    code = code.replace("&&", " and ").replace("||", " or ")
    return re.sub(r"!(?!=)", " not ", code)


def _translate(expression: str) -> str:
    """Rewrite JavaScript-style operators to Python, leaving string literals alone."""
    parts = _STRING_LITERAL.split(expression.strip())
    # re.split with one group alternates code, literal, code, ...
    return "".join(
        part if index % 2 else _translate_operators(part) for index, part in enumerate(parts)
    )


@lru_cache(maxsize=256)
def parse_condition_expression(expression: str) -> ast.Expression:
    """Parse and vet a custom condition expression.

    Raises:
        ConditionExpressionError: On syntax errors or disallowed constructs
    """
    if not expression or not expression.strip():
        raise ConditionExpressionError("Condition expression is empty", expression)
    try:
        tree = ast.parse(_translate(expression), mode="eval")
    except SyntaxError as exc:
        raise ConditionExpressionError(
            f"Syntax error in condition expression: {exc.msg}", expression
        ) from exc

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ConditionExpressionError(
                f"Construct '{type(node).__name__}' is not allowed in conditions", expression
            )
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ConditionExpressionError(
                f"Private attribute '{node.attr}' is not allowed", expression
            )
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _ALLOWED_FUNCTIONS:
                raise ConditionExpressionError("Only simple builtin calls are allowed", expression)
            if node.keywords:
                raise ConditionExpressionError("Keyword arguments are not allowed", expression)
    return tree


def _lookup(obj: Any, key: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    if isinstance(obj, (list, tuple, str)) and isinstance(key, int):
        return obj[key] if -len(obj) <= key < len(obj) else None
    return None


def _eval_node(node: ast.AST, context: dict[str, Any]) -> Any:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, context)
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id in context:
            return context[node.id]
        if node.id in _LITERAL_NAMES:
            return _LITERAL_NAMES[node.id]
        return None
    if isinstance(node, ast.Attribute):
        return _lookup(_eval_node(node.value, context), node.attr)
    if isinstance(node, ast.Subscript):
        return _lookup(_eval_node(node.value, context), _eval_node(node.slice, context))
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval_node(value, context)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval_node(value, context)
            if result:
                return result
        return result
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, context))
    if isinstance(node, ast.BinOp):
        return _BINARY_OPS[type(node.op)](
            _eval_node(node.left, context), _eval_node(node.right, context)
        )
    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, context)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = _eval_node(comparator, context)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.IfExp):
        if _eval_node(node.test, context):
            return _eval_node(node.body, context)
        return _eval_node(node.orelse, context)
    if isinstance(node, ast.Call):
        func = _ALLOWED_FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        return func(*[_eval_node(arg, context) for arg in node.args])
    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval_node(elt, context) for elt in node.elts]
    raise ConditionExpressionError(f"Unsupported construct '{type(node).__name__}'")


def evaluate_expression(expression: str, context: dict[str, Any]) -> bool:
    """Evaluate a custom expression to a boolean.

    Raises:
        ConditionExpressionError: If parsing or evaluation fails
    """
    tree = parse_condition_expression(expression)
    try:
        return bool(_eval_node(tree, context))
    except ConditionExpressionError:
        raise
    except Exception as exc:
        raise ConditionExpressionError(
            f"Condition evaluation failed: {exc}", expression
        ) from exc


def evaluate_condition(condition: DependencyCondition, upstream: StageOutcome) -> bool:
    """Decide whether a dependency edge fires for the given upstream outcome.

    Custom expressions that fail to evaluate are treated as not met.
    """
    if condition.type == ConditionType.SUCCESS:
        return upstream.succeeded
    if condition.type == ConditionType.FAILURE:
        return upstream.status == StageStatus.FAILED
    if condition.type == ConditionType.COMPLETION:
        return True

    try:
        return evaluate_expression(condition.custom_expression or "", upstream.expression_context())
    except ConditionExpressionError as exc:
        logger.warning(
            "Condition on stage %s not met: %s", upstream.stage_id, exc.message
        )
        return False
