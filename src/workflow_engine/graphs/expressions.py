"""
Sandboxed expression evaluation for condition and transform nodes.

Expressions are parsed with ``ast`` and walked by a whitelist visitor.
Only literals, names from the supplied variables, a few pure builtins,
arithmetic/comparison/boolean operators, subscripts, attribute-style
key access and single-generator comprehensions are accepted. Nothing
is ever compiled or executed by the interpreter itself.
"""

import ast
import json
import operator
import re
from typing import Dict, Any

from ..errors import ExpressionError


SAFE_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Not: operator.not_,
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

SAFE_FUNCTIONS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "round": round,
    "sorted": sorted,
    "list": list,
    "any": any,
    "all": all,
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "contains": lambda container, item: item in container,
}

# JSON-style spellings users paste from the editor
SAFE_CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "True": True,
    "False": False,
    "None": None,
}

MAX_EXPRESSION_LENGTH = 2000
MAX_POWER_EXPONENT = 100
MAX_SEQUENCE_LENGTH = 100_000


def _check_repeat(left, right):
    """Reject sequence repetition that would build an oversized value."""
    for seq, count in ((left, right), (right, left)):
        if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
            if len(seq) * max(count, 0) > MAX_SEQUENCE_LENGTH:
                raise ExpressionError(f"Repeated sequence longer than {MAX_SEQUENCE_LENGTH} items")


class SafeEvaluator(ast.NodeVisitor):
    """
    AST-based evaluator restricted to side-effect-free expressions.

    Attribute access on mappings is treated as key lookup, so
    ``input.user.name`` and ``input["user"]["name"]`` are equivalent.
    Names starting with an underscore are never resolved.
    """

    def __init__(self, variables: Dict[str, Any]):
        self.variables = dict(variables)

    def visit_Expression(self, node):
        return self.visit(node.body)

    def visit_Constant(self, node):
        return node.value

    def visit_Name(self, node):
        name = node.id
        if name.startswith("_"):
            raise ExpressionError(f"Name not allowed: {name}")
        if name in self.variables:
            return self.variables[name]
        if name in SAFE_CONSTANTS:
            return SAFE_CONSTANTS[name]
        if name in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[name]
        raise ExpressionError(f"Undefined variable: {name}")

    def visit_List(self, node):
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node):
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_Dict(self, node):
        if any(key is None for key in node.keys):
            raise ExpressionError("Dict unpacking is not allowed")
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values)}

    def visit_BinOp(self, node):
        left = self.visit(node.left)
        right = self.visit(node.right)
        op_type = type(node.op)

        if op_type not in SAFE_OPERATORS:
            raise ExpressionError(f"Operator not allowed: {op_type.__name__}")
        if op_type is ast.Pow and isinstance(right, (int, float)) and abs(right) > MAX_POWER_EXPONENT:
            raise ExpressionError("Exponent too large")
        if op_type is ast.Mult:
            _check_repeat(left, right)

        return SAFE_OPERATORS[op_type](left, right)

    def visit_UnaryOp(self, node):
        operand = self.visit(node.operand)
        op_type = type(node.op)

        if op_type not in SAFE_OPERATORS:
            raise ExpressionError(f"Operator not allowed: {op_type.__name__}")

        return SAFE_OPERATORS[op_type](operand)

    def visit_Compare(self, node):
        left = self.visit(node.left)

        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            op_type = type(op)

            if op_type not in SAFE_OPERATORS:
                raise ExpressionError(f"Operator not allowed: {op_type.__name__}")

            if not SAFE_OPERATORS[op_type](left, right):
                return False

            left = right

        return True

    def visit_BoolOp(self, node):
        # Short-circuits like Python and returns the deciding operand
        if isinstance(node.op, ast.And):
            value = True
            for item in node.values:
                value = self.visit(item)
                if not value:
                    return value
            return value
        if isinstance(node.op, ast.Or):
            value = False
            for item in node.values:
                value = self.visit(item)
                if value:
                    return value
            return value
        raise ExpressionError(f"Boolean operator not allowed: {type(node.op).__name__}")

    def visit_IfExp(self, node):
        if self.visit(node.test):
            return self.visit(node.body)
        return self.visit(node.orelse)

    def visit_Subscript(self, node):
        value = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return value[key]
        except (KeyError, IndexError, TypeError) as e:
            raise ExpressionError(f"Lookup failed: {e!r}")

    def visit_Slice(self, node):
        lower = self.visit(node.lower) if node.lower else None
        upper = self.visit(node.upper) if node.upper else None
        step = self.visit(node.step) if node.step else None
        return slice(lower, upper, step)

    def visit_Attribute(self, node):
        if node.attr.startswith("_"):
            raise ExpressionError(f"Attribute not allowed: {node.attr}")
        value = self.visit(node.value)
        if isinstance(value, dict):
            if node.attr not in value:
                raise ExpressionError(f"Key not found: {node.attr}")
            return value[node.attr]
        raise ExpressionError(f"Attribute access not allowed on {type(value).__name__}")

    def visit_Call(self, node):
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            raise ExpressionError(f"Function not allowed: {ast.unparse(node.func)}")

        func = SAFE_FUNCTIONS[node.func.id]
        args = [self.visit(arg) for arg in node.args]
        kwargs = {kw.arg: self.visit(kw.value) for kw in node.keywords if kw.arg}

        return func(*args, **kwargs)

    def visit_ListComp(self, node):
        return list(self._comprehension(node, lambda scope: scope.visit(node.elt)))

    def visit_GeneratorExp(self, node):
        return list(self._comprehension(node, lambda scope: scope.visit(node.elt)))

    def visit_DictComp(self, node):
        pairs = self._comprehension(
            node, lambda scope: (scope.visit(node.key), scope.visit(node.value))
        )
        return dict(pairs)

    def _comprehension(self, node, produce):
        if len(node.generators) != 1:
            raise ExpressionError("Only a single 'for' clause is allowed")
        generator = node.generators[0]
        if generator.is_async:
            raise ExpressionError("Async comprehensions are not allowed")
        if not isinstance(generator.target, ast.Name):
            raise ExpressionError("Comprehension target must be a plain name")

        name = generator.target.id
        for item in self.visit(generator.iter):
            scope = SafeEvaluator({**self.variables, name: item})
            if all(scope.visit(cond) for cond in generator.ifs):
                yield produce(scope)

    def generic_visit(self, node):
        raise ExpressionError(f"Expression element not allowed: {type(node).__name__}")


def evaluate_expression(expression: str, variables: Dict[str, Any]) -> Any:
    """
    Safely evaluate an expression string.

    Args:
        expression: Python-syntax expression (e.g. ``input.score > 0.5``)
        variables: Names visible to the expression

    Returns:
        The expression value

    Raises:
        ExpressionError: If the expression is invalid, uses a disallowed
            construct, or fails while evaluating
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionError("Expression is empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("Expression is too long")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression syntax: {e.msg}")

    try:
        return SafeEvaluator(variables).visit(tree)
    except ExpressionError:
        raise
    except Exception as e:
        raise ExpressionError(f"Expression evaluation failed: {e}")


def evaluate_condition(expression: str, variables: Dict[str, Any]) -> bool:
    """Evaluate an expression and coerce the value to a boolean."""
    return bool(evaluate_expression(expression, variables))


PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}")

_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """Follow a dot path into nested dicts/lists; returns a sentinel when unresolved."""
    value = data
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return _MISSING
    return value


def template_context(data: Any) -> Dict[str, Any]:
    """
    Names visible to ``{{...}}`` placeholders.

    The whole value is reachable as ``input``; when it is a mapping its
    keys are also reachable directly, so ``{{topic}}`` and
    ``{{input.topic}}`` resolve to the same field.
    """
    if isinstance(data, dict):
        return {**data, "input": data}
    return {"input": data}


def render_template(template: str, data: Any) -> str:
    """
    Substitute ``{{path.to.field}}`` placeholders.

    Strings are inserted as-is, other values as JSON. Unresolved
    placeholders are left in place verbatim.
    """
    context = template_context(data)

    def replace(match):
        value = resolve_path(context, match.group(1).strip())
        if value is _MISSING:
            return match.group(0)
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    return PLACEHOLDER_PATTERN.sub(replace, template)
