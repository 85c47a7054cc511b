"""Expression evaluation for step conditions and payload templates."""

import re
import json
import operator
from functools import lru_cache
from typing import Any, Callable, Mapping, NamedTuple
from dataclasses import dataclass

from core.errors import EvaluationError


# {{{ expr }}} is accepted as an unescaped spelling of {{ expr }}
TEMPLATE_PATTERN = re.compile(r"\{\{\{\s*(.+?)\s*\}\}\}|\{\{\s*(.+?)\s*\}\}", re.DOTALL)

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>\d+\.\d*|\.\d+|\d+)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%().\[\],])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

KEYWORD_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "True": True,
    "False": False,
    "None": None,
}

COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
    "!==": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda a, b: a in b,
    "not in": lambda a, b: a not in b,
}

ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}

BUILTIN_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "strip": lambda s: str(s).strip(),
    "contains": lambda a, b: b in a,
    "startswith": lambda s, prefix: str(s).startswith(str(prefix)),
    "endswith": lambda s, suffix: str(s).endswith(str(suffix)),
}


class Token(NamedTuple):
    kind: str    # number, string, name, op, end
    value: str
    pos: int


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens."""
    tokens = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_PATTERN.match(expression, pos)
        if not match:
            raise EvaluationError(
                f"Unexpected character {expression[pos]!r} at position {pos}",
                expression=expression,
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", pos))
    return tokens


@dataclass(frozen=True)
class Node:
    """Parsed expression node."""
    kind: str
    value: Any = None
    children: tuple = ()


class Parser:
    """
    Recursive-descent parser for the step expression language.

    Grammar, lowest precedence first:
        or      := and (("or" | "||") and)*
        and     := not (("and" | "&&") not)*
        not     := ("not" | "!") not | compare
        compare := sum (cmp_op sum)*
        sum     := product (("+" | "-") product)*
        product := unary (("*" | "/" | "%") unary)*
        unary   := "-" unary | postfix
        postfix := primary ("." NAME | "[" or "]" | "(" args ")")*
        primary := NUMBER | STRING | NAME | "(" or ")" | "[" args "]"
    """

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    def parse(self) -> Node:
        if self._peek().kind == "end":
            raise EvaluationError("Empty expression", expression=self.expression)
        node = self._parse_or()
        token = self._peek()
        if token.kind != "end":
            self._fail(f"Unexpected token {token.value!r}", token)
        return node

    # ==================== Token helpers ====================

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *values: str) -> bool:
        token = self._peek()
        if token.kind in ("op", "name") and token.value in values:
            self.index += 1
            return True
        return False

    def _expect(self, value: str) -> Token:
        token = self._peek()
        if token.value != value or token.kind not in ("op", "name"):
            self._fail(f"Expected {value!r}", token)
        return self._advance()

    def _fail(self, message: str, token: Token) -> None:
        where = "end of expression" if token.kind == "end" else f"position {token.pos}"
        raise EvaluationError(f"{message} at {where}", expression=self.expression)

    # ==================== Grammar ====================

    def _parse_or(self) -> Node:
        node = self._parse_and()
        while self._accept("or", "||"):
            node = Node("or", children=(node, self._parse_and()))
        return node

    def _parse_and(self) -> Node:
        node = self._parse_not()
        while self._accept("and", "&&"):
            node = Node("and", children=(node, self._parse_not()))
        return node

    def _parse_not(self) -> Node:
        token = self._peek()
        if token.kind == "name" and token.value == "not":
            self._advance()
            return Node("not", children=(self._parse_not(),))
        if token.kind == "op" and token.value == "!":
            self._advance()
            return Node("not", children=(self._parse_not(),))
        return self._parse_compare()

    def _parse_compare(self) -> Node:
        first = self._parse_sum()
        pairs = []
        while True:
            op = self._comparison_operator()
            if op is None:
                break
            pairs.append((op, self._parse_sum()))
        if not pairs:
            return first
        return Node("compare", value=tuple(op for op, _ in pairs),
                    children=(first,) + tuple(node for _, node in pairs))

    def _comparison_operator(self):
        token = self._peek()
        if token.kind == "op" and token.value in COMPARISONS:
            self._advance()
            return token.value
        if token.kind == "name" and token.value == "in":
            self._advance()
            return "in"
        if token.kind == "name" and token.value == "not":
            following = self._peek(1)
            if following.kind == "name" and following.value == "in":
                self.index += 2
                return "not in"
        return None

    def _parse_sum(self) -> Node:
        node = self._parse_product()
        while self._peek().kind == "op" and self._peek().value in ("+", "-"):
            op = self._advance().value
            node = Node("binary", value=op, children=(node, self._parse_product()))
        return node

    def _parse_product(self) -> Node:
        node = self._parse_unary()
        while self._peek().kind == "op" and self._peek().value in ("*", "/", "%"):
            op = self._advance().value
            node = Node("binary", value=op, children=(node, self._parse_unary()))
        return node

    def _parse_unary(self) -> Node:
        if self._peek().kind == "op" and self._peek().value == "-":
            self._advance()
            return Node("negate", children=(self._parse_unary(),))
        return self._parse_postfix()

    def _parse_postfix(self) -> Node:
        node = self._parse_primary()
        while True:
            if self._accept("."):
                token = self._peek()
                if token.kind != "name":
                    self._fail("Expected attribute name after '.'", token)
                node = Node("attr", value=self._advance().value, children=(node,))
            elif self._accept("["):
                key = self._parse_or()
                self._expect("]")
                node = Node("index", children=(node, key))
            elif self._peek().kind == "op" and self._peek().value == "(":
                if node.kind != "name":
                    self._fail("Only named functions can be called", self._peek())
                self._advance()
                args = self._parse_args(")")
                node = Node("call", value=node.value, children=args)
            else:
                return node

    def _parse_args(self, closing: str) -> tuple:
        args = []
        if self._accept(closing):
            return ()
        while True:
            args.append(self._parse_or())
            if self._accept(closing):
                return tuple(args)
            self._expect(",")

    def _parse_primary(self) -> Node:
        token = self._peek()

        if token.kind == "number":
            self._advance()
            text = token.value
            return Node("literal", value=float(text) if "." in text else int(text))

        if token.kind == "string":
            self._advance()
            return Node("literal", value=_unquote(token.value))

        if token.kind == "name":
            self._advance()
            if token.value in KEYWORD_LITERALS:
                return Node("literal", value=KEYWORD_LITERALS[token.value])
            if token.value in ("and", "or", "not", "in"):
                self._fail(f"Unexpected keyword {token.value!r}", token)
            return Node("name", value=token.value)

        if self._accept("("):
            node = self._parse_or()
            self._expect(")")
            return node

        if self._accept("["):
            return Node("list", children=self._parse_args("]"))

        self._fail(
            "Unexpected end of expression" if token.kind == "end"
            else f"Unexpected token {token.value!r}",
            token,
        )


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body, flags=re.DOTALL)


@lru_cache(maxsize=256)
def parse_expression(expression: str) -> Node:
    """Parse an expression string (cached)."""
    return Parser(expression).parse()


class ExpressionEvaluator:
    """
    Evaluates step expressions against the variable store.

    Supports:
    - Literals (numbers, quoted strings, true/false/null)
    - Variable lookup with dotted paths and subscripts (user.name, items[0])
    - Comparison operators (==, !=, <, <=, >, >=, in, not in)
    - Logical operators (and/&&, or/||, not/!)
    - Arithmetic (+, -, *, /, %)
    - A fixed set of functions (len, lower, contains, ...)

    Expressions never reach Python's eval; anything outside this grammar
    raises EvaluationError.
    """

    def __init__(self):
        self._functions: dict[str, Callable[..., Any]] = dict(BUILTIN_FUNCTIONS)

    def register_function(self, name: str, func: Callable[..., Any]) -> None:
        """Register an additional callable for expressions."""
        self._functions[name] = func

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> Any:
        """Evaluate an expression and return its value."""
        if not isinstance(expression, str):
            raise EvaluationError(f"Expression must be a string, got {type(expression).__name__}")
        try:
            node = parse_expression(expression.strip())
            return self._eval(node, variables, expression)
        except EvaluationError:
            raise
        except Exception as e:
            # RecursionError from deep nesting, failing getters on plugin values
            raise EvaluationError(
                f"Error evaluating expression: {type(e).__name__}: {e}",
                expression=expression,
            ) from e

    def evaluate_condition(self, expression: str, variables: Mapping[str, Any]) -> bool:
        """Evaluate a `when` condition, coerced by truthiness."""
        return bool(self.evaluate(expression, variables))

    def interpolate(self, value: Any, variables: Mapping[str, Any]) -> Any:
        """
        Resolve {{ expr }} templates in a payload.

        Returns a new structure; the input is never modified. A string that
        is exactly one template yields the raw evaluated value, a string that
        mixes text and templates yields the rendered string.
        """
        if isinstance(value, str):
            return self._interpolate_string(value, variables)
        elif isinstance(value, Mapping):
            return {k: self.interpolate(v, variables) for k, v in value.items()}
        elif isinstance(value, (list, tuple)):
            return [self.interpolate(v, variables) for v in value]
        return value

    def _interpolate_string(self, value: str, variables: Mapping[str, Any]) -> Any:
        whole = TEMPLATE_PATTERN.fullmatch(value.strip())
        if whole and "{{" not in _template_expression(whole):
            return self.evaluate(_template_expression(whole), variables)

        if not TEMPLATE_PATTERN.search(value):
            return value

        return TEMPLATE_PATTERN.sub(lambda m: self._render_match(m, variables), value)

    def _render_match(self, match: re.Match, variables: Mapping[str, Any]) -> str:
        expression = _template_expression(match)
        value = self.evaluate(expression, variables)
        try:
            return render(value)
        except Exception as e:
            raise EvaluationError(
                f"Cannot render value of type {type(value).__name__}: {e}",
                expression=expression,
            ) from e

    # ==================== Tree evaluation ====================

    def _eval(self, node: Node, variables: Mapping[str, Any], expression: str) -> Any:
        kind = node.kind

        if kind == "literal":
            return node.value

        if kind == "name":
            if node.value not in variables:
                raise EvaluationError(f"Variable '{node.value}' is not set", expression=expression)
            return variables[node.value]

        if kind == "list":
            return [self._eval(child, variables, expression) for child in node.children]

        if kind == "attr":
            target = self._eval(node.children[0], variables, expression)
            return self._get_attribute(target, node.value, expression)

        if kind == "index":
            target = self._eval(node.children[0], variables, expression)
            key = self._eval(node.children[1], variables, expression)
            return self._get_item(target, key, expression)

        if kind == "and":
            left = self._eval(node.children[0], variables, expression)
            if not left:
                return left
            return self._eval(node.children[1], variables, expression)

        if kind == "or":
            left = self._eval(node.children[0], variables, expression)
            if left:
                return left
            return self._eval(node.children[1], variables, expression)

        if kind == "not":
            return not self._eval(node.children[0], variables, expression)

        try:
            if kind == "negate":
                return -self._eval(node.children[0], variables, expression)

            if kind == "binary":
                left = self._eval(node.children[0], variables, expression)
                right = self._eval(node.children[1], variables, expression)
                return ARITHMETIC[node.value](left, right)

            if kind == "compare":
                left = self._eval(node.children[0], variables, expression)
                for op, child in zip(node.value, node.children[1:]):
                    right = self._eval(child, variables, expression)
                    if not COMPARISONS[op](left, right):
                        return False
                    left = right
                return True

            if kind == "call":
                func = self._functions.get(node.value)
                if func is None:
                    raise EvaluationError(f"Unknown function: {node.value}", expression=expression)
                args = [self._eval(child, variables, expression) for child in node.children]
                return func(*args)

        except EvaluationError:
            raise
        except (TypeError, ValueError, ZeroDivisionError, OverflowError) as e:
            raise EvaluationError(f"Error evaluating expression: {e}", expression=expression)

        raise EvaluationError(f"Unsupported expression node: {kind}", expression=expression)

    def _get_attribute(self, target: Any, name: str, expression: str) -> Any:
        if name.startswith("_"):
            raise EvaluationError(f"Access to private attribute '{name}' is not allowed", expression=expression)

        if isinstance(target, Mapping):
            if name in target:
                return target[name]
        elif name == "length" and isinstance(target, (str, list, tuple)):
            return len(target)
        elif target is not None and not callable(getattr(target, name, None)) and hasattr(target, name):
            return getattr(target, name)

        raise EvaluationError(
            f"'{type(target).__name__}' value has no field '{name}'",
            expression=expression,
        )

    def _get_item(self, target: Any, key: Any, expression: str) -> Any:
        try:
            return target[key]
        except (KeyError, IndexError, TypeError) as e:
            raise EvaluationError(f"Cannot index value with {key!r}: {e}", expression=expression)


def _template_expression(match: re.Match) -> str:
    return match.group(1) if match.group(1) is not None else match.group(2)


def render(value: Any) -> str:
    """Render an evaluated value for embedding in a larger string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)
