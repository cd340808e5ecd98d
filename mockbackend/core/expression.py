"""
Restricted evaluator for dynamic access rule expressions.

Supports a small JavaScript-flavoured grammar, enough for rules such as
`isOwner(user, get('teams', data.teamId)) || isOwner(user, data)` or
`newData.status = 'pending'`. There is no general-purpose interpreter behind it:
only scope lookups, property access, comparisons, boolean connectives,
calls to the helper functions placed in scope, and assignment into newData.
"""

import re
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from .errors import RuleSyntaxError

_TOKEN_PATTERN = re.compile(r'''
    \s*(?:
        (?P<number>\d+(?:\.\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!=.\[\](),])
    )''', re.VERBOSE)

_CONSTANTS = {'true': True, 'false': False, 'null': None, 'undefined': None}
_COMPARISONS = ('===', '!==', '==', '!=', '<=', '>=', '<', '>')

# Writable root for assignment expressions
ASSIGNABLE_ROOT = 'newData'

Token = Tuple[str, Any]


def tokenize(source: str) -> List[Token]:
    """Split an expression into (kind, value) tokens, ending with ('eof', None)."""
    tokens = []
    pos = 0
    source = source.rstrip()
    while pos < len(source):
        match = _TOKEN_PATTERN.match(source, pos)
        if not match or match.end() == pos:
            raise RuleSyntaxError(f"Unexpected character at position {pos} in rule: {source}")
        pos = match.end()
        kind = match.lastgroup
        text = match.group(kind)
        if kind == 'number':
            tokens.append(('number', float(text) if '.' in text else int(text)))
        elif kind == 'string':
            tokens.append(('string', re.sub(r'\\(.)', lambda m: m.group(1), text[1:-1])))
        else:
            tokens.append((kind, text))
    tokens.append(('eof', None))
    return tokens


def truthy(value: Any) -> bool:
    """JavaScript truthiness: empty containers are truthy, 0/""/null are not."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    if isinstance(value, str):
        return value != ''
    return True


class _Parser:
    """Recursive-descent parser producing a tuple-based AST."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def accept(self, *ops: str) -> str:
        kind, value = self.peek()
        if kind == 'op' and value in ops:
            self.pos += 1
            return value
        return None

    def expect(self, op: str):
        if not self.accept(op):
            raise self.error(f"expected '{op}'")

    def error(self, message: str) -> RuleSyntaxError:
        kind, value = self.peek()
        found = 'end of rule' if kind == 'eof' else repr(value)
        return RuleSyntaxError(f"Invalid rule '{self.source}': {message}, found {found}")

    def parse(self):
        node = self.assignment()
        if self.peek()[0] != 'eof':
            raise self.error("unexpected trailing input")
        return node

    def assignment(self):
        node = self.logic_or()
        if self.accept('='):
            path = _assign_path(node)
            if path is None:
                raise RuleSyntaxError(f"Invalid rule '{self.source}': only {ASSIGNABLE_ROOT}.<field> can be assigned")
            return ('assign', path, self.assignment())
        return node

    def logic_or(self):
        node = self.logic_and()
        while self.accept('||'):
            node = ('or', node, self.logic_and())
        return node

    def logic_and(self):
        node = self.comparison()
        while self.accept('&&'):
            node = ('and', node, self.comparison())
        return node

    def comparison(self):
        node = self.unary()
        op = self.accept(*_COMPARISONS)
        if op:
            node = ('cmp', op, node, self.unary())
        return node

    def unary(self):
        if self.accept('!'):
            return ('not', self.unary())
        return self.postfix()

    def postfix(self):
        node = self.primary()
        while True:
            if self.accept('.'):
                kind, value = self.advance()
                if kind != 'name':
                    self.pos -= 1
                    raise self.error("expected property name")
                node = ('attr', node, value)
            elif self.accept('['):
                node = ('index', node, self.assignment())
                self.expect(']')
            elif self.accept('('):
                args = []
                if not self.accept(')'):
                    args.append(self.assignment())
                    while self.accept(','):
                        args.append(self.assignment())
                    self.expect(')')
                node = ('call', node, args)
            else:
                return node

    def primary(self):
        kind, value = self.peek()
        if kind in ('number', 'string'):
            self.pos += 1
            return ('lit', value)
        if kind == 'name':
            self.pos += 1
            if value in _CONSTANTS:
                return ('lit', _CONSTANTS[value])
            return ('name', value)
        if self.accept('('):
            node = self.assignment()
            self.expect(')')
            return node
        raise self.error("expected a value")


def _assign_path(node) -> List[str]:
    path = []
    while node[0] == 'attr':
        path.append(node[2])
        node = node[1]
    if node != ('name', ASSIGNABLE_ROOT) or not path:
        return None
    return [ASSIGNABLE_ROOT] + list(reversed(path))


def _member(obj: Any, key: Any) -> Any:
    if isinstance(obj, dict):
        return obj.get(str(key)) if not isinstance(key, str) else obj.get(key)
    if isinstance(obj, (list, str)):
        if key == 'length':
            return len(obj)
        if isinstance(key, int) and not isinstance(key, bool) and 0 <= key < len(obj):
            return obj[key]
    return None


def _equal(a: Any, b: Any, strict: bool) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False if strict else a == b
    if a == b:
        return True
    if strict:
        return False
    for number, text in ((a, b), (b, a)):
        if isinstance(number, (int, float)) and isinstance(text, str):
            try:
                return float(text) == number
            except ValueError:
                return False
    return False


def _compare(op: str, a: Any, b: Any) -> bool:
    if op in ('==', '==='):
        return _equal(a, b, op == '===')
    if op in ('!=', '!=='):
        return not _equal(a, b, op == '!==')
    if a is None or b is None:
        return False
    try:
        if op == '<':
            return a < b
        if op == '<=':
            return a <= b
        if op == '>':
            return a > b
        return a >= b
    except TypeError:
        return False


class Expression:
    """A compiled rule expression, evaluated against a scope of names."""

    def __init__(self, source: str):
        self.source = source
        self.tree = _Parser(source).parse()

    def evaluate(self, scope: Dict[str, Any]) -> Any:
        return self._eval(self.tree, scope)

    def _eval(self, node, scope: Dict[str, Any]) -> Any:
        kind = node[0]
        if kind == 'lit':
            return node[1]
        if kind == 'name':
            if node[1] not in scope:
                raise RuleSyntaxError(f"Invalid rule '{self.source}': unknown name '{node[1]}'")
            return scope[node[1]]
        if kind == 'attr':
            return _member(self._eval(node[1], scope), node[2])
        if kind == 'index':
            return _member(self._eval(node[1], scope), self._eval(node[2], scope))
        if kind == 'call':
            func = self._eval(node[1], scope)
            if not callable(func):
                raise RuleSyntaxError(f"Invalid rule '{self.source}': only helper functions can be called")
            return func(*[self._eval(arg, scope) for arg in node[2]])
        if kind == 'not':
            return not truthy(self._eval(node[1], scope))
        if kind == 'and':
            left = self._eval(node[1], scope)
            return self._eval(node[2], scope) if truthy(left) else left
        if kind == 'or':
            left = self._eval(node[1], scope)
            return left if truthy(left) else self._eval(node[2], scope)
        if kind == 'cmp':
            return _compare(node[1], self._eval(node[2], scope), self._eval(node[3], scope))
        if kind == 'assign':
            return self._assign(node[1], self._eval(node[2], scope), scope)
        raise RuleSyntaxError(f"Invalid rule '{self.source}'")

    @staticmethod
    def _assign(path: List[str], value: Any, scope: Dict[str, Any]) -> Any:
        target = scope.get(path[0])
        for key in path[1:-1]:
            if not isinstance(target, dict):
                return value
            target = target.setdefault(key, {})
        # Reads carry no payload; the assignment only yields its value
        if isinstance(target, dict):
            target[path[-1]] = value
        return value


@lru_cache(maxsize=256)
def compile_expression(source: str) -> Expression:
    """Parse a rule expression once; the rule set is immutable so results are cached."""
    return Expression(source)


def evaluate(source: str, scope: Dict[str, Any]) -> bool:
    """Evaluate a rule expression and coerce the result to a verdict."""
    return truthy(compile_expression(source).evaluate(scope))
