"""
Label selector expressions, in the string syntax accepted by kubectl:

    tier=backend,environment in (prod, staging),!canary

Supported requirements are equality (`=`, `==`), inequality (`!=`),
set membership (`in`, `notin`), existence (`key`) and non-existence
(`!key`). Requirements separated by commas must all hold.

References:
- Label selectors:
  https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#label-selectors
"""

import enum
import re
from dataclasses import dataclass
from typing import Mapping

from .errors import SelectorConfigError

_NAME = re.compile(r"([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]")
_DNS_LABEL = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")

_SPECIAL = "=!(),<>"


class Operator(str, enum.Enum):
    """Relationship between a label key and a set of values."""

    in_ = "In"
    not_in = "NotIn"
    exists = "Exists"
    does_not_exist = "DoesNotExist"


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: Operator
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator is Operator.exists:
            return self.key in labels
        if self.operator is Operator.does_not_exist:
            return self.key not in labels
        if self.operator is Operator.in_:
            return self.key in labels and labels[self.key] in self.values
        # NotIn also holds for pods that do not carry the key at all
        return self.key not in labels or labels[self.key] not in self.values


@dataclass(frozen=True)
class LabelSelector:
    expression: str
    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(req.matches(labels) for req in self.requirements)

    @property
    def empty(self) -> bool:
        return not self.requirements


def validate_label_key(key: str) -> None:
    prefix, slash, name = key.rpartition("/")
    if slash:
        if not prefix or len(prefix) > 253:
            raise SelectorConfigError(f"invalid label key prefix in {key!r}")
        if not all(_DNS_LABEL.fullmatch(part) for part in prefix.split(".")):
            raise SelectorConfigError(
                f"label key prefix {prefix!r} must be a DNS subdomain"
            )
    if not name or len(name) > 63 or not _NAME.fullmatch(name):
        raise SelectorConfigError(f"invalid label key {key!r}")


def validate_label_value(value: str) -> None:
    if value == "":
        return
    if len(value) > 63 or not _NAME.fullmatch(value):
        raise SelectorConfigError(f"invalid label value {value!r}")


def _tokenize(expression: str) -> list[str]:
    tokens: list[str] = []
    i = 0
    while i < len(expression):
        ch = expression[i]
        if ch.isspace():
            i += 1
        elif ch in _SPECIAL:
            # two-character operators first
            pair = expression[i : i + 2]
            if pair in ("==", "!="):
                tokens.append(pair)
                i += 2
            else:
                tokens.append(ch)
                i += 1
        else:
            start = i
            while (
                i < len(expression)
                and not expression[i].isspace()
                and expression[i] not in _SPECIAL
            ):
                i += 1
            tokens.append(expression[start:i])
    return tokens


def _is_identifier(token: str | None) -> bool:
    return (
        token is not None
        and token not in ("in", "notin", "==", "!=")
        and token not in _SPECIAL
    )


class _Parser:
    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0

    def peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str | None:
        token = self.peek()
        self.pos += 1
        return token

    def fail(self, what: str) -> SelectorConfigError:
        found = self.peek()
        found = "end of expression" if found is None else repr(found)
        return SelectorConfigError(
            f"invalid label selector {self.expression!r}: expected {what}, found {found}"
        )

    def parse(self) -> tuple[Requirement, ...]:
        requirements = []
        if self.peek() is None:
            return ()
        while True:
            requirements.append(self.requirement())
            token = self.take()
            if token is None:
                return tuple(requirements)
            if token != ",":
                self.pos -= 1
                raise self.fail("',' or end of expression")

    def requirement(self) -> Requirement:
        if self.peek() == "!":
            self.take()
            key = self.key()
            return Requirement(key, Operator.does_not_exist)

        key = self.key()
        token = self.peek()
        if token is None or token == ",":
            return Requirement(key, Operator.exists)
        if token in ("=", "=="):
            self.take()
            return Requirement(key, Operator.in_, frozenset([self.single_value()]))
        if token == "!=":
            self.take()
            return Requirement(key, Operator.not_in, frozenset([self.single_value()]))
        if token in ("in", "notin"):
            self.take()
            op = Operator.in_ if token == "in" else Operator.not_in
            return Requirement(key, op, self.value_set())
        if token in ("<", ">"):
            raise SelectorConfigError(
                f"invalid label selector {self.expression!r}: "
                f"operator {token!r} is not supported"
            )
        raise self.fail("'=', '==', '!=', 'in' or 'notin'")

    def key(self) -> str:
        if not _is_identifier(self.peek()):
            raise self.fail("label key")
        key = self.take()
        validate_label_key(key)
        return key

    def single_value(self) -> str:
        token = self.peek()
        if token is None or token == ",":
            return ""
        if not _is_identifier(token):
            raise self.fail("label value")
        self.take()
        validate_label_value(token)
        return token

    def value_set(self) -> frozenset[str]:
        if self.take() != "(":
            self.pos -= 1
            raise self.fail("'('")
        if self.peek() == ")":
            raise SelectorConfigError(
                f"invalid label selector {self.expression!r}: "
                "values set for 'in'/'notin' can't be empty"
            )
        values = set()
        while True:
            token = self.peek()
            if token in (",", ")"):
                values.add("")
            elif _is_identifier(token):
                self.take()
                validate_label_value(token)
                values.add(token)
            else:
                raise self.fail("label value")
            token = self.take()
            if token == ")":
                return frozenset(values)
            if token != ",":
                self.pos -= 1
                raise self.fail("',' or ')'")


def parse_selector(expression: str) -> LabelSelector:
    """Parse a selector expression. Raises SelectorConfigError when malformed."""
    return LabelSelector(
        expression=expression, requirements=_Parser(expression).parse()
    )
