"""
Encoding of default resource amounts as Kubernetes quantities.

Defaults are configured as plain integers: millicores for CPU, bytes for
memory. They are re-encoded in the canonical form the API server itself
would produce, so that a patched Pod reads the same as one written by hand:

    cpu_quantity("100")           -> "100m"
    cpu_quantity("2000")          -> "2"
    memory_quantity("134217728")  -> "128Mi"
    memory_quantity("1000")       -> "1k"

References:
- Quantity canonical form:
  https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/quantity/
"""

import re

from kubernetes.utils import parse_quantity

from .errors import QuantityParseError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER = re.compile(r"[+-]?[0-9]+")

_DECIMAL_SUFFIXES = {
    -9: "n",
    -6: "u",
    -3: "m",
    0: "",
    3: "k",
    6: "M",
    9: "G",
    12: "T",
    15: "P",
    18: "E",
}
_BINARY_SUFFIXES = ["", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei"]


def parse_int64(raw: str) -> int:
    """Parse a signed base-10 integer that must fit in 64 bits."""
    if not isinstance(raw, str) or not _INTEGER.fullmatch(raw):
        raise QuantityParseError(f"not an integer: {raw!r}")
    value = int(raw)
    if value < INT64_MIN or value > INT64_MAX:
        raise QuantityParseError(f"integer out of range: {raw!r}")
    return value


def format_decimal_si(mantissa: int, exponent: int = 0) -> str:
    """Canonical decimal-SI form of mantissa * 10**exponent."""
    if mantissa == 0:
        return "0"
    sign = "-" if mantissa < 0 else ""
    amount = abs(mantissa)
    while amount % 10 == 0:
        amount //= 10
        exponent += 1
    # suffixes only exist for multiples of 3
    while exponent % 3:
        amount *= 10
        exponent -= 1
    return f"{sign}{amount}{_DECIMAL_SUFFIXES[exponent]}"


def format_binary_si(value: int) -> str:
    """Canonical binary-SI form of a byte count."""
    if -1024 < value < 1024:
        return format_decimal_si(value)
    sign = "-" if value < 0 else ""
    amount = abs(value)
    power = 0
    while amount % 1024 == 0:
        amount //= 1024
        power += 1
    return f"{sign}{amount}{_BINARY_SUFFIXES[power]}"


def cpu_quantity(raw: str) -> str:
    """Integer millicores -> decimal-SI quantity string."""
    return format_decimal_si(parse_int64(raw), -3)


def memory_quantity(raw: str) -> str:
    """Integer bytes -> binary-SI quantity string."""
    return format_binary_si(parse_int64(raw))


def describe_rejected(raw: str, unit: str) -> str:
    """Explain why a configured default will never be applied."""
    try:
        parsed = parse_quantity(raw)
    except ValueError:
        return f"{raw!r} is not an integer {unit} count"
    return (
        f"{raw!r} is written in quantity notation ({parsed} base units); "
        f"an integer {unit} count is expected"
    )
