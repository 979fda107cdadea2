from decimal import Decimal

import pytest
from kubernetes.utils import parse_quantity

from resource_defaults_webhook.errors import QuantityParseError
from resource_defaults_webhook.quantity import (
	cpu_quantity,
	describe_rejected,
	memory_quantity,
	parse_int64,
)


@pytest.mark.parametrize(
	"raw,expected",
	[
		("100", "100m"),
		("1000", "1"),
		("1500", "1500m"),
		("250", "250m"),
		("2000000", "2k"),
		("0", "0"),
		("+5", "5m"),
		("-250", "-250m"),
	],
)
def test_cpu_millicores_encode_as_decimal_si(raw, expected):
	encoded = cpu_quantity(raw)
	assert encoded == expected
	# Same amount as the API server would read it
	assert parse_quantity(encoded) == Decimal(int(raw)) / 1000


@pytest.mark.parametrize(
	"raw,expected",
	[
		("134217728", "128Mi"),
		("1073741824", "1Gi"),
		("1024", "1Ki"),
		("3000", "3000"),
		("1536", "1536"),
		("1000", "1k"),
		("512", "512"),
		("0", "0"),
	],
)
def test_memory_bytes_encode_as_binary_si(raw, expected):
	encoded = memory_quantity(raw)
	assert encoded == expected
	assert parse_quantity(encoded) == Decimal(int(raw))


@pytest.mark.parametrize(
	"raw",
	[
		"not-a-number",
		"",
		"1.5",
		" 100",
		"100 ",
		"100m",
		"128Mi",
		"1_000",
		"9223372036854775808",
		"-9223372036854775809",
	],
)
def test_parse_int64_rejects(raw):
	with pytest.raises(QuantityParseError):
		parse_int64(raw)


def test_parse_int64_bounds():
	assert parse_int64("9223372036854775807") == 2**63 - 1
	assert parse_int64("-9223372036854775808") == -(2**63)


def test_describe_rejected():
	assert "quantity notation" in describe_rejected("500m", "millicore")
	assert "not an integer byte count" in describe_rejected("lots", "byte")
