"""
Unit tests for ColumnMapping.
"""

import pytest

from sql_output.errors import ConfigError, MalformedRecordError
from sql_output.mapping import ColumnMapping


def test_parse_and_apply():
    m = ColumnMapping.parse("a:x,b,c:y")
    out = m.apply({"a": 1, "b": 2, "c": 3, "d": 4})
    assert out == {"x": 1, "b": 2, "y": 3}
    assert list(out) == ["x", "b", "y"]


def test_absent_keys_are_skipped():
    m = ColumnMapping.parse("a:x,b")
    assert m.apply({"b": None}) == {"b": None}
    assert m.apply({}) == {}


def test_whitespace_is_ignored():
    m = ColumnMapping.parse(" a : x , b ")
    assert list(m.items()) == [("a", "x"), ("b", "b")]
    assert m.columns == ("x", "b")


def test_column_may_contain_colon():
    m = ColumnMapping.parse("ts:created:at")
    assert list(m.items()) == [("ts", "created:at")]


@pytest.mark.parametrize("spec", ["", "   ", "a,,b", ":x", "a:", "a,a:b"])
def test_malformed_spec(spec):
    with pytest.raises(ConfigError):
        ColumnMapping.parse(spec)


def test_apply_rejects_non_mapping():
    m = ColumnMapping.parse("a")
    with pytest.raises(MalformedRecordError):
        m.apply(["a", 1])


def test_immutable():
    m = ColumnMapping.parse("a")
    with pytest.raises(AttributeError):
        m.extra = 1
    with pytest.raises(TypeError):
        m._pairs["b"] = "b"


def test_equality_and_repr():
    assert ColumnMapping.parse("a:x,b") == ColumnMapping.parse("a:x, b")
    assert repr(ColumnMapping.parse("a:x,b")) == "ColumnMapping('a:x,b')"
