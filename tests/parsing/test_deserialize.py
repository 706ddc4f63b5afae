"""Tests for JSON, YAML and pickle deserialization guards."""

import datetime
import os
import pickle

import pytest

from resguard.core.errors import (
    DepthLimitError,
    ExpansionLimitError,
    InvalidArgumentError,
    LimitExceededError,
    UnsafeDeserializationError,
)
from resguard.parsing.deserialize import load_json, load_yaml, loads_restricted, measure_depth


class Exploit:
    def __reduce__(self):
        return (os.system, ("echo pwned",))


class TestMeasureDepth:
    def test_flat(self):
        assert measure_depth("1") == 0
        assert measure_depth("[1, 2]") == 1

    def test_nested(self):
        assert measure_depth('{"a": [{"b": []}]}') == 4

    def test_brackets_in_strings_ignored(self):
        assert measure_depth('{"a": "[[[[\\"{{{{"}') == 1

    def test_stops_early(self):
        with pytest.raises(DepthLimitError):
            measure_depth("[" * 10_000, max_depth=10)


class TestLoadJson:
    """Tests for load_json."""

    def test_valid(self):
        assert load_json('{"a": [1, 2, {"b": null}]}') == {"a": [1, 2, {"b": None}]}

    def test_bytes(self):
        assert load_json(b'{"a": 1}') == {"a": 1}

    def test_deep_nesting(self):
        with pytest.raises(DepthLimitError):
            load_json("[" * 1000 + "]" * 1000, max_depth=64)

    def test_depth_default_from_settings(self, monkeypatch):
        monkeypatch.setenv("RESGUARD_MAX_JSON_DEPTH", "2")
        with pytest.raises(DepthLimitError):
            load_json("[[[1]]]")

    def test_key_cap(self):
        doc = "{" + ", ".join(f'"k{i}": {i}' for i in range(10)) + "}"
        with pytest.raises(LimitExceededError) as exc_info:
            load_json(doc, max_object_keys=5)
        assert exc_info.value.context.observed == 10

    def test_size_cap(self):
        with pytest.raises(ExpansionLimitError):
            load_json('{"a": "' + "x" * 100 + '"}', max_bytes=50)

    def test_explicit_zero_is_not_replaced_by_settings(self):
        with pytest.raises(ExpansionLimitError):
            load_json("{}", max_bytes=0)
        with pytest.raises(LimitExceededError):
            load_json('{"a": 1}', max_object_keys=0)

    def test_malformed(self):
        with pytest.raises(InvalidArgumentError, match="Malformed"):
            load_json("{not json")

    def test_invalid_utf8(self):
        with pytest.raises(InvalidArgumentError):
            load_json(b'"\xff"')


class TestLoadYaml:
    def test_valid(self):
        assert load_yaml("a: 1\nb: [x, y]\n") == {"a": 1, "b": ["x", "y"]}

    def test_python_tags_refused(self):
        with pytest.raises(InvalidArgumentError):
            load_yaml("!!python/object/apply:os.system ['echo pwned']")

    def test_alias_cap(self):
        doc = "a: &x [1, 2]\nb: [*x, *x, *x]\n"
        assert load_yaml(doc, max_aliases=3)["b"][0] == [1, 2]
        with pytest.raises(ExpansionLimitError):
            load_yaml(doc, max_aliases=2)

    def test_malformed(self):
        with pytest.raises(InvalidArgumentError):
            load_yaml("a: [1, 2")


class TestRestrictedUnpickle:
    def test_plain_data(self):
        data = {"a": [1, 2.5, "x"], "b": (True, None)}
        assert loads_restricted(pickle.dumps(data)) == data

    def test_allowed_global(self):
        value = datetime.date(2024, 1, 2)
        assert loads_restricted(pickle.dumps(value)) == value

    def test_code_execution_refused(self):
        with pytest.raises(UnsafeDeserializationError):
            loads_restricted(pickle.dumps(Exploit()))

    def test_custom_allow_list(self):
        with pytest.raises(UnsafeDeserializationError):
            loads_restricted(pickle.dumps(datetime.date(2024, 1, 2)), allowed=frozenset())

    def test_malformed(self):
        with pytest.raises(InvalidArgumentError):
            loads_restricted(b"garbage")

    def test_size_cap(self):
        with pytest.raises(ExpansionLimitError):
            loads_restricted(pickle.dumps(b"x" * 1000), max_bytes=100)

    def test_explicit_zero_size_cap(self):
        with pytest.raises(ExpansionLimitError):
            loads_restricted(pickle.dumps(1), max_bytes=0)
        with pytest.raises(ExpansionLimitError):
            load_yaml("a: 1", max_bytes=0)
