"""Tests for canonicalization and changeset fingerprints."""

import functools
import gc
import types

import pytest

from runonce.kernel.fingerprint import (
    CanonicalizationError,
    action_payload,
    canonicalize_json,
    describe_callable,
    hash_payload,
)
from runonce.kernel.model import ChangeSet
from runonce.loader import load_changelog


def create_table():
    return "create"


def drop_table():
    return "drop"


def record(value):
    return value


def make_step(table):
    def step():
        return table
    return step


def with_default(table="a"):
    return table


class Sql:
    def __init__(self, statement, params=None):
        self.statement = statement
        self.params = params or []

    def execute(self):
        pass


class SlottedSql:
    __slots__ = ("statement",)

    def __init__(self, statement):
        self.statement = statement

    def execute(self):
        pass


class PayloadAction:
    def __init__(self, statement):
        self.statement = statement

    def execute(self):
        pass

    def fingerprint_payload(self):
        return {"kind": "sql", "statement": self.statement}


class TestCanonicalizeJson:
    """Tests for canonicalize_json function."""

    def test_nested_dict_sorts_recursively(self):
        obj = {"z": {"b": 2, "a": 1}, "a": {"d": 4, "c": 3}}
        assert canonicalize_json(obj) == '{"a":{"c":3,"d":4},"z":{"a":1,"b":2}}'

    def test_array_preserves_order(self):
        assert canonicalize_json({"items": [3, 1, 2]}) == '{"items":[3,1,2]}'

    def test_string_normalization_nfc(self):
        decomposed = "cafe\u0301"
        composed = "caf\u00e9"
        assert canonicalize_json({"text": decomposed}) == canonicalize_json({"text": composed})

    def test_float_banned_hard_error(self):
        with pytest.raises(CanonicalizationError, match="Floats are not allowed"):
            canonicalize_json({"value": 3.14})

    def test_non_string_keys_rejected(self):
        with pytest.raises(CanonicalizationError, match="keys must be strings"):
            canonicalize_json({1: "x"})

    def test_non_json_type_rejected(self):
        with pytest.raises(CanonicalizationError, match="Non-JSON type"):
            canonicalize_json({"value": object()})

    def test_hash_prefix(self):
        assert hash_payload({"a": 1}).startswith("sha256:")


class TestChangeSetFingerprint:
    """Fingerprints over action definitions."""

    def test_deterministic(self):
        a = ChangeSet(id="CS1", author="a", actions=[create_table])
        b = ChangeSet(id="CS1", author="a", actions=[create_table])
        assert a.fingerprint == b.fingerprint

    def test_content_sensitive(self):
        a = ChangeSet(id="CS1", author="a", actions=[create_table])
        b = ChangeSet(id="CS1", author="a", actions=[drop_table])
        assert a.fingerprint != b.fingerprint

    def test_order_sensitive(self):
        a = ChangeSet(id="CS1", author="a", actions=[create_table, drop_table])
        b = ChangeSet(id="CS1", author="a", actions=[drop_table, create_table])
        assert a.fingerprint != b.fingerprint

    def test_ignores_author_tags_and_id(self):
        a = ChangeSet(id="CS1", author="alice", tags=["x"], actions=[create_table])
        b = ChangeSet(id="CS2", author="bob", tags=["y"], actions=[create_table])
        assert a.fingerprint == b.fingerprint

    def test_fingerprint_payload_preferred(self):
        a = ChangeSet(id="CS1", author="a", actions=[PayloadAction("CREATE TABLE t")])
        b = ChangeSet(id="CS1", author="a", actions=[PayloadAction("CREATE TABLE t")])
        c = ChangeSet(id="CS1", author="a", actions=[PayloadAction("DROP TABLE t")])
        assert a.fingerprint == b.fingerprint
        assert a.fingerprint != c.fingerprint

    def test_invalid_payload_raises(self):
        cs = ChangeSet(id="CS1", author="a", actions=[PayloadAction(1.5)])
        with pytest.raises(CanonicalizationError):
            cs.fingerprint


class TestDescribeCallable:
    """Payloads for plain callables."""

    def test_uses_dedented_source(self):
        payload = describe_callable(create_table)
        assert payload["kind"] == "callable"
        assert payload["source"].startswith("def create_table():")

    def test_falls_back_to_code_digest_without_source(self):
        namespace = {}
        exec(compile("def hidden():\n    return 42\n", "<no-source-available>", "exec"), namespace)
        payload = describe_callable(namespace["hidden"])
        assert "source" not in payload
        assert payload["code"].startswith("sha256:")

    def test_code_digest_is_content_sensitive(self):
        first, second = {}, {}
        exec(compile("def hidden():\n    return 1\n", "<no-source-a>", "exec"), first)
        exec(compile("def hidden():\n    return 2\n", "<no-source-b>", "exec"), second)
        assert describe_callable(first["hidden"]) != describe_callable(second["hidden"])


class TestLoadedScriptFingerprint:
    """Fingerprints of actions defined in changelog scripts."""

    SCRIPT = (
        "changelog = change_log('log')\n"
        "cs = changelog.change_set('CS1', author='a')\n"
        "@cs.action\n"
        "def step():\n"
        "    logger.info({message!r})\n"
    )

    def test_same_text_same_fingerprint(self):
        first = load_changelog(self.SCRIPT.format(message="hello"), origin="<first>")
        second = load_changelog(self.SCRIPT.format(message="hello"), origin="<second>")
        assert first.change_sets[0].fingerprint == second.change_sets[0].fingerprint

    def test_edited_text_changes_fingerprint(self):
        first = load_changelog(self.SCRIPT.format(message="hello"))
        edited = load_changelog(self.SCRIPT.format(message="hello again"))
        assert first.change_sets[0].fingerprint != edited.change_sets[0].fingerprint


class TestCallableKinds:
    """Callables without a Python function body of their own."""

    def test_partial_includes_bound_arguments(self):
        payload = describe_callable(functools.partial(record, 1))
        assert payload["kind"] == "partial"
        assert payload["func"]["source"].startswith("def record(value):")
        assert payload["args"] == [1]
        assert payload != describe_callable(functools.partial(record, 2))
        assert describe_callable(functools.partial(record, value="x"))["keywords"] == {"value": "x"}

    def test_partial_of_builtin_method(self):
        seen = []
        payload = describe_callable(functools.partial(seen.append, "ran"))
        assert payload["func"]["kind"] == "builtin"
        assert payload["args"] == ["ran"]

    def test_builtin_uses_qualified_name(self):
        assert describe_callable(gc.collect) == {"kind": "builtin", "name": "gc.collect"}

    def test_changeset_of_partials_and_builtins_has_fingerprint(self):
        cs = ChangeSet(id="CS1", author="a", actions=[functools.partial(record, 1), gc.collect])
        assert cs.fingerprint.startswith("sha256:")


class TestCapturedValues:
    """Closures and defaults are part of a callable's definition."""

    def test_closure_values_change_fingerprint(self):
        a = ChangeSet(id="CS1", author="a", actions=[make_step("accounts")])
        b = ChangeSet(id="CS1", author="a", actions=[make_step("accounts")])
        c = ChangeSet(id="CS1", author="a", actions=[make_step("orders")])
        assert a.fingerprint == b.fingerprint
        assert a.fingerprint != c.fingerprint

    def test_defaults_change_fingerprint(self):
        other = types.FunctionType(with_default.__code__, with_default.__globals__, "with_default", ("b",))
        assert describe_callable(with_default)["defaults"] == ["a"]
        assert describe_callable(with_default) != describe_callable(other)

    def test_captured_accumulator_does_not_change_fingerprint(self):
        seen = []

        def step():
            seen.append("ran")

        before = ChangeSet(id="CS1", author="a", actions=[step]).fingerprint
        step()
        assert ChangeSet(id="CS1", author="a", actions=[step]).fingerprint == before

    def test_recursive_closure(self):
        def countdown(n=3):
            return countdown(n - 1) if n else 0

        assert describe_callable(countdown)["closure"]["countdown"] == {"ref": "builtins.function"}


class TestActionObjectFingerprint:
    """Action objects without fingerprint_payload()."""

    def test_parameters_change_fingerprint(self):
        create = ChangeSet(id="CS1", author="a", actions=[Sql("CREATE TABLE a")])
        same = ChangeSet(id="CS1", author="a", actions=[Sql("CREATE TABLE a")])
        drop = ChangeSet(id="CS1", author="a", actions=[Sql("DROP TABLE a")])
        assert create.fingerprint == same.fingerprint
        assert create.fingerprint != drop.fingerprint

    def test_list_attributes_are_content(self):
        first = ChangeSet(id="CS1", author="a", actions=[Sql("INSERT", params=[1])])
        second = ChangeSet(id="CS1", author="a", actions=[Sql("INSERT", params=[2])])
        assert first.fingerprint != second.fingerprint

    def test_payload_names_class_and_state(self):
        payload = action_payload(Sql("CREATE TABLE a"))
        assert payload["kind"] == "object"
        assert payload["class"].endswith("Sql")
        assert payload["state"] == {"params": [], "statement": "CREATE TABLE a"}
        assert payload["execute"]["source"].startswith("def execute(self):")

    def test_slots_are_state(self):
        a = ChangeSet(id="CS1", author="a", actions=[SlottedSql("CREATE TABLE a")])
        b = ChangeSet(id="CS1", author="a", actions=[SlottedSql("DROP TABLE a")])
        assert a.fingerprint != b.fingerprint


class TestLambdaFingerprint:
    """Lambdas are described by their own expression, not their source line."""

    def test_author_on_the_same_line_is_ignored(self):
        alice = ChangeSet(id="x", author="alice", actions=[lambda: None])
        bob = ChangeSet(id="x", author="bob", actions=[lambda: None])
        assert alice.fingerprint == bob.fingerprint

    def test_lambda_source_is_the_expression(self):
        step = lambda: record("x")  # noqa: E731
        assert describe_callable(step)["source"] == 'lambda: record("x")'

    def test_two_lambdas_on_one_line_differ(self):
        first, second = (lambda: create_table()), (lambda: drop_table())
        assert describe_callable(first) != describe_callable(second)

    def test_loaded_one_line_changeset_ignores_author(self):
        script = (
            "changelog = change_log('log')\n"
            "changelog.change_set('CS1', author={author!r}).action(lambda: logger.info('hi'))\n"
        )
        alice = load_changelog(script.format(author="alice"))
        bob = load_changelog(script.format(author="bob"))
        assert alice.change_sets[0].fingerprint == bob.change_sets[0].fingerprint
