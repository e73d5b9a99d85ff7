import json

import pytest

from talonlang.config import PredefinedPolicy
from talonlang.environment import KEYSTORE, MAP
from talonlang.errors import PredefinedLoadError
from talonlang.predefined import PredefinedLoader, load_predefined_file
from talonlang.types import TypedValue


def test_statements_run_in_order(store):
    outcomes = PredefinedLoader(store).load([
        "assign($owner, '0xabc')",
        "$map.insert('owner', $owner)",
        "$keystore.push($owner)",
    ])
    assert [o.ok for o in outcomes] == [True, True, True]
    assert outcomes[1].value == "true"
    assert store.get(MAP).value == {"owner": TypedValue.string("0xabc")}
    assert store.get(KEYSTORE).value == (TypedValue.string("0xabc"),)


def test_fail_closed_stops_at_first_failure(store):
    loader = PredefinedLoader(store, PredefinedPolicy.FAIL_CLOSED)
    with pytest.raises(PredefinedLoadError) as exc:
        loader.load(["$keystore.push(1)", "$map.get('x')", "$keystore.push(2)"])
    assert exc.value.index == 1
    assert exc.value.cause.kind == "KeyError"
    assert store.get(KEYSTORE).value == (TypedValue.number(1),)


def test_skip_policy_continues(store):
    outcomes = PredefinedLoader(store, PredefinedPolicy.SKIP).load(
        ["$keystore.push(1)", "$keystore.push(", "$keystore.push(2)"]
    )
    assert [o.ok for o in outcomes] == [True, False, True]
    assert outcomes[1].error.kind == "ParseError"
    assert len(store.get(KEYSTORE).value) == 2


def test_local_assignments_do_not_persist(runtime):
    runtime.load_predefined(["assign($tmp, 1)"])
    assert runtime.evaluate("$tmp").error.kind == "UndefinedVariableError"


def test_load_predefined_file(tmp_path):
    path = tmp_path / "predefined.json"
    path.write_text(json.dumps(["$keystore.push(1)", "$keystore.push(2)"]), encoding="utf-8")
    statements = load_predefined_file(path)
    assert list(statements) == ["$keystore.push(1)", "$keystore.push(2)"]


@pytest.mark.parametrize("content", ['{"a": 1}', "[1, 2]", "not json"])
def test_load_predefined_file_rejects_bad_format(tmp_path, content):
    path = tmp_path / "predefined.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(PredefinedLoadError):
        load_predefined_file(path)


def test_deeply_nested_statement_fails_closed(store):
    with pytest.raises(PredefinedLoadError) as exc:
        PredefinedLoader(store).load(["!" * 5000 + "true"])
    assert exc.value.cause.kind == "ParseError"


def test_deeply_nested_statement_is_skipped(store):
    outcomes = PredefinedLoader(store, PredefinedPolicy.SKIP).load(["!" * 5000 + "true", "$keystore.push(1)"])
    assert [o.ok for o in outcomes] == [False, True]
