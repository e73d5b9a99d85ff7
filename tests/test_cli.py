import json

import pytest

import talon


@pytest.fixture(autouse=True)
def _state_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TALON_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("TALON_PREDEFINED_POLICY", raising=False)


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_eval_allow_and_deny(tmp_path, capsys):
    ctx = _write(tmp_path / "ctx.json", {"$ethereum_block_number": 1500000})
    assert talon.main(["eval", "$ethereum_block_number.as(u256) > 1000000", "--context", ctx]) == talon.EXIT_ALLOW
    assert talon.main(["eval", "$ethereum_block_number.as(u256) > 2000000", "--context", ctx]) == talon.EXIT_DENY
    out = capsys.readouterr().out
    assert '"decision":true' in out
    assert '"decision":false' in out


def test_eval_error_exit_code(capsys):
    assert talon.main(["eval", '$map.get("missing")']) == talon.EXIT_ERROR
    assert "KeyError" in capsys.readouterr().out


def test_eval_with_predefined_value(tmp_path, capsys):
    pre = _write(tmp_path / "pre.json", ["$keystore.push(1)", "$keystore.push(2)"])
    code = talon.main(["--predefined-variables", pre, "eval", "--value", "$keystore.at(1)"])
    assert code == talon.EXIT_ALLOW
    assert "Number(2)" in capsys.readouterr().out


def test_failed_predefined(tmp_path):
    pre = _write(tmp_path / "pre.json", ["$map.get('x')", "$keystore.push(1)"])
    assert talon.main(["--predefined-variables", pre, "eval", "true"]) == talon.EXIT_ERROR
    assert talon.main(["--predefined-variables", pre, "--skip-failed-predefined",
                       "eval", "$keystore.contains(1)"]) == talon.EXIT_ALLOW


def test_save_and_restore(tmp_path):
    assert talon.main(["--save", "run", "eval", "$keystore.push(7)"]) == talon.EXIT_ALLOW
    assert talon.main(["--restore", "run", "eval", "$keystore.contains(7)"]) == talon.EXIT_ALLOW
    assert talon.main(["--restore", "missing", "eval", "true"]) == talon.EXIT_ERROR


def test_check_rule_directory(rule_dir, tmp_path, capsys):
    ctx = _write(tmp_path / "ctx.json", {"$proof_id": "0x1", "$ethereum_block_number": 500})
    code = talon.main(["check", str(rule_dir), "--event", "ProofCreated(bytes32,address)", "--context", ctx])
    assert code == talon.EXIT_DENY
    out = capsys.readouterr().out
    assert "proof_known.talon: deny" in out
    assert "recent_block.talon: allow" in out


def test_no_command(capsys):
    assert talon.main([]) == talon.EXIT_ERROR
