import pytest

from talonlang.errors import RuleFileError
from talonlang.rules import TalonFile, load_rule_files


def test_read_from_file(rule_dir):
    t = TalonFile.read_from_file(rule_dir / "proof_known.talon")
    assert t.name == "proof_known.talon"
    assert t.event == "ProofCreated(bytes32,address)"
    assert t.event_name == "ProofCreated"
    assert t.rules.strip() == "$keystore.contains($proof_id)"


def test_matches():
    t = TalonFile(name="r", event="Transfer(address,address,uint256)", rules="true")
    assert t.matches("Transfer(address,address,uint256)")
    assert t.matches("Transfer")
    assert not t.matches("Approval")
    assert t.matches("0xAB", topic_hasher=lambda sig: "0xab")


def test_load_rule_files_sorted(rule_dir):
    names = [f.name for f in load_rule_files(rule_dir)]
    assert names == ["other.talon", "proof_known.talon", "recent_block.talon"]


@pytest.mark.parametrize("text", [
    "{\ntrue\n}\n",
    "event: Foo()\ntrue\n",
    "event: Foo()\n{\ntrue\n",
    "event: \n{\ntrue\n}\n",
])
def test_malformed_rule_files(text):
    with pytest.raises((RuleFileError, ValueError)):
        TalonFile.parse_text("bad.talon", text)


def test_missing_directory(tmp_path):
    with pytest.raises(RuleFileError):
        load_rule_files(tmp_path / "absent")
