"""
Test configuration and fixtures for the TALON test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from talonlang.config import RuntimeConfig
from talonlang.environment import Environment, LocalScope, PersistentStore
from talonlang.evaluator import Evaluator
from talonlang.parser import parse
from talonlang.runtime import Runtime


@pytest.fixture
def store() -> PersistentStore:
    """Return an empty in-memory persistent store."""
    return PersistentStore()


@pytest.fixture
def runtime(store) -> Runtime:
    """Return a runtime over a fresh store with default configuration."""
    return Runtime(RuntimeConfig(), store)


@pytest.fixture
def run(store):
    """Evaluate rule text against a fresh local scope and return the last value."""
    def _run(text, **local):
        scope = LocalScope({f"${k}": v for k, v in local.items()})
        return Evaluator(Environment(scope, store)).run(parse(text))[-1]
    return _run


@pytest.fixture
def rule_dir(tmp_path) -> Path:
    """A directory holding two rule files subscribed to ProofCreated."""
    (tmp_path / "proof_known.talon").write_text(
        "event: ProofCreated(bytes32,address)\n"
        "{\n"
        "$keystore.contains($proof_id)\n"
        "}\n",
        encoding="utf-8",
    )
    (tmp_path / "recent_block.talon").write_text(
        "event: ProofCreated(bytes32,address)\n"
        "{\n"
        "$ethereum_block_number.as(u256) > 100\n"
        "}\n",
        encoding="utf-8",
    )
    (tmp_path / "other.talon").write_text(
        "event: Transfer(address,address,uint256)\n{\nfalse\n}\n",
        encoding="utf-8",
    )
    return tmp_path
