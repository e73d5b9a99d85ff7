import json
import os

import pytest

from talonlang.environment import KEYSTORE, MAP, PersistentStore
from talonlang.errors import TalonError
from talonlang.persistence import PersistenceManager
from talonlang.types import U256_MAX, TypedValue


class TestPersistence:

    @pytest.fixture(autouse=True)
    def _manager(self, tmp_path):
        self.persist_dir = str(tmp_path / "state")
        self.pm = PersistenceManager(base_path=self.persist_dir)

    def test_manager_save_load(self, store):
        store.apply(KEYSTORE, "push", [TypedValue.number(U256_MAX)])
        store.apply(MAP, "insert", [TypedValue.string("k"), TypedValue.signed(-1)])

        path = self.pm.save_state("bridge", store)
        assert os.path.exists(path)
        assert path.endswith(".json")

        state = self.pm.load_state(path)
        assert state.name == "bridge"
        fresh = PersistentStore()
        self.pm.restore(fresh, state)
        assert fresh.snapshot() == store.snapshot()

    def test_list_and_latest(self, store):
        assert self.pm.get_latest_state("bridge") is None
        first = self.pm.save_state("bridge", store)
        os.utime(first, (0, 0))
        second = self.pm.save_state("bridge", store)
        assert self.pm.list_states("bridge")[0] == second
        assert self.pm.get_latest_state("bridge") == second

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            self.pm.load_state(os.path.join(self.persist_dir, "nope.json"))

    def test_invalid_file(self):
        path = os.path.join(self.persist_dir, "bad.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"name": "bad"}, f)
        with pytest.raises(TalonError):
            self.pm.load_state(path)

    def test_latest_state_found_for_unsafe_name(self, store):
        path = self.pm.save_state("bridge run/1", store)
        assert self.pm.get_latest_state("bridge run/1") == path
        assert self.pm.load_state(path).name == "bridge run/1"

    def test_lookup_does_not_match_longer_names(self, store):
        self.pm.save_state("bridge_v2", store)
        assert self.pm.get_latest_state("bridge") is None
        assert len(self.pm.list_states()) == 1
