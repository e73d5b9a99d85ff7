import glob
import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .environment import KEYSTORE, MAP, PersistentStore
from .errors import TalonError
from .types import TypedValue, decode_json, encode_json


def safe_name(name: str) -> str:
    """File-name form of a state name; saving and lookup both go through it."""
    return "".join(c for c in name if c.isalnum() or c in ("-", "_"))


class PersistentState(BaseModel):
    """Serializable snapshot of the Persistent scope."""
    name: str
    timestamp: str
    keystore: Dict[str, Any] = Field(default_factory=lambda: {"tag": "Array", "value": []})
    map: Dict[str, Any] = Field(default_factory=lambda: {"tag": "Map", "value": {}})

    @classmethod
    def capture(cls, name: str, store: PersistentStore) -> "PersistentState":
        values = store.snapshot()
        return cls(
            name=name,
            timestamp=datetime.now().isoformat().replace(":", "-"),
            keystore=encode_json(values[KEYSTORE]),
            map=encode_json(values[MAP]),
        )

    def values(self) -> Dict[str, TypedValue]:
        return {KEYSTORE: decode_json(self.keystore), MAP: decode_json(self.map)}


class PersistenceManager:
    """Saves and loads Persistent scope snapshots as JSON state files."""

    def __init__(self, base_path: str = "./.talon_state"):
        self.base_path = base_path
        os.makedirs(self.base_path, exist_ok=True)

    def save_state(self, name: str, store: PersistentStore) -> str:
        """Save the current keystore and map to disk. Returns the filename."""
        state = PersistentState.capture(name, store)
        path = os.path.join(self.base_path, f"{safe_name(name)}_{state.timestamp}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(state.model_dump(), f, indent=2)
        logger.info("[state] saved {} to {}", name, path)
        return path

    def load_state(self, path: str) -> PersistentState:
        """Load state from a file path."""
        if not os.path.exists(path):
            raise FileNotFoundError(f"State file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                return PersistentState.model_validate(json.load(f))
            except (json.JSONDecodeError, ValidationError) as e:
                raise TalonError(f"{path} is not a valid state file: {e}") from e

    def list_states(self, name_filter: str = "*") -> List[str]:
        """List available state files, sorted by newest first."""
        files = glob.glob(os.path.join(self.base_path, "*.json"))
        if name_filter != "*":
            # timestamps carry no underscore, so the name is everything before the last one
            wanted = safe_name(name_filter)
            files = [f for f in files if os.path.basename(f).rsplit("_", 1)[0] == wanted]
        files.sort(key=os.path.getmtime, reverse=True)
        return files

    def get_latest_state(self, name: str) -> Optional[str]:
        files = self.list_states(name)
        return files[0] if files else None

    def restore(self, store: PersistentStore, state: PersistentState) -> None:
        try:
            values = state.values()
        except (AttributeError, TypeError, ValueError) as e:
            raise TalonError(f"state {state.name} holds malformed values: {e}") from e
        store.restore(values)
        logger.info("[state] restored {} from {}", state.name, state.timestamp)
