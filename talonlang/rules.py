"""Reader for ``.talon`` rule files.

A rule file names the event it guards and holds one rule block::

    event: ProofCreated(bytes32,address)
    {
    $keystore.contains($proof_id)
    $eth_block_number > 100
    }
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, field_validator

from .errors import RuleFileError

RULE_SUFFIX = ".talon"


class TalonFile(BaseModel):
    name: str
    event: str
    rules: str

    @field_validator("event")
    @classmethod
    def strip_event(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("event signature must not be empty")
        return v

    @property
    def event_name(self) -> str:
        return self.event.split("(", 1)[0].strip()

    def matches(self, event: str, topic_hasher: Optional[Callable[[str], str]] = None) -> bool:
        """True when ``event`` is this file's signature, its bare name, or its topic hash."""
        if event == self.event or event == self.event_name:
            return True
        if topic_hasher is not None:
            return topic_hasher(self.event).lower() == event.lower()
        return False

    @classmethod
    def parse_text(cls, name: str, text: str) -> "TalonFile":
        event: Optional[str] = None
        body: List[str] = []
        in_block = False
        closed = False
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if in_block:
                if line == "}":
                    in_block = False
                    closed = True
                    break
                body.append(raw)
            elif line.startswith("event:"):
                event = line[len("event:"):].strip().strip('"').strip("'")
            elif line == "{":
                if event is None:
                    raise RuleFileError(f"{name}: rule block at line {lineno} before the event header")
                in_block = True
            elif line and not line.startswith("//"):
                raise RuleFileError(f"{name}: unexpected text at line {lineno}: {line!r}")
        if event is None:
            raise RuleFileError(f"{name}: missing 'event:' header")
        if not closed:
            raise RuleFileError(f"{name}: rule block is not closed by a '}}' line")
        return cls(name=name, event=event, rules="\n".join(body))

    @classmethod
    def read_from_file(cls, path: str | Path) -> "TalonFile":
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise RuleFileError(f"cannot read rule file {p}: {e}") from e
        return cls.parse_text(p.name, text)


def load_rule_files(directory: str | Path) -> List[TalonFile]:
    """Read every ``*.talon`` file under ``directory``, sorted by file name."""
    root = Path(directory)
    if not root.is_dir():
        raise RuleFileError(f"rule directory not found: {root}")
    files = [TalonFile.read_from_file(p) for p in sorted(root.glob(f"*{RULE_SUFFIX}"))]
    logger.info("[rules] loaded {} rule files from {}", len(files), root)
    return files
