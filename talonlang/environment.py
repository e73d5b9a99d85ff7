"""Two-tier variable environment for TALON.

Local scope lives for one rule evaluation and is seeded from the event context.
Persistent scope holds the process-wide ``$keystore`` and ``$map`` and is shared
by every evaluation; it is passed in explicitly rather than kept as a module
global. All persistent reads and writes go through a single lock that is held
for exactly one operation, never for a whole rule.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from . import dispatch
from .errors import TalonTypeError, UndefinedVariableError
from .types import TypedValue, ValueTag

KEYSTORE = "$keystore"
MAP = "$map"

PERSISTENT_ROOTS: Dict[str, ValueTag] = {
    KEYSTORE: ValueTag.Array,
    MAP: ValueTag.Map,
}


def is_persistent(name: str) -> bool:
    return name in PERSISTENT_ROOTS


def _empty(tag: ValueTag) -> TypedValue:
    return TypedValue.array(()) if tag == ValueTag.Array else TypedValue.map({})


class StorageBackend(ABC):
    """The four primitives the persistent scope needs from its storage."""

    @abstractmethod
    def get(self, name: str) -> Optional[TypedValue]:
        ...

    @abstractmethod
    def set(self, name: str, value: TypedValue) -> None:
        ...

    @abstractmethod
    def append(self, name: str, item: TypedValue) -> None:
        ...

    @abstractmethod
    def delete(self, name: str) -> None:
        ...


class InMemoryBackend(StorageBackend):
    def __init__(self):
        self._slots: Dict[str, TypedValue] = {}

    def get(self, name: str) -> Optional[TypedValue]:
        return self._slots.get(name)

    def set(self, name: str, value: TypedValue) -> None:
        self._slots[name] = value

    def append(self, name: str, item: TypedValue) -> None:
        current = self._slots.get(name, TypedValue.array(()))
        self._slots[name] = TypedValue.array(current.value + (item,))

    def delete(self, name: str) -> None:
        self._slots.pop(name, None)


class PersistentStore:
    """Process-wide ``$keystore`` / ``$map`` guarded by one per-operation lock."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend or InMemoryBackend()
        self._lock = threading.Lock()
        with self._lock:
            for name, tag in PERSISTENT_ROOTS.items():
                if self.backend.get(name) is None:
                    self.backend.set(name, _empty(tag))

    def _read(self, name: str) -> TypedValue:
        value = self.backend.get(name)
        return value if value is not None else _empty(PERSISTENT_ROOTS[name])

    def _check_kind(self, name: str, value: TypedValue) -> None:
        expected = PERSISTENT_ROOTS[name]
        if value.tag != expected:
            raise TalonTypeError(f"{name} only holds {expected.value} values, got {value.tag.value}")

    def get(self, name: str) -> TypedValue:
        with self._lock:
            return self._read(name)

    def set(self, name: str, value: TypedValue) -> TypedValue:
        self._check_kind(name, value)
        with self._lock:
            self.backend.set(name, value)
        logger.debug("[persistent] {} = {!r}", name, value)
        return value

    def apply(self, name: str, method: str, args: Sequence[TypedValue]) -> TypedValue:
        """Run one mutating built-in against a persistent variable atomically."""
        with self._lock:
            current = self._read(name)
            result, updated = dispatch.call_mutating(current, method, args)
            if method == "push" and current.tag == ValueTag.Array:
                self.backend.append(name, args[0])
            else:
                self.backend.set(name, updated)
        logger.debug("[persistent] {}.{} -> {!r}", name, method, result)
        return result

    def snapshot(self) -> Dict[str, TypedValue]:
        with self._lock:
            return {name: self._read(name) for name in PERSISTENT_ROOTS}

    def restore(self, values: Mapping[str, TypedValue]) -> None:
        """Replace the persistent roots, e.g. from a saved state file."""
        for name, value in values.items():
            if not is_persistent(name):
                raise TalonTypeError(f"{name} is not a persistent variable")
            self._check_kind(name, value)
        with self._lock:
            for name, value in values.items():
                self.backend.set(name, value)

    def clear(self) -> None:
        with self._lock:
            for name, tag in PERSISTENT_ROOTS.items():
                self.backend.delete(name)
                self.backend.set(name, _empty(tag))


class LocalScope:
    """Event-local variables; one instance per rule evaluation."""

    def __init__(self, initial: Optional[Mapping[str, TypedValue]] = None):
        self._vars: Dict[str, TypedValue] = dict(initial or {})

    def __contains__(self, name: str) -> bool:
        return name in self._vars

    def __iter__(self) -> Iterator[str]:
        return iter(self._vars)

    def get(self, name: str) -> Optional[TypedValue]:
        return self._vars.get(name)

    def set(self, name: str, value: TypedValue) -> None:
        self._vars[name] = value

    def items(self) -> List[Tuple[str, TypedValue]]:
        return list(self._vars.items())


class Environment:
    """Resolves ``$name`` against Local scope first, then the persistent roots."""

    def __init__(self, local: LocalScope, store: PersistentStore):
        self.local = local
        self.store = store

    def get(self, name: str) -> TypedValue:
        value = self.local.get(name)
        if value is not None:
            return value
        if is_persistent(name):
            return self.store.get(name)
        raise UndefinedVariableError(f"the variable {name} does not exist")

    def set(self, name: str, value: TypedValue) -> TypedValue:
        if is_persistent(name):
            return self.store.set(name, value)
        self.local.set(name, value)
        return value

    def mutate(self, name: str, method: str, args: Sequence[TypedValue]) -> TypedValue:
        """Apply a mutating built-in to a variable and write the new collection back."""
        if is_persistent(name):
            return self.store.apply(name, method, args)
        current = self.get(name)
        result, updated = dispatch.call_mutating(current, method, args)
        self.local.set(name, updated)
        return result
