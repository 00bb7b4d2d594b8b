"""State models, data locators and state containers for zk contracts."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .scalar import ZkScalar

U32_MAX = (1 << 32) - 1
_HEX_COMPONENT = re.compile(r"\+?[0-9a-fA-F]+")


class ZkHasher(ABC):
    """A hash function over field elements with a bounded arity."""

    max_arity: int

    @abstractmethod
    def hash(self, values: Sequence[ZkScalar]) -> ZkScalar:
        """Hash a sequence of scalars into one scalar."""


class ZkLocatorError(LookupError):
    """A locator points to elements that do not exist in the model."""

    def __init__(self, message: str = "locator pointing to nonexistent elements") -> None:
        super().__init__(message)


class ParseLocatorError(ValueError):
    """Raised when a locator string cannot be parsed."""

    def __init__(self, text: str) -> None:
        super().__init__(f"locator invalid: {text!r}")


@dataclass(frozen=True)
class ZkDataLocator:
    """A path of indices into a state model."""

    path: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", tuple(self.path))

    def index(self, ind: int) -> ZkDataLocator:
        """A new locator one level deeper."""
        return ZkDataLocator(self.path + (ind,))

    @classmethod
    def parse(cls, text: str) -> ZkDataLocator:
        """Parse the underscore-separated hexadecimal form."""
        parts = []
        for part in text.split("_"):
            if not _HEX_COMPONENT.fullmatch(part):
                raise ParseLocatorError(text)
            value = int(part, 16)
            if value > U32_MAX:
                raise ParseLocatorError(text)
            parts.append(value)
        return cls(tuple(parts))

    def __str__(self) -> str:
        return "_".join(f"{n:x}" for n in self.path)


class ZkStateModel(ABC):
    """Shape of a contract's state."""

    @abstractmethod
    def is_valid(self, hasher: ZkHasher) -> bool:
        """Whether the model can be compressed with the given hasher."""

    @abstractmethod
    def compress_default(self, hasher: ZkHasher) -> ZkScalar:
        """The compressed value of an all-default state of this shape."""

    @abstractmethod
    def _child(self, index: int) -> ZkStateModel:
        """The sub-model at the given index."""

    def locate(self, locator: ZkDataLocator) -> ZkStateModel:
        """The sub-model a locator points to."""
        current: ZkStateModel = self
        for index in locator.path:
            current = current._child(index)
        return current


@dataclass(frozen=True)
class ScalarModel(ZkStateModel):
    """A single field element."""

    def is_valid(self, hasher: ZkHasher) -> bool:
        return True

    def compress_default(self, hasher: ZkHasher) -> ZkScalar:
        return ZkScalar(0)

    def _child(self, index: int) -> ZkStateModel:
        raise ZkLocatorError()


@dataclass(frozen=True)
class StructModel(ZkStateModel):
    """A fixed set of fields, hashed together."""

    field_types: tuple[ZkStateModel, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_types", tuple(self.field_types))

    def is_valid(self, hasher: ZkHasher) -> bool:
        if len(self.field_types) > hasher.max_arity:
            return False
        return all(ft.is_valid(hasher) for ft in self.field_types)

    def compress_default(self, hasher: ZkHasher) -> ZkScalar:
        return hasher.hash([ft.compress_default(hasher) for ft in self.field_types])

    def _child(self, index: int) -> ZkStateModel:
        if not 0 <= index < len(self.field_types):
            raise ZkLocatorError()
        return self.field_types[index]


@dataclass(frozen=True)
class ListModel(ZkStateModel):
    """A list of ``4 ** log4_size`` items stored as a quaternary Merkle tree."""

    log4_size: int
    item_type: ZkStateModel

    @property
    def capacity(self) -> int:
        return 1 << (2 * self.log4_size)

    def is_valid(self, hasher: ZkHasher) -> bool:
        return self.item_type.is_valid(hasher)

    def compress_default(self, hasher: ZkHasher) -> ZkScalar:
        root = self.item_type.compress_default(hasher)
        for _ in range(self.log4_size):
            root = hasher.hash([root] * 4)
        return root

    def _child(self, index: int) -> ZkStateModel:
        if not 0 <= index < self.capacity:
            raise ZkLocatorError()
        return self.item_type


CONTRACT_PAYMENT_STATE_MODEL = StructModel(
    (ScalarModel(), ScalarModel(), ScalarModel(), ScalarModel())
)


class ZkDeltaPairs(dict):
    """Changes to a state: a value to set, or ``None`` to reset to default."""


class ZkDataPairs(dict):
    """Non-default values of a state, keyed by locator."""

    def as_delta(self) -> ZkDeltaPairs:
        return ZkDeltaPairs(self.items())

    def size(self) -> int:
        return len(self)


@dataclass
class ZkState:
    """Full state of a contract with the deltas that undo recent changes."""

    data: ZkDataPairs = field(default_factory=ZkDataPairs)
    rollbacks: list[ZkDeltaPairs] = field(default_factory=list)

    def push_delta(self, delta: ZkDeltaPairs) -> None:
        """Apply a delta and remember how to undo it."""
        rollback = ZkDeltaPairs((loc, self.data.get(loc)) for loc in delta)
        self.apply_delta(delta)
        self.rollbacks.append(rollback)

    def apply_delta(self, delta: ZkDeltaPairs) -> None:
        for loc, value in delta.items():
            if value is None:
                self.data.pop(loc, None)
            else:
                self.data[loc] = value


@dataclass(frozen=True)
class ZkCompressedState:
    """Root hash of a state together with its count of non-default scalars."""

    state_hash: ZkScalar = field(default_factory=ZkScalar)
    state_size: int = 0

    @classmethod
    def empty(cls, hasher: ZkHasher, model: ZkStateModel) -> ZkCompressedState:
        return cls(model.compress_default(hasher), 0)

    def size(self) -> int:
        return self.state_size


def _as_locators(paths: Iterable[Iterable[int]]) -> list[ZkDataLocator]:
    return [ZkDataLocator(tuple(p)) for p in paths]