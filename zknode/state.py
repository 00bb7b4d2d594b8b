"""Contract state kept as sparse quaternary Merkle trees in a key-value store."""

from __future__ import annotations

from dataclasses import dataclass, field
from operator import itemgetter
from typing import Iterable, Protocol

from .model import (
    ListModel,
    ScalarModel,
    StructModel,
    ZkCompressedState,
    ZkDataLocator,
    ZkDataPairs,
    ZkDeltaPairs,
    ZkHasher,
    ZkState,
    ZkStateModel,
)
from .scalar import ZkScalar

MAX_ROLLBACKS = 5
ZERO_CONTRACT_ID = "0" * 64


class StateManagerError(Exception):
    """Base class for errors raised while managing contract state."""


class ContractNotFoundError(StateManagerError):
    def __init__(self) -> None:
        super().__init__("contract not found")


class NonScalarLocatorError(StateManagerError):
    def __init__(self) -> None:
        super().__init__("not locating a scalar")


class NonTreeLocatorError(StateManagerError):
    def __init__(self) -> None:
        super().__init__("not locating a tree")


@dataclass
class MpnAccount:
    """An account of the MPN contract: four scalars in the state."""

    nonce: int = 0
    address: tuple[ZkScalar, ZkScalar] = field(
        default_factory=lambda: (ZkScalar(0), ZkScalar(0))
    )
    balance: int = 0


@dataclass
class ZkContract:
    """A contract's initial state, state model and verifier keys."""

    initial_state: ZkCompressedState
    state_model: ZkStateModel
    payment_functions: list = field(default_factory=list)
    functions: list = field(default_factory=list)


@dataclass(frozen=True)
class WriteOp:
    """A single write to a key-value store: a put, or a removal."""

    key: str
    value: object = None
    is_removal: bool = False

    @classmethod
    def put(cls, key: str, value: object) -> WriteOp:
        return cls(key, value)

    @classmethod
    def delete(cls, key: str) -> WriteOp:
        return cls(key, None, True)


class KvStore(Protocol):
    def get(self, key: str) -> object | None: ...

    def pairs(self, prefix: str) -> list[tuple[str, object]]: ...

    def update(self, ops: Iterable[WriteOp]) -> None: ...

    def mirror(self) -> _MirrorKvStore: ...


class RamKvStore:
    """An in-memory key-value store."""

    def __init__(self, data: dict[str, object] | None = None) -> None:
        self._data: dict[str, object] = dict(data or {})

    def get(self, key: str) -> object | None:
        return self._data.get(key)

    def pairs(self, prefix: str) -> list[tuple[str, object]]:
        """All entries whose key starts with ``prefix``, ordered by key."""
        return sorted(
            ((k, v) for k, v in self._data.items() if k.startswith(prefix)),
            key=itemgetter(0),
        )

    def update(self, ops: Iterable[WriteOp]) -> None:
        for op in ops:
            if op.is_removal:
                self._data.pop(op.key, None)
            else:
                self._data[op.key] = op.value

    def mirror(self) -> _MirrorKvStore:
        """A store that reads through to this one and records its own writes."""
        return _MirrorKvStore(self)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


_REMOVED = object()


class _MirrorKvStore:
    """A write overlay on top of another store."""

    def __init__(self, base: KvStore) -> None:
        self._base = base
        self._overlay: dict[str, object] = {}

    def get(self, key: str) -> object | None:
        if key in self._overlay:
            value = self._overlay[key]
            return None if value is _REMOVED else value
        return self._base.get(key)

    def pairs(self, prefix: str) -> list[tuple[str, object]]:
        merged = dict(self._base.pairs(prefix))
        for key, value in self._overlay.items():
            if not key.startswith(prefix):
                continue
            if value is _REMOVED:
                merged.pop(key, None)
            else:
                merged[key] = value
        return sorted(merged.items(), key=itemgetter(0))

    def update(self, ops: Iterable[WriteOp]) -> None:
        for op in ops:
            self._overlay[op.key] = _REMOVED if op.is_removal else op.value

    def mirror(self) -> _MirrorKvStore:
        return _MirrorKvStore(self)

    def to_ops(self) -> list[WriteOp]:
        """The recorded writes, ready to apply to the base store."""
        return [
            WriteOp.delete(k) if v is _REMOVED else WriteOp.put(k, v)
            for k, v in self._overlay.items()
        ]


def _check_id(contract_id: str) -> str:
    if not contract_id or "-" in contract_id:
        raise ValueError(f"invalid contract id: {contract_id!r}")
    return contract_id


def _contract_key(contract_id: str) -> str:
    return f"CON-{_check_id(contract_id)}"


def _local_prefix(contract_id: str) -> str:
    return f"CLC-{_check_id(contract_id)}-"


def _root_key(contract_id: str) -> str:
    return _local_prefix(contract_id) + "RT"


def _height_key(contract_id: str) -> str:
    return _local_prefix(contract_id) + "HGT"


def _rollback_key(contract_id: str, height: int) -> str:
    return _local_prefix(contract_id) + f"RLK-{height:016x}"


def _scalar_prefix(contract_id: str) -> str:
    return _local_prefix(contract_id) + "S-"


def _value_key(contract_id: str, locator: ZkDataLocator, is_scalar: bool) -> str:
    kind = "S" if is_scalar else "N"
    return _local_prefix(contract_id) + f"{kind}-{locator}"


def _aux_key(contract_id: str, locator: ZkDataLocator, index: int) -> str:
    return _local_prefix(contract_id) + f"T-{locator}-{index:x}"


def _aux_offset(layers: int) -> int:
    return ((1 << (2 * layers)) - 1) // 3


def _locator_of_key(key: str) -> ZkDataLocator:
    text = key.split("-")[3]
    return ZkDataLocator() if text == "" else ZkDataLocator.parse(text)


class StateManager:
    """Reads and writes contract states stored in a key-value store."""

    def __init__(self, hasher: ZkHasher) -> None:
        self.hasher = hasher
        self._defaults: dict[ZkStateModel, ZkScalar] = {}

    def _default(self, model: ZkStateModel) -> ZkScalar:
        if model not in self._defaults:
            self._defaults[model] = model.compress_default(self.hasher)
        return self._defaults[model]

    def register_contract(
        self, db: KvStore, contract_id: str, state_model: ZkStateModel
    ) -> ZkContract:
        """Store an empty contract with the given state model."""
        contract = ZkContract(
            initial_state=ZkCompressedState(self._default(state_model), 0),
            state_model=state_model,
        )
        db.update([WriteOp.put(_contract_key(contract_id), contract)])
        return contract

    def type_of(self, db: KvStore, contract_id: str) -> ZkStateModel:
        contract = db.get(_contract_key(contract_id))
        if contract is None:
            raise ContractNotFoundError()
        return contract.state_model

    def root(self, db: KvStore, contract_id: str) -> ZkCompressedState:
        stored = db.get(_root_key(contract_id))
        if stored is not None:
            return stored
        return ZkCompressedState(self._default(self.type_of(db, contract_id)), 0)

    def height_of(self, db: KvStore, contract_id: str) -> int:
        stored = db.get(_height_key(contract_id))
        return 0 if stored is None else stored

    def get_data(
        self, db: KvStore, contract_id: str, locator: ZkDataLocator
    ) -> ZkScalar:
        """The value at ``locator``: a scalar or the hash of a sub-state."""
        sub_type = self.type_of(db, contract_id).locate(locator)
        is_scalar = isinstance(sub_type, ScalarModel)
        stored = db.get(_value_key(contract_id, locator, is_scalar))
        return self._default(sub_type) if stored is None else stored

    def _node(
        self,
        db: KvStore,
        contract_id: str,
        tree_loc: ZkDataLocator,
        at_leaves: bool,
        aux_index: int,
        leaf_index: int,
        default: ZkScalar,
    ) -> ZkScalar:
        if at_leaves:
            return self.get_data(db, contract_id, tree_loc.index(leaf_index))
        stored = db.get(_aux_key(contract_id, tree_loc, aux_index))
        return default if stored is None else stored

    def _update_tree(
        self,
        db: KvStore,
        contract_id: str,
        tree_loc: ZkDataLocator,
        tree_type: ListModel,
        leaf_index: int,
        value: ZkScalar,
        ops: list[WriteOp],
    ) -> ZkScalar:
        index = leaf_index
        default = self._default(tree_type.item_type)
        top = tree_type.log4_size - 1
        for layer in reversed(range(tree_type.log4_size)):
            aux_offset = _aux_offset(layer + 1)
            start = index - index % 4
            children = [
                value
                if i == index
                else self._node(
                    db, contract_id, tree_loc, layer == top, aux_offset + i, i, default
                )
                for i in range(start, start + 4)
            ]
            value = self.hasher.hash(children)
            default = self.hasher.hash([default] * 4)
            index //= 4
            if layer > 0:
                key = _aux_key(contract_id, tree_loc, _aux_offset(layer) + index)
                ops.append(
                    WriteOp.delete(key) if value == default else WriteOp.put(key, value)
                )
        return value

    def set_data(
        self,
        db: KvStore,
        contract_id: str,
        locator: ZkDataLocator,
        value: ZkScalar,
    ) -> tuple[ZkScalar, int]:
        """Set a scalar and rehash its ancestors.

        Returns the new root hash and the change in the count of non-zero scalars.
        """
        model = self.type_of(db, contract_id)
        if not isinstance(model.locate(locator), ScalarModel):
            raise NonScalarLocatorError()

        prev_is_zero = self.get_data(db, contract_id, locator).is_zero()
        size_change = 0
        ops: list[WriteOp] = []
        scalar_key = _value_key(contract_id, locator, True)
        if value.is_zero():
            if not prev_is_zero:
                size_change = -1
            ops.append(WriteOp.delete(scalar_key))
        else:
            if prev_is_zero:
                size_change = 1
            ops.append(WriteOp.put(scalar_key, value))

        path = list(locator.path)
        while path:
            child = path.pop()
            parent = ZkDataLocator(tuple(path))
            parent_type = model.locate(parent)
            if isinstance(parent_type, ListModel):
                value = self._update_tree(
                    db, contract_id, parent, parent_type, child, value, ops
                )
            elif isinstance(parent_type, StructModel):
                fields = [
                    value if i == child else self.get_data(db, contract_id, parent.index(i))
                    for i in range(len(parent_type.field_types))
                ]
                value = self.hasher.hash(fields)
            else:
                raise StateManagerError("a scalar has no children")
            key = _value_key(contract_id, parent, False)
            ops.append(
                WriteOp.delete(key)
                if value == self._default(parent_type)
                else WriteOp.put(key, value)
            )

        db.update(ops)
        return value, size_change

    def update_contract(
        self, db: KvStore, contract_id: str, patch: ZkDeltaPairs
    ) -> None:
        """Apply a patch as a new height, keeping a rollback for it."""
        fork = db.mirror()
        root = self.root(fork, contract_id)
        height = self.height_of(fork, contract_id)
        state_hash, state_size = root.state_hash, root.state_size
        rollback = ZkDeltaPairs()
        for loc, value in patch.items():
            rollback[loc] = self.get_data(fork, contract_id, loc)
            state_hash, change = self.set_data(
                fork, contract_id, loc, ZkScalar(0) if value is None else value
            )
            state_size += change
        ops = fork.to_ops()
        ops.append(
            WriteOp.put(_root_key(contract_id), ZkCompressedState(state_hash, state_size))
        )
        ops.append(WriteOp.put(_rollback_key(contract_id, height), rollback))
        ops.append(WriteOp.put(_height_key(contract_id), height + 1))
        if height >= MAX_ROLLBACKS:
            ops.append(WriteOp.delete(_rollback_key(contract_id, height - MAX_ROLLBACKS)))
        db.update(ops)

    def rollback_of(
        self, db: KvStore, contract_id: str, away: int
    ) -> ZkDeltaPairs | None:
        """The patch that undoes the change made ``away`` heights ago."""
        height = self.height_of(db, contract_id)
        if away > height:
            return None
        stored = db.get(_rollback_key(contract_id, height - away))
        return None if stored is None else ZkDeltaPairs(stored)

    def rollback_contract(
        self, db: KvStore, contract_id: str
    ) -> ZkCompressedState | None:
        """Undo the latest height; ``None`` if no rollback is available."""
        root = self.root(db, contract_id)
        height = self.height_of(db, contract_id)
        rollback_key = _rollback_key(contract_id, height)
        patch = self.rollback_of(db, contract_id, 1)
        if patch is None:
            return None
        state_hash, state_size = root.state_hash, root.state_size
        for loc, value in patch.items():
            state_hash, change = self.set_data(
                db, contract_id, loc, ZkScalar(0) if value is None else value
            )
            state_size += change
        root = ZkCompressedState(state_hash, state_size)
        db.update(
            [
                WriteOp.delete(rollback_key),
                WriteOp.put(_root_key(contract_id), root),
                WriteOp.put(_height_key(contract_id), height - 1),
            ]
        )
        return root

    def delta_of(
        self, db: KvStore, contract_id: str, away: int
    ) -> ZkDeltaPairs | None:
        """Current values of everything changed in the last ``away`` heights."""
        delta = ZkDeltaPairs()
        for i in range(away):
            rollback = self.rollback_of(db, contract_id, i + 1)
            if rollback is None:
                return None
            for loc in rollback:
                delta[loc] = self.get_data(db, contract_id, loc)
        return delta

    def get_full_state(self, db: KvStore, contract_id: str) -> ZkState:
        """All non-default scalars with the stored rollbacks, newest first."""
        data = ZkDataPairs(
            (_locator_of_key(key), value)
            for key, value in db.pairs(_scalar_prefix(contract_id))
        )
        rollbacks: list[ZkDeltaPairs] = []
        height = self.height_of(db, contract_id)
        for i in range(min(MAX_ROLLBACKS, height)):
            stored = db.get(_rollback_key(contract_id, height - i - 1))
            if stored is None:
                break
            rollbacks.append(ZkDeltaPairs(stored))
        return ZkState(data, rollbacks)

    def reset_contract(
        self, db: KvStore, contract_id: str, height: int, state: ZkState
    ) -> tuple[ZkCompressedState, list[ZkCompressedState]]:
        """Replace a contract's state; returns the final root and the root after each rollback."""
        contract_type = self.type_of(db, contract_id)
        db.update(
            [WriteOp.delete(key) for key, _ in db.pairs(_local_prefix(contract_id))]
        )

        state_hash = self._default(contract_type)
        state_size = 0
        for loc, value in state.data.items():
            state_hash, change = self.set_data(db, contract_id, loc, value)
            state_size += change
        db.update(
            [
                WriteOp.put(
                    _root_key(contract_id), ZkCompressedState(state_hash, state_size)
                ),
                WriteOp.put(_height_key(contract_id), height),
            ]
        )

        root = self.root(db, contract_id)
        results: list[ZkCompressedState] = []
        for i, rollback in enumerate(state.rollbacks):
            state_hash, state_size = root.state_hash, root.state_size
            for loc, value in rollback.items():
                state_hash, change = self.set_data(
                    db, contract_id, loc, ZkScalar(0) if value is None else value
                )
                state_size += change
            root = ZkCompressedState(state_hash, state_size)
            db.update(
                [
                    WriteOp.put(
                        _rollback_key(contract_id, height - 1 - i), ZkDeltaPairs(rollback)
                    )
                ]
            )
            results.append(root)
        return root, results

    def delete_contract(self, db: KvStore, contract_id: str) -> None:
        """Remove all stored state of a contract, keeping its definition."""
        db.update(
            [WriteOp.delete(key) for key, _ in db.pairs(_local_prefix(contract_id))]
        )

    def prove(
        self, db: KvStore, contract_id: str, tree_loc: ZkDataLocator, index: int
    ) -> list[tuple[ZkScalar, ZkScalar, ZkScalar]]:
        """Sibling hashes from a list item up to the list's root."""
        tree_type = self.type_of(db, contract_id).locate(tree_loc)
        if not isinstance(tree_type, ListModel):
            raise NonTreeLocatorError()
        default = self._default(tree_type.item_type)
        top = tree_type.log4_size - 1
        proof = []
        for layer in reversed(range(tree_type.log4_size)):
            aux_offset = _aux_offset(layer + 1)
            start = index - index % 4
            part = tuple(
                self._node(
                    db, contract_id, tree_loc, layer == top, aux_offset + i, i, default
                )
                for i in range(start, start + 4)
                if i != index
            )
            index //= 4
            default = self.hasher.hash([default] * 4)
            proof.append(part)
        return proof

    def get_mpn_account(
        self, db: KvStore, contract_id: str, index: int
    ) -> MpnAccount:
        cells = [
            self.get_data(db, contract_id, ZkDataLocator((index, i))) for i in range(4)
        ]
        return MpnAccount(
            nonce=cells[0].to_u64(),
            address=(cells[1], cells[2]),
            balance=cells[3].to_u64(),
        )

    def get_mpn_accounts(
        self, db: KvStore, contract_id: str, page: int, page_size: int
    ) -> list[tuple[int, MpnAccount]]:
        """One page of the accounts that hold any non-default value, by index."""
        indices = sorted(
            {
                _locator_of_key(key).path[0]
                for key, _ in db.pairs(_scalar_prefix(contract_id))
            }
        )
        start = page * page_size
        return [
            (ind, self.get_mpn_account(db, contract_id, ind))
            for ind in indices[start : start + page_size]
        ]

    def set_mpn_account(
        self, db: KvStore, contract_id: str, index: int, account: MpnAccount
    ) -> int:
        """Write an account; returns the change in the count of non-zero scalars."""
        values = [
            ZkScalar(account.nonce),
            account.address[0],
            account.address[1],
            ZkScalar(account.balance),
        ]
        return sum(
            self.set_data(db, contract_id, ZkDataLocator((index, i)), value)[1]
            for i, value in enumerate(values)
        )


class ZkStateBuilder:
    """Builds a single contract state in memory."""

    def __init__(self, hasher: ZkHasher, state_model: ZkStateModel) -> None:
        self._manager = StateManager(hasher)
        self._db = RamKvStore()
        self._contract_id = ZERO_CONTRACT_ID
        self._manager.register_contract(self._db, self._contract_id, state_model)

    def batch_set(self, delta: ZkDeltaPairs) -> None:
        self._manager.update_contract(self._db, self._contract_id, delta)

    def get(self, locator: ZkDataLocator) -> ZkScalar:
        return self._manager.get_data(self._db, self._contract_id, locator)

    def compress(self) -> ZkCompressedState:
        return self._manager.root(self._db, self._contract_id)

    def prove(
        self, tree_loc: ZkDataLocator, index: int
    ) -> list[tuple[ZkScalar, ZkScalar, ZkScalar]]:
        return self._manager.prove(self._db, self._contract_id, tree_loc, index)


def compress_state(
    model: ZkStateModel, hasher: ZkHasher, data: ZkDataPairs
) -> ZkCompressedState:
    """The compressed form of a state given by its non-default values."""
    builder = ZkStateBuilder(hasher, model)
    builder.batch_set(data.as_delta())
    return builder.compress()