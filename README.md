# zknode

Building blocks of a peer-to-peer chain node, in pure Python with no
third-party dependencies: a prime-field scalar type, contract state models,
sparse quaternary Merkle-tree state storage with rollbacks and membership
proofs, the Poseidon hash, and the bookkeeping a node keeps about its peers,
its firewall and its mempool.

## Modules

- `zknode.scalar`: `ZkScalar` is an immutable element of the field modulo
  `MODULUS` (the BLS12-381 scalar field). It supports `+`, `-`, `*`, `**` and
  negation. `from_bytes_le` reduces little-endian bytes into the field,
  `to_bytes_le` gives the 32-byte form, and `to_u64` raises
  `ScalarBiggerThanU64Error` for values above 2**64 - 1.
- `zknode.model`: state shapes `ScalarModel`, `StructModel` and
  `ListModel` (a list of `4 ** log4_size` items). Each has `is_valid`,
  `locate` and `compress_default`. It also holds the abstract `ZkHasher`
  (`max_arity` and `hash`), `ZkDataLocator` (a path of indices, written as
  hexadecimal numbers joined by underscores), the dict types `ZkDataPairs` and
  `ZkDeltaPairs`, `ZkState` (`apply_delta`, `push_delta`) and
  `ZkCompressedState` (a root hash and a count of non-zero scalars).
- `zknode.poseidon`: `read_constants`, `parse_params` and `load_params`
  read Poseidon parameter files. `poseidon(values, params)` hashes, and
  `PoseidonHasher` is a `ZkHasher` that picks the parameters by width.
- `zknode.state`: `RamKvStore` is an in-memory key-value store with
  `get`, `pairs`, `update` and `mirror`, and `WriteOp` is a single write to
  it. `StateManager` keeps contract states in such a store. Besides reading
  and writing single values (`get_data`, `set_data`), it offers:
  - whole-patch updates at a new height, with the last five heights kept for
    rollback (`update_contract`, `rollback_contract`, `rollback_of`,
    `delta_of`);
  - export and import of a full state (`get_full_state`, `reset_contract`)
    and removal of stored state (`delete_contract`);
  - Merkle membership proofs (`prove`);
  - MPN account access (`get_mpn_account`, `get_mpn_accounts`,
    `set_mpn_account`).

  `ZkStateBuilder` and `compress_state` compute a state's root in memory.
  Errors derive from `StateManagerError`: `ContractNotFoundError`,
  `NonScalarLocatorError` and `NonTreeLocatorError`.
- `zknode.utils`: `local_timestamp()` and `median(values)`. For an
  even-length input, `median` returns the upper of the two middle values.
- `zknode.firewall`: `Firewall` limits the requests per minute and the
  traffic per 15 minutes from each IP. Loopback clients are always let
  through.
- `zknode.peers`: `PeerAddress`, `Peer` and `PeerManager`. The manager
  tracks candidates, connected peers and punished IPs, and picks random peers
  or candidates.
- `zknode.mempool`: `Mempool` holds pools of pending transactions with
  their `TransactionStats`. `expire` drops stale entries.
- `zknode.context`: `NodeOptions`, `Puzzle`, `NodeContext` and the
  `NodeError` family. The family covers `WrongNetworkError`, `NoWalletError`,
  `NoCurrentlyMiningBlockError`, `HandshakeClientMismatchError`,
  `NodeIsClientOnlyError`, `StatesOutdatedError`, `InputError` and
  `InvalidSignatureHeaderError`. `NodeContext` covers:
  - network time (`network_timestamp`);
  - peer punishment (`punish_bad_behavior`, `punish_unresponsive`);
  - periodic cleanup (`refresh`);
  - this node's own peer entry (`get_info`);
  - miner puzzles (`get_puzzle`).

## Example

```python
from zknode.model import ListModel, ScalarModel, ZkDataLocator, ZkDeltaPairs, ZkHasher
from zknode.scalar import ZkScalar
from zknode.state import RamKvStore, StateManager


class SumHasher(ZkHasher):
    max_arity = 16

    def hash(self, values):
        return sum(values, ZkScalar(0))


manager = StateManager(SumHasher())
db = RamKvStore()
manager.register_contract(db, "c0", ListModel(2, ScalarModel()))

manager.update_contract(db, "c0", ZkDeltaPairs({ZkDataLocator((5,)): ZkScalar(7)}))
root = manager.root(db, "c0")
print(root.state_hash, root.state_size)   # 7 1
print(manager.height_of(db, "c0"))        # 1

undone = manager.rollback_contract(db, "c0")
print(undone.state_hash, undone.state_size)  # 0 0

print(ZkDataLocator.parse("1_a").index(3))   # 1_a_3
```

To hash with Poseidon instead, load a directory that holds the files
`poseidon_params_n255_t2_alpha5_M128.txt` through
`poseidon_params_n255_t17_alpha5_M128.txt`:

```python
from zknode.poseidon import PoseidonHasher, load_params

hasher = PoseidonHasher(load_params("path/to/params"))
```

## What this package does not do

- It ships no Poseidon parameter files. You supply them yourself.
- It contains no blockchain. `NodeContext` works with any object that has
  the methods of its `Blockchain` protocol, such as `get_height`,
  `get_power`, `draft_block` and `pow_key`.
- It has no HTTP server, no request handlers, no network client, no
  periodic peer, clock, block, state or mempool synchronisation, and no
  command-line program. It keeps a node's state and rules, and it has no
  way to run a node on a network.