"""Shared state of a running node and the errors its handlers raise."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .firewall import Firewall
from .mempool import Mempool
from .peers import Peer, PeerAddress, PeerManager
from .utils import local_timestamp

log = logging.getLogger(__name__)

PUZZLE_NONCE_OFFSET = 80
PUZZLE_NONCE_SIZE = 8


class NodeError(Exception):
    """Base class for errors raised while serving or running a node."""


class WrongNetworkError(NodeError):
    def __init__(self) -> None:
        super().__init__("node is on a different network")


class NoWalletError(NodeError):
    def __init__(self) -> None:
        super().__init__("node has no wallet")


class NoCurrentlyMiningBlockError(NodeError):
    def __init__(self) -> None:
        super().__init__("no block is currently being mined")


class HandshakeClientMismatchError(NodeError):
    def __init__(self) -> None:
        super().__init__("client and proposed peer have different addresses")


class NodeIsClientOnlyError(NodeError):
    def __init__(self) -> None:
        super().__init__("node is not exposed to the network")


class StatesOutdatedError(NodeError):
    def __init__(self) -> None:
        super().__init__("contract states are outdated")


class InputError(NodeError):
    def __init__(self, message: str = "invalid input") -> None:
        super().__init__(message)


class InvalidSignatureHeaderError(NodeError):
    def __init__(self) -> None:
        super().__init__("invalid signature header")


class Blockchain(Protocol):
    """What the node context needs from a blockchain."""

    def get_height(self) -> int: ...

    def get_power(self) -> int: ...

    def cleanup_mempool(self, pool: dict) -> None: ...

    def cleanup_mpn_transaction_mempool(self, pool: dict) -> None: ...

    def cleanup_mpn_payment_mempool(self, pool: dict) -> None: ...

    def draft_block(self, timestamp: int, mempool: dict, wallet: Any, check: bool) -> Any: ...

    def pow_key(self, number: int) -> bytes: ...


@dataclass
class NodeOptions:
    """Tunable timing, limits and punishments of a node."""

    tx_max_time_alive: int | None
    heartbeat_interval: float
    num_peers: int
    max_blocks_fetch: int
    outdated_heights_threshold: int
    default_punish: int
    no_response_punish: int
    invalid_data_punish: int
    incorrect_power_punish: int
    max_punish: int
    state_unavailable_ban_time: int
    candidate_remove_threshold: int


@dataclass(frozen=True)
class Puzzle:
    """Proof-of-work job handed to a miner; the nonce lives at ``offset`` in ``blob``."""

    key: str
    blob: str
    offset: int
    size: int
    target: Any


@dataclass
class NodeContext:
    """Everything a node's handlers and heartbeat share."""

    opts: NodeOptions
    network: str
    pub_key: Any
    blockchain: Blockchain
    peer_manager: PeerManager
    address: PeerAddress | None = None
    firewall: Firewall | None = None
    social_profiles: Any = None
    shutdown: bool = False
    outgoing: Any = None
    wallet: Any = None
    timestamp_offset: int = 0
    miner_puzzle: tuple[Any, Puzzle] | None = None
    mempool: Mempool = field(default_factory=Mempool)
    outdated_since: int | None = None
    banned_headers: dict[Any, int] = field(default_factory=dict)
    clock: Callable[[], int] = local_timestamp

    def local_timestamp(self) -> int:
        return self.clock()

    def network_timestamp(self) -> int:
        """Local time corrected by the offset agreed with the network."""
        return (self.local_timestamp() + self.timestamp_offset) & 0xFFFFFFFF

    def punish_bad_behavior(self, bad_peer: PeerAddress, secs: int, reason: str) -> None:
        log.warning("Peer %s is behaving bad! Reason: %s", bad_peer, reason)
        log.warning("Punishing %s for %s seconds...", bad_peer, secs)
        self.peer_manager.punish_ip_for(self.local_timestamp(), bad_peer.ip, secs)

    def punish_unresponsive(self, bad_peer: PeerAddress) -> None:
        log.warning("Peer %s is unresponsive!", bad_peer)
        log.warning("Moving peer %s to the candidate list!", bad_peer)
        self.peer_manager.mark_as_candidate(self.local_timestamp(), bad_peer)

    def get_info(self) -> Peer | None:
        """This node as a peer, or ``None`` if it is not exposed to the network."""
        height = self.blockchain.get_height()
        power = self.blockchain.get_power()
        if self.address is None:
            return None
        return Peer(self.address, height, power, self.pub_key)

    def refresh(self) -> None:
        """Expire punishments, bans, firewall counters and stale mempool entries."""
        now = self.local_timestamp()
        self.peer_manager.refresh(now)

        ban_time = self.opts.state_unavailable_ban_time
        for header in [h for h, at in self.banned_headers.items() if now - at > ban_time]:
            del self.banned_headers[header]

        if self.firewall is not None:
            self.firewall.refresh(now)

        self.blockchain.cleanup_mempool(self.mempool.tx)
        self.blockchain.cleanup_mpn_transaction_mempool(self.mempool.zk)
        self.blockchain.cleanup_mpn_payment_mempool(self.mempool.tx_zk)

        if self.opts.tx_max_time_alive is not None:
            self.mempool.expire(now, self.opts.tx_max_time_alive)

    def on_update(self) -> None:
        """Called whenever the chain is extended or rolled back."""
        self.outdated_since = None
        self.miner_puzzle = None

    def get_puzzle(self, wallet: Any) -> tuple[Any, Puzzle] | None:
        """Draft a block rewarding ``wallet`` and the puzzle a miner must solve for it."""
        draft = self.blockchain.draft_block(self.network_timestamp(), self.mempool.tx, wallet, True)
        if draft is None:
            return None
        header = draft.block.header
        puzzle = Puzzle(
            key=bytes(self.blockchain.pow_key(header.number)).hex(),
            blob=bytes(header).hex(),
            offset=PUZZLE_NONCE_OFFSET,
            size=PUZZLE_NONCE_SIZE,
            target=header.proof_of_work.target,
        )
        return draft, puzzle