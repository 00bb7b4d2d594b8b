"""Peer addresses and the bookkeeping of peers, candidates and punishments."""

from __future__ import annotations

import random
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Any, Iterable, Union, ValuesView

IpAddress = Union[IPv4Address, IPv6Address]


@dataclass(frozen=True)
class PeerAddress:
    """An IP address and port of a node."""

    host: IpAddress
    port: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", ip_address(self.host))
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"invalid port: {self.port}")

    @property
    def ip(self) -> IpAddress:
        return self.host

    @classmethod
    def parse(cls, text: str) -> PeerAddress:
        """Parse ``host:port`` or ``[host]:port``."""
        host, sep, port = text.rpartition(":")
        if not sep or not host:
            raise ValueError(f"invalid peer address: {text!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        try:
            return cls(ip_address(host), int(port))
        except ValueError as exc:
            raise ValueError(f"invalid peer address: {text!r}") from exc

    def __str__(self) -> str:
        if self.host.version == 6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Peer:
    """A known node with its chain height and power."""

    address: PeerAddress
    height: int
    power: int
    pub_key: Any = None


@dataclass
class _Candidate:
    address: PeerAddress
    candidated_since: int


class PeerManager:
    """Tracks connected peers, candidate peers and punished addresses."""

    def __init__(
        self,
        self_addr: PeerAddress | None,
        bootstrap: Iterable[PeerAddress],
        now: int,
        candidate_remove_threshold: int,
        rng: random.Random | None = None,
    ) -> None:
        self.candidate_remove_threshold = candidate_remove_threshold
        self.self_addr = self_addr
        self._rng = rng or random.Random()
        self._candidates: dict[IpAddress, _Candidate] = {
            b.ip: _Candidate(b, now) for b in bootstrap
        }
        self._punishments: dict[IpAddress, int] = {}
        self._peers: dict[IpAddress, Peer] = {}

    def refresh(self, now: int) -> None:
        """Lift expired punishments and forget stale candidates."""
        self._punishments = {
            ip: till for ip, till in self._punishments.items() if now <= till
        }
        self._candidates = {
            ip: c
            for ip, c in self._candidates.items()
            if now - c.candidated_since < self.candidate_remove_threshold
        }

    def is_ip_punished(self, now: int, ip: object) -> bool:
        till = self._punishments.get(ip_address(ip))
        return till is not None and now < till

    def punish_ip_for(self, now: int, ip: object, secs: int) -> None:
        """Drop an address from peers and candidates and refuse it for ``secs`` seconds."""
        ip = ip_address(ip)
        self._candidates.pop(ip, None)
        self._peers.pop(ip, None)
        self._punishments[ip] = now + secs

    def mark_as_candidate(self, now: int, addr: PeerAddress) -> None:
        """Demote a peer back to a candidate."""
        if self._peers.pop(addr.ip, None) is not None:
            self._candidates[addr.ip] = _Candidate(addr, now)

    def get_peers(self) -> ValuesView[Peer]:
        return self._peers.values()

    def random_candidates(self, count: int) -> list[PeerAddress]:
        chosen = self._rng.sample(list(self._candidates.values()), min(count, len(self._candidates)))
        return [c.address for c in chosen]

    def random_peers(self, count: int) -> list[Peer]:
        return self._rng.sample(list(self._peers.values()), min(count, len(self._peers)))

    def add_candidate(self, now: int, addr: PeerAddress) -> None:
        if self.self_addr == addr:
            return
        if addr.ip not in self._peers:
            self._candidates[addr.ip] = _Candidate(addr, now)

    def add_peer(self, peer: Peer) -> None:
        if self.self_addr == peer.address:
            return
        self._candidates.pop(peer.address.ip, None)
        self._peers[peer.address.ip] = peer