"""Pools of transactions waiting to be included in a block."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TransactionStats:
    """When a transaction was first seen, in seconds since the epoch."""

    first_seen: int


@dataclass
class Mempool:
    """Regular transactions, MPN transactions and MPN payments."""

    tx: dict[Any, TransactionStats] = field(default_factory=dict)
    zk: dict[Any, TransactionStats] = field(default_factory=dict)
    tx_zk: dict[Any, TransactionStats] = field(default_factory=dict)

    def expire(self, now: int, max_time_alive: int) -> int:
        """Drop entries older than ``max_time_alive`` seconds; returns how many were dropped."""
        removed = 0
        for pool in (self.tx, self.tx_zk, self.zk):
            stale = [tx for tx, stats in pool.items() if now - stats.first_seen > max_time_alive]
            for tx in stale:
                del pool[tx]
            removed += len(stale)
        return removed