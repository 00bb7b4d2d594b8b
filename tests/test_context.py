from ipaddress import ip_address
from types import SimpleNamespace

import pytest

from zknode.context import NodeContext, NodeError, NodeOptions, StatesOutdatedError
from zknode.firewall import Firewall
from zknode.mempool import TransactionStats
from zknode.peers import Peer, PeerAddress, PeerManager

ME = PeerAddress(ip_address("192.0.2.100"), 8765)
OTHER = PeerAddress(ip_address("192.0.2.1"), 8765)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeHeader:
    def __init__(self, number, target):
        self.number = number
        self.proof_of_work = SimpleNamespace(target=target)

    def __bytes__(self):
        return b"header"


class FakeChain:
    def __init__(self, draft=None, fail=False):
        self.height = 7
        self.power = 42
        self.draft = draft
        self.fail = fail
        self.cleaned = []
        self.draft_calls = []

    def get_height(self):
        if self.fail:
            raise StatesOutdatedError()
        return self.height

    def get_power(self):
        return self.power

    def cleanup_mempool(self, pool):
        self.cleaned.append(("tx", pool))

    def cleanup_mpn_transaction_mempool(self, pool):
        self.cleaned.append(("zk", pool))

    def cleanup_mpn_payment_mempool(self, pool):
        self.cleaned.append(("tx_zk", pool))

    def draft_block(self, timestamp, mempool, wallet, check):
        self.draft_calls.append((timestamp, wallet, check))
        return self.draft

    def pow_key(self, number):
        return b"\x01\x02"


def make_opts(**overrides):
    values = dict(
        tx_max_time_alive=None,
        heartbeat_interval=1.0,
        num_peers=8,
        max_blocks_fetch=16,
        outdated_heights_threshold=60,
        default_punish=30,
        no_response_punish=10,
        invalid_data_punish=60,
        incorrect_power_punish=60,
        max_punish=600,
        state_unavailable_ban_time=30,
        candidate_remove_threshold=600,
    )
    values.update(overrides)
    return NodeOptions(**values)


def make_context(chain=None, address=ME, now=1000, opts=None, **kwargs):
    clock = Clock(now)
    return NodeContext(
        opts=opts or make_opts(),
        network="testnet",
        pub_key=b"pub",
        blockchain=chain or FakeChain(),
        peer_manager=PeerManager(address, [], now, 600),
        address=address,
        clock=clock,
        **kwargs,
    ), clock


def test_network_timestamp_applies_offset():
    ctx, _ = make_context(timestamp_offset=-25)
    assert ctx.network_timestamp() - ctx.local_timestamp() == -25


def test_get_info_with_and_without_address():
    ctx, _ = make_context()
    assert ctx.get_info() == Peer(ME, 7, 42, b"pub")
    client_only, _ = make_context(address=None)
    assert client_only.get_info() is None


def test_get_info_propagates_chain_errors():
    ctx, _ = make_context(chain=FakeChain(fail=True))
    with pytest.raises(NodeError):
        ctx.get_info()


def test_punish_bad_behavior_punishes_ip():
    ctx, clock = make_context()
    ctx.peer_manager.add_peer(Peer(OTHER, 1, 1, None))
    ctx.punish_bad_behavior(OTHER, 50, "testing")
    assert list(ctx.peer_manager.get_peers()) == []
    assert ctx.peer_manager.is_ip_punished(clock.now + 49, OTHER.ip)
    assert not ctx.peer_manager.is_ip_punished(clock.now + 50, OTHER.ip)


def test_punish_unresponsive_demotes_peer():
    ctx, _ = make_context()
    ctx.peer_manager.add_peer(Peer(OTHER, 1, 1, None))
    ctx.punish_unresponsive(OTHER)
    assert list(ctx.peer_manager.get_peers()) == []
    assert ctx.peer_manager.random_candidates(5) == [OTHER]


def test_refresh_expires_banned_headers():
    ctx, clock = make_context()
    ctx.banned_headers["old"] = clock.now - 31
    ctx.banned_headers["fresh"] = clock.now - 30
    ctx.refresh()
    assert set(ctx.banned_headers) == {"fresh"}


def test_refresh_cleans_mempools_through_chain():
    chain = FakeChain()
    ctx, _ = make_context(chain=chain)
    ctx.refresh()
    assert [name for name, _ in chain.cleaned] == ["tx", "zk", "tx_zk"]
    assert chain.cleaned[0][1] is ctx.mempool.tx


def test_refresh_expires_mempool_only_when_configured():
    ctx, clock = make_context()
    ctx.mempool.tx["tx"] = TransactionStats(0)
    ctx.refresh()
    assert "tx" in ctx.mempool.tx

    limited, clock = make_context(opts=make_opts(tx_max_time_alive=10))
    limited.mempool.tx["old"] = TransactionStats(clock.now - 11)
    limited.mempool.zk["new"] = TransactionStats(clock.now)
    limited.refresh()
    assert limited.mempool.tx == {}
    assert set(limited.mempool.zk) == {"new"}


def test_refresh_resets_firewall():
    firewall = Firewall(0, 10**9)
    ctx, _ = make_context(firewall=firewall)
    client = ("203.0.113.9", 1)
    firewall.incoming_permitted(client)
    assert not firewall.incoming_permitted(client)
    ctx.refresh()
    assert firewall.incoming_permitted(client)


def test_on_update_clears_mining_state():
    ctx, _ = make_context(miner_puzzle=("draft", "puzzle"), outdated_since=5)
    ctx.on_update()
    assert ctx.miner_puzzle is None
    assert ctx.outdated_since is None


def test_get_puzzle_without_draft():
    ctx, _ = make_context()
    assert ctx.get_puzzle("wallet") is None


def test_get_puzzle_builds_puzzle_from_draft():
    header = FakeHeader(3, "target")
    draft = SimpleNamespace(block=SimpleNamespace(header=header))
    chain = FakeChain(draft=draft)
    ctx, _ = make_context(chain=chain, timestamp_offset=4)
    result = ctx.get_puzzle("wallet")
    assert result is not None
    got_draft, puzzle = result
    assert got_draft is draft
    assert puzzle.key == "0102"
    assert puzzle.blob == b"header".hex()
    assert (puzzle.offset, puzzle.size) == (80, 8)
    assert puzzle.target == "target"
    assert chain.draft_calls == [(ctx.network_timestamp(), "wallet", True)]