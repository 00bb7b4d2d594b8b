from zknode.mempool import Mempool, TransactionStats


def test_expire_drops_old_entries_in_every_pool():
    pool = Mempool()
    pool.tx["old-tx"] = TransactionStats(0)
    pool.tx["new-tx"] = TransactionStats(50)
    pool.zk["old-zk"] = TransactionStats(0)
    pool.tx_zk["old-pay"] = TransactionStats(0)
    pool.tx_zk["new-pay"] = TransactionStats(90)
    removed = pool.expire(100, 50)
    assert removed == 3
    assert set(pool.tx) == {"new-tx"}
    assert pool.zk == {}
    assert set(pool.tx_zk) == {"new-pay"}


def test_expire_keeps_entry_at_exact_age():
    pool = Mempool()
    pool.tx["tx"] = TransactionStats(10)
    assert pool.expire(20, 10) == 0
    assert pool.tx == {"tx": TransactionStats(10)}


def test_pools_are_independent_between_instances():
    first, second = Mempool(), Mempool()
    first.tx["tx"] = TransactionStats(1)
    assert second.tx == {}
    assert second.expire(100, 0) == 0