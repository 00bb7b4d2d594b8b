import pytest

from zknode.firewall import Firewall

CLIENT = ("203.0.113.5", 4000)
OTHER = ("203.0.113.6", 4000)


@pytest.mark.parametrize("host", ["127.0.0.1", "::1"])
def test_loopback_always_permitted(host):
    fw = Firewall(0, 0)
    fw.add_traffic(host, 10**12)
    assert all(fw.incoming_permitted((host, 1)) for _ in range(20))


def test_request_limit_is_exceeded_after_limit_plus_one():
    fw = Firewall(2, 10**9)
    results = [fw.incoming_permitted(CLIENT) for _ in range(5)]
    assert results == [True, True, True, False, False]


def test_other_clients_are_unaffected():
    fw = Firewall(0, 10**9)
    fw.incoming_permitted(CLIENT)
    assert not fw.incoming_permitted(CLIENT)
    assert fw.incoming_permitted(OTHER)


def test_request_counts_reset_only_after_window():
    fw = Firewall(0, 10**9)
    fw.incoming_permitted(CLIENT)
    assert not fw.incoming_permitted(CLIENT)
    fw.refresh(60)
    assert not fw.incoming_permitted(CLIENT)
    fw.refresh(61)
    assert fw.incoming_permitted(CLIENT)


def test_traffic_limit():
    fw = Firewall(100, 1000)
    fw.add_traffic(CLIENT[0], 1000)
    assert fw.incoming_permitted(CLIENT)
    fw.add_traffic(CLIENT[0], 1)
    assert not fw.incoming_permitted(CLIENT)


def test_traffic_resets_after_window():
    fw = Firewall(100, 10)
    fw.add_traffic(CLIENT[0], 11)
    fw.refresh(900)
    assert not fw.incoming_permitted(CLIENT)
    fw.refresh(901)
    assert fw.incoming_permitted(CLIENT)


def test_invalid_address_raises():
    fw = Firewall(1, 1)
    with pytest.raises(ValueError):
        fw.incoming_permitted(("not-an-ip", 1))