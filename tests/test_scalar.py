import pytest

from zknode.scalar import MODULUS, U64_MAX, ScalarBiggerThanU64Error, ZkScalar


def test_u64_conversion():
    assert ZkScalar(0).to_u64() == 0
    assert ZkScalar(123).to_u64() == 123
    assert ZkScalar(U64_MAX).to_u64() == U64_MAX
    with pytest.raises(ScalarBiggerThanU64Error):
        (ZkScalar(U64_MAX) + ZkScalar(1)).to_u64()


def test_from_bytes_reduces_modulo():
    assert ZkScalar.from_bytes_le(MODULUS.to_bytes(32, "little")).is_zero()
    assert ZkScalar.from_bytes_le((MODULUS + 5).to_bytes(33, "little")) == ZkScalar(5)


@pytest.mark.parametrize("value", [0, 1, 123, U64_MAX, MODULUS - 1])
def test_bytes_round_trip(value):
    encoded = ZkScalar(value).to_bytes_le()
    assert len(encoded) == 32
    assert ZkScalar.from_bytes_le(encoded) == ZkScalar(value)


def test_small_value_bytes_layout():
    assert ZkScalar(123).to_bytes_le() == bytes([123]) + bytes(31)


def test_field_wraps_around():
    assert ZkScalar(MODULUS - 1) + ZkScalar(1) == ZkScalar(0)
    assert ZkScalar(2) - ZkScalar(3) == ZkScalar(MODULUS - 1)
    assert -ZkScalar(1) == ZkScalar(MODULUS - 1)
    assert ZkScalar(-1) == ZkScalar(MODULUS - 1)


def test_square_matches_multiplication():
    x = ZkScalar(MODULUS - 7)
    assert x.square() == x * x
    assert x ** 2 == x * x


def test_is_zero_and_bool():
    assert ZkScalar(0).is_zero()
    assert not ZkScalar(1).is_zero()
    assert not ZkScalar(MODULUS)
    assert int(ZkScalar(MODULUS + 9)) == 9


def test_too_large_bytes_raise():
    scalar = ZkScalar.from_bytes_le(b"\xff" * 8 + b"\x01")
    with pytest.raises(ScalarBiggerThanU64Error):
        scalar.to_u64()


def test_hash_consistent_with_equality():
    assert hash(ZkScalar(MODULUS + 3)) == hash(ZkScalar(3))
    assert {ZkScalar(3), ZkScalar(MODULUS + 3)} == {ZkScalar(3)}