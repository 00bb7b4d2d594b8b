"""Elements of the scalar field used by the zero-knowledge state machinery."""

from __future__ import annotations

import operator

MODULUS = 52435875175126190479447740508185965837690552500527637822603658699938581184513
U64_MAX = (1 << 64) - 1
SCALAR_BYTES = 32


class ScalarBiggerThanU64Error(ValueError):
    """Raised when a scalar does not fit into an unsigned 64-bit integer."""

    def __init__(self) -> None:
        super().__init__("scalar bigger than u64")


class ZkScalar:
    """An immutable element of the prime field modulo ``MODULUS``."""

    __slots__ = ("_value",)

    def __init__(self, value: int = 0) -> None:
        self._value = operator.index(value) % MODULUS

    @classmethod
    def from_bytes_le(cls, data: bytes) -> ZkScalar:
        """Interpret little-endian bytes as a number and reduce it into the field."""
        return cls(int.from_bytes(bytes(data), "little"))

    def to_bytes_le(self) -> bytes:
        """The canonical 32-byte little-endian representation."""
        return self._value.to_bytes(SCALAR_BYTES, "little")

    def to_u64(self) -> int:
        """The value as an unsigned 64-bit integer."""
        if self._value > U64_MAX:
            raise ScalarBiggerThanU64Error()
        return self._value

    def is_zero(self) -> bool:
        return self._value == 0

    def square(self) -> ZkScalar:
        return ZkScalar(self._value * self._value)

    @staticmethod
    def _coerce(other: object) -> int | None:
        if isinstance(other, ZkScalar):
            return other._value
        if isinstance(other, int):
            return other % MODULUS
        return None

    def __add__(self, other: object) -> ZkScalar:
        value = self._coerce(other)
        if value is None:
            return NotImplemented
        return ZkScalar(self._value + value)

    __radd__ = __add__

    def __sub__(self, other: object) -> ZkScalar:
        value = self._coerce(other)
        if value is None:
            return NotImplemented
        return ZkScalar(self._value - value)

    def __rsub__(self, other: object) -> ZkScalar:
        value = self._coerce(other)
        if value is None:
            return NotImplemented
        return ZkScalar(value - self._value)

    def __mul__(self, other: object) -> ZkScalar:
        value = self._coerce(other)
        if value is None:
            return NotImplemented
        return ZkScalar(self._value * value)

    __rmul__ = __mul__

    def __neg__(self) -> ZkScalar:
        return ZkScalar(-self._value)

    def __pow__(self, exponent: int) -> ZkScalar:
        return ZkScalar(pow(self._value, exponent, MODULUS))

    def __int__(self) -> int:
        return self._value

    def __bool__(self) -> bool:
        return self._value != 0

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ZkScalar):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"ZkScalar({self._value})"

    def __str__(self) -> str:
        return str(self._value)