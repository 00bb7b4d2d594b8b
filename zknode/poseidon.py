"""The Poseidon hash over the scalar field, driven by parameter files."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Iterator, Sequence

from .model import ZkHasher
from .scalar import MODULUS, ZkScalar

MAX_ARITY = 16
PARAM_FILE_TEMPLATE = "poseidon_params_n255_t{width}_alpha5_M128.txt"

_ROUND_CONSTANTS_LINE = 3
_MDS_LINE = 15


@dataclass
class PoseidonParams:
    """Round counts and constants for one state width."""

    capacity: int
    full_rounds: int
    partial_rounds: int
    round_constants: list[ZkScalar]
    mds_constants: list[list[ZkScalar]]

    @cached_property
    def _round_ints(self) -> tuple[int, ...]:
        return tuple(int(c) for c in self.round_constants)

    @cached_property
    def _mds_ints(self) -> tuple[tuple[int, ...], ...]:
        return tuple(tuple(int(c) for c in row) for row in self.mds_constants)


def read_constants(line: str) -> list[ZkScalar]:
    """Parse a bracketed, comma-separated list of hexadecimal constants."""
    cleaned = "".join(c for c in line.replace("0x", "") if c not in "'[] ")
    return [ZkScalar(int(part, 16)) for part in cleaned.split(",")]


def parse_params(source: str) -> PoseidonParams:
    """Parse the text of one parameter file."""
    lines = source.splitlines()
    try:
        opts = [s.strip() for s in lines[0].split(",")]
        capacity = int(opts[1].split("=")[1])
        full_rounds = int(opts[4].split("=")[1])
        partial_rounds = int(opts[5].split("=")[1])
        round_constants = read_constants(lines[_ROUND_CONSTANTS_LINE])
        flat_mds = read_constants(lines[_MDS_LINE])
    except IndexError as exc:
        raise ValueError("malformed poseidon parameter file") from exc
    if capacity <= 0:
        raise ValueError("poseidon width must be positive")
    mds = [flat_mds[i : i + capacity] for i in range(0, len(flat_mds), capacity)]
    return PoseidonParams(capacity, full_rounds, partial_rounds, round_constants, mds)


def load_params(directory: str | Path) -> list[PoseidonParams]:
    """Load the parameters for widths 2 through ``MAX_ARITY + 1``."""
    base = Path(directory)
    return [
        parse_params((base / PARAM_FILE_TEMPLATE.format(width=width)).read_text())
        for width in range(2, MAX_ARITY + 2)
    ]


def _add_constants(state: list[int], constants: Iterator[int]) -> list[int]:
    return [(x + next(constants)) % MODULUS for x in state]


def _sbox(x: int) -> int:
    return pow(x, 5, MODULUS)


def _mix(state: list[int], mds: Sequence[Sequence[int]]) -> list[int]:
    return [sum(m * x for m, x in zip(row, state)) % MODULUS for row in mds]


def poseidon(values: Sequence[ZkScalar], params: PoseidonParams) -> ZkScalar:
    """Hash ``values`` with parameters whose width is ``len(values) + 1``."""
    values = list(values)
    width = len(values) + 1
    if params.capacity != width:
        raise ValueError(f"parameters for width {params.capacity} used with width {width}")
    half = params.full_rounds // 2
    needed = (2 * half + params.partial_rounds) * width
    mds = params._mds_ints
    if len(params._round_ints) < needed:
        raise ValueError("not enough round constants")
    if len(mds) != width or any(len(row) != width for row in mds):
        raise ValueError("MDS matrix does not match the state width")

    constants = iter(params._round_ints)
    # The first element holds the count of present elements, which is always zero.
    state = [0] + [int(v) for v in values]

    def full_round(s: list[int]) -> list[int]:
        return _mix([_sbox(x) for x in _add_constants(s, constants)], mds)

    def partial_round(s: list[int]) -> list[int]:
        s = _add_constants(s, constants)
        s[0] = _sbox(s[0])
        return _mix(s, mds)

    for _ in range(half):
        state = full_round(state)
    for _ in range(params.partial_rounds):
        state = partial_round(state)
    for _ in range(half):
        state = full_round(state)
    return ZkScalar(state[1])


class PoseidonHasher(ZkHasher):
    """Poseidon with one parameter set per supported arity."""

    def __init__(self, params: Sequence[PoseidonParams]) -> None:
        self._params = tuple(params)
        self.max_arity = len(self._params)

    def for_width(self, width: int) -> PoseidonParams:
        if not 2 <= width < len(self._params) + 2:
            raise ValueError(f"no poseidon parameters for width {width}")
        return self._params[width - 2]

    def hash(self, values: Sequence[ZkScalar]) -> ZkScalar:
        values = list(values)
        return poseidon(values, self.for_width(len(values) + 1))