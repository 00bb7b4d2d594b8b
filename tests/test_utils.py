import time
from unittest import mock

import pytest

from zknode.utils import local_timestamp, median


def test_median_odd():
    assert median([5, 1, 4, 2, 3]) == 3


def test_median_even_picks_upper():
    assert median([4, 1, 3, 2]) == 3


def test_median_single_and_input_untouched():
    values = [9, 7, 8]
    assert median(values) == 8
    assert values == [9, 7, 8]
    assert median([42]) == 42


def test_median_empty():
    with pytest.raises(ValueError):
        median([])


def test_local_timestamp_truncates():
    with mock.patch("time.time", return_value=1650000000.7):
        assert local_timestamp() == 1650000000


def test_local_timestamp_tracks_clock():
    before = int(time.time())
    now = local_timestamp()
    after = int(time.time())
    assert before <= now <= after