from unittest import mock

import pytest

from crashscope.randutil import random_float


def test_random_float_in_range():
    for _ in range(100_000):
        n = random_float()
        assert 0.0 <= n < 1.0


@pytest.mark.parametrize(
    "data, want",
    [
        (b"\x00" * 8, 0.0),
        (b"\x00\x00\x00\x00\x00\x00\x10\x00", 0.5),
        (b"\x00\x00\x00\x00\x00\x00\x20\x00", 0.0),
        (b"\xff" * 8, (2**53 - 1) / 2**53),
    ],
)
def test_random_float_uses_low_53_bits(data, want):
    with mock.patch("os.urandom", return_value=data):
        assert random_float() == want