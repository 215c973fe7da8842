import pytest

from unikern.rand import fast_random, hardware_random, standard_random


def test_standard_u64_values_fit_and_format():
    values = [standard_random(64) for _ in range(10)]
    assert all(0 <= v < 2**64 for v in values)
    assert all(len(f"0x{v:016x}") == 18 for v in values)


def test_hardware_u64_values_fit_and_format():
    values = [hardware_random(64) for _ in range(10)]
    assert all(0 <= v < 2**64 for v in values)
    assert all(len(f"0x{v:016x}") == 18 for v in values)


def test_fast_u64_values_fit_and_format():
    values = [fast_random(64) for _ in range(10)]
    assert all(0 <= v < 2**64 for v in values)
    assert all(len(f"0x{v:016x}") == 18 for v in values)


def test_values_vary():
    assert len({standard_random(64) for _ in range(10)}) > 1
    assert len({hardware_random(64) for _ in range(10)}) > 1
    assert len({fast_random(64) for _ in range(10)}) > 1


def test_default_is_64_bits():
    assert all(0 <= standard_random() < 2**64 for _ in range(10))
    assert all(0 <= hardware_random() < 2**64 for _ in range(10))
    assert all(0 <= fast_random() < 2**64 for _ in range(10))


def test_small_widths():
    assert all(0 <= standard_random(3) < 8 for _ in range(50))
    assert all(0 <= hardware_random(3) < 8 for _ in range(50))
    assert all(0 <= fast_random(3) < 8 for _ in range(50))
    assert standard_random(0) == 0
    assert hardware_random(0) == 0
    assert fast_random(0) == 0


def test_standard_negative_bits_rejected():
    with pytest.raises(ValueError):
        standard_random(-1)


def test_hardware_negative_bits_rejected():
    with pytest.raises(ValueError):
        hardware_random(-1)


def test_fast_negative_bits_rejected():
    with pytest.raises(ValueError):
        fast_random(-1)