import pytest

from urlshort.errors import AppError, ErrorKind
from urlshort.ids import ALPHABET, MAX_CODE_LENGTH, generate_code


def test_default_length():
    assert len(generate_code()) == 7


@pytest.mark.parametrize("length", [1, 12, MAX_CODE_LENGTH])
def test_exact_length_and_alphabet(length):
    code = generate_code(length)
    assert len(code) == length
    assert set(code) <= set(ALPHABET)


def test_alphabet_is_url_safe():
    assert set(ALPHABET) == set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-")


def test_codes_differ():
    assert len({generate_code(10) for _ in range(50)}) == 50


@pytest.mark.parametrize("length", [0, -1, MAX_CODE_LENGTH + 1, "7", 3.5, None, True])
def test_rejects_bad_lengths(length):
    with pytest.raises(AppError) as info:
        generate_code(length)
    assert info.value.kind is ErrorKind.INVALID_ARGUMENT
