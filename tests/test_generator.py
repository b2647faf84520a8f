"""Tests for random password generation."""
import string

import pytest

from keysafe.vault.generator import SYMBOLS, charset, generate_password


class TestCharset:

    def test_all_classes_in_order(self):
        assert charset() == (
            string.ascii_uppercase + string.ascii_lowercase + string.digits + SYMBOLS
        )

    def test_all_disabled_falls_back_to_lowercase(self):
        assert charset(False, False, False, False) == string.ascii_lowercase


class TestGeneratePassword:

    def test_default_length(self):
        assert len(generate_password()) == 16

    @pytest.mark.parametrize("length", [1, 8, 32, 128])
    def test_requested_length(self, length):
        assert len(generate_password(length)) == length

    def test_zero_length_is_empty(self):
        assert generate_password(0) == ""

    def test_negative_length_rejected(self):
        with pytest.raises(ValueError):
            generate_password(-1)

    def test_lowercase_only(self):
        """Test disabling the other classes yields lowercase letters only."""
        pwd = generate_password(
            64, uppercase=False, lowercase=True, numbers=False, symbols=False,
        )
        assert len(pwd) == 64
        assert set(pwd) <= set(string.ascii_lowercase)

    def test_all_disabled_still_generates(self):
        pwd = generate_password(
            40, uppercase=False, lowercase=False, numbers=False, symbols=False,
        )
        assert len(pwd) == 40
        assert set(pwd) <= set(string.ascii_lowercase)

    def test_digits_only(self):
        pwd = generate_password(
            50, uppercase=False, lowercase=False, numbers=True, symbols=False,
        )
        assert pwd.isdigit()

    def test_output_stays_within_alphabet(self):
        pwd = generate_password(500)
        assert set(pwd) <= set(charset())

    def test_passwords_differ(self):
        assert len({generate_password(24) for _ in range(20)}) == 20
