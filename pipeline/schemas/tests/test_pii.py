"""Tests for privacy masking utilities."""

from __future__ import annotations

import pytest

from pii import MASK, mask_document, mask_name


class TestMaskName:
    def test_trailing_cpf_masked(self):
        assert mask_name("JOAO SILVA 12345678901") == "JOAO SILVA ***678***901***"

    def test_name_without_digits_unchanged(self):
        assert mask_name("MARIA DE SOUZA") == "MARIA DE SOUZA"

    def test_surrounding_whitespace_trimmed(self):
        assert mask_name("  JOAO SILVA 12345678901  ") == "JOAO SILVA ***678***901***"

    def test_digits_glued_to_name(self):
        """MEI company names often end with the owner's CPF without a space."""
        assert mask_name("PADARIA X12345678901") == "PADARIA X***678***901***"

    def test_longer_digit_run_not_masked(self):
        """Twelve trailing digits are not a CPF."""
        assert mask_name("EMPRESA 123456789012") == "EMPRESA 123456789012"

    def test_shorter_digit_run_not_masked(self):
        assert mask_name("LOJA 1234567890") == "LOJA 1234567890"

    def test_digits_in_the_middle_not_masked(self):
        assert mask_name("JOAO 12345678901 SILVA") == "JOAO 12345678901 SILVA"

    def test_name_of_digits_only_unchanged(self):
        """A bare CPF is not a name with a CPF appended."""
        assert mask_name("12345678901") == "12345678901"

    def test_empty_string(self):
        assert mask_name("") == ""

    @pytest.mark.parametrize(
        "value",
        [
            "JOAO SILVA 12345678901",
            "PADARIA X12345678901",
            "MARIA DE SOUZA",
            "12345678901",
            "  A 98765432100 ",
            "",
        ],
    )
    def test_idempotent(self, value):
        """Masking an already masked name changes nothing."""
        once = mask_name(value)
        assert mask_name(once) == once


class TestMaskDocument:
    def test_same_length(self):
        assert mask_document("12345678901") == "*" * 11

    def test_cnpj_length(self):
        assert mask_document("12345678000195") == "*" * 14

    def test_already_masked_cpf_field(self):
        """The origin publishes CPFs as ***456789**; the length is kept."""
        assert mask_document("***456789**") == "***********"

    def test_idempotent(self):
        assert mask_document(mask_document("123")) == "***"

    def test_mask_marker(self):
        assert MASK == "***"
