"""PII utilities for LGPD compliance — masking of CPFs in names and documents."""

from __future__ import annotations

import re

# MEI company names end with the owner's CPF: "JOAO SILVA 12345678901"
_TRAILING_CPF_RE = re.compile(r"(?<=\D)(\d{5})(\d{3})(\d{3})$")

MASK = "***"


def mask_name(name: str) -> str:
    """Mask a CPF appended to the end of a person or MEI company name.

    Only a trailing run of exactly 11 digits that follows some other
    character is touched, so a value made of digits alone is left as is.
    The first five digits are dropped and the remaining six are kept split
    by asterisks::

        >>> mask_name("JOAO SILVA 12345678901")
        'JOAO SILVA ***678***901***'

    A masked result never ends with a digit, so masking twice is a no-op.
    """
    return _TRAILING_CPF_RE.sub(rf"{MASK}\2{MASK}\3{MASK}", name.strip())


def mask_document(value: str) -> str:
    """Replace a CPF/CNPJ field entirely by asterisks of the same length."""
    return "*" * len(value)
