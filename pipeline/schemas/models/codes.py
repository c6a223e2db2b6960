"""Static code tables published in the Receita Federal CNPJ layout.

These codes are not shipped as lookup archives; they are fixed by the
layout document (``cnpj-metadados.pdf``). Unknown codes resolve to ``None``
and the code itself is kept on the record.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

SITUACAO_CADASTRAL: Mapping[int, str] = MappingProxyType({
    1: "NULA",
    2: "ATIVA",
    3: "SUSPENSA",
    4: "INAPTA",
    8: "BAIXADA",
})

MATRIZ_FILIAL: Mapping[int, str] = MappingProxyType({
    1: "MATRIZ",
    2: "FILIAL",
})

PORTE_EMPRESA: Mapping[int, str] = MappingProxyType({
    0: "NÃO INFORMADO",
    1: "MICRO EMPRESA",
    3: "EMPRESA DE PEQUENO PORTE",
    5: "DEMAIS",
})

IDENTIFICADOR_SOCIO: Mapping[int, str] = MappingProxyType({
    1: "PESSOA JURÍDICA",
    2: "PESSOA FÍSICA",
    3: "ESTRANGEIRO",
})

FAIXA_ETARIA: Mapping[int, str] = MappingProxyType({
    0: "Não se aplica",
    1: "0 a 12 anos",
    2: "13 a 20 anos",
    3: "21 a 30 anos",
    4: "31 a 40 anos",
    5: "41 a 50 anos",
    6: "51 a 60 anos",
    7: "61 a 70 anos",
    8: "71 a 80 anos",
    9: "Maiores de 80 anos",
})

# Simples Nacional / MEI election flag
OPCAO_FLAG: Mapping[str, bool] = MappingProxyType({
    "S": True,
    "N": False,
})


def describe(table: Mapping[int, str], code: Optional[int]) -> Optional[str]:
    """Return the label for *code* in *table*, or ``None`` when unknown."""
    if code is None:
        return None
    return table.get(code)
