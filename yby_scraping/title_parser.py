"""
Parser heurístico de títulos de lotes.

Extrai marca, modelo e ano de títulos livres como "FIAT UNO 2015 1.0".
Best-effort: nunca levanta exceção; campos não encontrados ficam None.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

_YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")

# Vocabulário de marcas, em ordem de prioridade (primeira ocorrência vence).
# Nomes compostos vêm antes das suas partes (CAOA CHERY antes de CHERY).
KNOWN_BRANDS: Tuple[str, ...] = (
    "FIAT", "VOLKSWAGEN", "CHEVROLET", "FORD", "RENAULT", "HYUNDAI",
    "TOYOTA", "HONDA", "NISSAN", "JEEP",
    "PEUGEOT", "CITROEN", "CITROËN", "MITSUBISHI", "MERCEDES-BENZ",
    "MERCEDES", "LAND ROVER", "CAOA CHERY", "CHERY", "SUZUKI", "SUBARU",
    "VOLVO", "AUDI", "PORSCHE", "JAGUAR", "MAZDA", "TROLLER", "AGRALE",
    "LIFAN", "GEELY", "GREAT WALL", "HAVAL", "DONGFENG", "IVECO", "SCANIA",
    "YAMAHA", "KAWASAKI", "DUCATI", "HARLEY-DAVIDSON", "TRIUMPH", "DAFRA",
    "SHINERAY", "HAOJUE", "ROYAL ENFIELD", "RAM", "DODGE", "CHRYSLER",
    "MINI", "SMART",
    # Curtas: só casam como palavra inteira
    "BMW", "KIA", "JAC", "BYD", "VW", "GM", "MAN", "DAF", "KTM",
)

# Marcas de até 3 letras geram falsos positivos como substring ("MAN" em "MANUAL")
_WORD_ONLY_MAX_LEN = 3


@dataclass
class TitleParts:
    """Resultado do parsing de um título."""
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None


def _brand_pattern(brand: str) -> "re.Pattern[str]":
    if len(brand) <= _WORD_ONLY_MAX_LEN:
        return re.compile(rf"(?<![A-Z0-9]){re.escape(brand)}(?![A-Z0-9])", re.IGNORECASE)
    return re.compile(re.escape(brand), re.IGNORECASE)


_BRAND_PATTERNS = tuple((brand, _brand_pattern(brand)) for brand in KNOWN_BRANDS)


def _find_brand(title: str) -> Optional[Tuple[str, int, int]]:
    for brand, pattern in _BRAND_PATTERNS:
        match = pattern.search(title)
        if match:
            return brand, match.start(), match.end()
    return None


def parse_vehicle_title(title: Optional[str]) -> TitleParts:
    """
    Extrai marca, modelo e ano de um título livre.

    1. Ano: primeiro token de 4 dígitos (19xx/20xx). Não há validação de
       plausibilidade (um preço pode ser confundido com ano).
    2. Marca: primeira marca do vocabulário presente no título
       (case-insensitive).
    3. Modelo: texto entre a marca e o ano, apenas se ambos existirem.

    Exemplos:
        >>> parse_vehicle_title("FIAT UNO 2015 1.0")
        TitleParts(brand='FIAT', model='UNO', year=2015)
        >>> parse_vehicle_title("Veículo sem marca conhecida 2020")
        TitleParts(brand=None, model=None, year=2020)
    """
    if not title or not isinstance(title, str):
        return TitleParts()

    parts = TitleParts()

    year_match = _YEAR_PATTERN.search(title)
    if year_match:
        parts.year = int(year_match.group(0))

    brand_hit = _find_brand(title)
    if brand_hit:
        parts.brand = brand_hit[0]

    if brand_hit and year_match:
        _, _, brand_end = brand_hit
        if brand_end <= year_match.start():
            model = title[brand_end:year_match.start()].strip(" -/,")
            parts.model = model.strip() or None

    return parts
