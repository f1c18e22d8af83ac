"""
Funções de parsing de texto de sites de leilão.

Todas as funções são tolerantes: entrada inválida retorna None, nunca um
valor sentinela como 0 ou string vazia.
"""

import re
import unicodedata
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

BR_TZ = ZoneInfo("America/Sao_Paulo")

_CURRENCY_PATTERN = re.compile(r"R\$\s*(\d[\d.,]*)")
_NUMBER_PATTERN = re.compile(r"\d[\d.,]*")
_THOUSANDS_ONLY = re.compile(r"^\d{1,3}(\.\d{3})+$")
_MILEAGE_PATTERN = re.compile(r"(\d{1,3}(?:[.\s]\d{3})+|\d+)\s*km\b", re.IGNORECASE)
_FULL_DATE_PATTERN = re.compile(
    r"(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?:\D{1,6}(\d{1,2})[:h](\d{2}))?"
)
_SHORT_DATE_PATTERN = re.compile(r"(\d{1,2})/(\d{1,2})(?:\s*-\s*(\d{1,2}):(\d{2}))?")
_YEAR_PAIR_PATTERN = re.compile(r"\b(\d{4}|\d{2})\s*/\s*(\d{4}|\d{2})\b")
_SINGLE_YEAR_PATTERN = re.compile(r"\b((?:19|20)\d{2})\b")


def clean_text(text: Optional[str]) -> str:
    """Remove espaços e quebras de linha extras."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Converte texto de preço em Decimal.

    Remove símbolo de moeda e separador de milhar e troca vírgula decimal por
    ponto. Texto sem número parseável retorna None.

    Exemplos:
        >>> parse_price("R$ 35.000,00")
        Decimal('35000.00')
        >>> parse_price("Consulte")
        None
    """
    if not text:
        return None

    match = _CURRENCY_PATTERN.search(text) or _NUMBER_PATTERN.search(text)
    if not match:
        return None

    raw = match.group(1) if match.re is _CURRENCY_PATTERN else match.group(0)
    raw = raw.rstrip(".,")

    if "," in raw:
        raw = raw.replace(".", "").replace(",", ".")
    elif _THOUSANDS_ONLY.match(raw):
        raw = raw.replace(".", "")

    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None

    return value if value.is_finite() else None


def parse_mileage(text: Optional[str]) -> Optional[int]:
    """Extrai quilometragem ("45.000 km" -> 45000). 0 km é um valor válido."""
    if not text:
        return None
    match = _MILEAGE_PATTERN.search(text)
    if not match:
        return None
    digits = re.sub(r"[.\s]", "", match.group(1))
    try:
        return int(digits)
    except ValueError:
        return None


def _expand_two_digit_year(value: str) -> int:
    year = int(value)
    if len(value) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def parse_br_date(
    text: Optional[str],
    reference: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Converte data brasileira em datetime (fuso America/Sao_Paulo).

    Formatos aceitos: DD/MM/AAAA, DD/MM/AA (com hora opcional) e DD/MM - HH:MM
    (ano da data de referência).
    """
    if not text:
        return None

    try:
        match = _FULL_DATE_PATTERN.search(text)
        if match:
            day, month, year, hour, minute = match.groups()
            return datetime(
                _expand_two_digit_year(year), int(month), int(day),
                int(hour or 0), int(minute or 0), tzinfo=BR_TZ,
            )

        match = _SHORT_DATE_PATTERN.search(text)
        if match:
            day, month, hour, minute = match.groups()
            ref = reference or datetime.now(BR_TZ)
            return datetime(
                ref.year, int(month), int(day),
                int(hour or 0), int(minute or 0), tzinfo=BR_TZ,
            )
    except ValueError:
        # Dia/mês fora do intervalo (ex: 31/02)
        return None

    return None


def parse_year_pair(label: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Extrai (ano_fabricacao, ano_modelo) de rótulos como "2014/2015" ou "13/14".

    Um único ano de 4 dígitos é usado para os dois campos.
    """
    if not label:
        return (None, None)

    match = _YEAR_PAIR_PATTERN.search(label)
    if match:
        manufacture = _expand_two_digit_year(match.group(1))
        model = _expand_two_digit_year(match.group(2))
        if 1900 <= manufacture <= 2100 and 1900 <= model <= 2100:
            return (manufacture, model)

    match = _SINGLE_YEAR_PATTERN.search(label)
    if match:
        year = int(match.group(1))
        return (year, year)

    return (None, None)


def strip_accents(text: str) -> str:
    """Remove acentos ("Sodré" -> "Sodre")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def slugify(text: Optional[str]) -> str:
    """
    Gera slug ASCII em minúsculas.

    Exemplos:
        >>> slugify("Sodré Santoro")
        "sodre-santoro"
    """
    if not text:
        return ""
    ascii_text = strip_accents(text).lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


def fold_text(text: Optional[str]) -> str:
    """Minúsculas sem acentos, para comparação de palavras-chave."""
    return strip_accents(text or "").lower()


def contains_word(folded_text: str, keyword: str) -> bool:
    """True se `keyword` aparece como palavra (ou expressão) inteira."""
    return re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", folded_text) is not None
