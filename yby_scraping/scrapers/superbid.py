"""
Superbid - categoria carros e motos.

Fonte: https://www.superbid.net/categorias/carros-motos
- Paginação via ?pageNumber=N&pageSize=60
- Cards são links para /oferta/<id> (às vezes em exchange.superbid.net)
- Título vem do alt da imagem do card
- Data no formato "DD/MM - HH:MM" (sem ano)

O site repete a última página quando o pageNumber passa do fim, então
a coleta para após páginas repetidas consecutivas.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from ..common.parsing import (
    BR_TZ,
    clean_text,
    contains_word,
    fold_text,
    parse_br_date,
    parse_mileage,
    parse_price,
    slugify,
)
from ..common.url_resolution import strip_tracking
from ..models import RawListing
from ..title_parser import parse_vehicle_title
from .base import BaseScraper

logger = logging.getLogger(__name__)

BASE_URL = "https://www.superbid.net"
LISTING_URL = f"{BASE_URL}/categorias/carros-motos"
PAGE_SIZE = 60

CARD_SELECTOR = 'a[href*="oferta"]'

MIN_TITLE_LENGTH = 5
IGNORED_TITLE_TERMS = ("ícone", "icone", "cartão de crédito", "cartao de credito")

# Lotes que não são veículos (peças, ferramentas, linhas industriais)
EXCLUDED_TITLE_TERMS = (
    "chave fixa", "anel trava", "molas de tensao", "acessorios para",
    "pecas", "ferramentas", "equipamentos",
)
ALWAYS_EXCLUDED_TITLE_TERMS = ("produto sem imagem", "linha de producao")

# Indícios de que o título descreve um veículo
VEHICLE_HINTS = (
    "carro", "moto", "motos", "veiculo", "automovel", "caminhao", "van", "onibus",
    "chevrolet", "fiat", "volkswagen", "vw", "ford", "honda", "toyota",
    "hyundai", "nissan", "renault", "jeep", "peugeot", "citroen", "bmw",
    "mercedes", "audi", "volvo", "gm", "yamaha", "suzuki", "kawasaki",
    "ano", "modelo", "km", "quilometragem", "placa", "cor", "combustivel",
)

# Modelos populares que aparecem sem a marca no título
MODEL_HINTS = ("ka", "gol", "fox", "uno", "palio", "corsa", "celta", "fiesta")

# Data sem ano mais antiga que isso é do ano seguinte (virada de ano)
YEAR_ROLLOVER_DAYS = 180

_OFFER_ID_PATTERN = re.compile(r"/([a-f0-9-]{36}|\d+)$")
_PRICE_PATTERN = re.compile(r"R\$\s*[\d.,]+")
_SHORT_DATE_PATTERN = re.compile(r"\d{1,2}/\d{2}\s*-\s*\d{1,2}:\d{2}")
_YEAR_HINT = re.compile(r"\b(?:19|20)\d{2}\b")

AUCTION_TYPE_LABELS = (
    (("tomada de pre",), "Tomada de Preço"),
    (("mercado balcão", "mercado balcao", "compre já", "compre ja"), "Mercado Balcão"),
    (("judicial",), "Judicial"),
    (("presencial",), "Presencial"),
)

EXTRACT_SCRIPT = """
() => {
    // Fecha o banner de cookies se estiver aberto
    const accept = Array.from(document.querySelectorAll('button'))
        .find(b => (b.textContent || '').includes('Aceitar todos os cookies'));
    if (accept) accept.click();

    return Array.from(document.querySelectorAll('a[href*="oferta"]')).map(card => {
        const img = card.querySelector('img');
        return {
            href: card.getAttribute('href') || '',
            title: img && img.alt ? img.alt.trim() : '',
            imageUrl: img ? (img.getAttribute('src') || '') : '',
            paragraphs: Array.from(card.querySelectorAll('p'))
                .map(p => (p.textContent || '').trim())
                .filter(t => t),
            fullText: (card.textContent || '').slice(0, 1000),
        };
    });
}
"""


def looks_like_vehicle(title: str) -> bool:
    folded = fold_text(title)
    return any(contains_word(folded, hint) for hint in VEHICLE_HINTS)


def is_relevant_vehicle(title: str) -> bool:
    """
    Descarta lotes que não são veículos.

    Termos como "peças" ou "lote" só descartam o título quando nada nele
    indica um veículo ("LOTE 0119: GM/CELTA" passa). Sem marca conhecida,
    o título precisa de algum indício de veículo.
    """
    folded = fold_text(title)
    if any(term in folded for term in ALWAYS_EXCLUDED_TITLE_TERMS):
        return False

    looks_vehicle = looks_like_vehicle(title)
    if not looks_vehicle:
        if contains_word(folded, "lote"):
            return False
        if any(term in folded for term in EXCLUDED_TITLE_TERMS):
            return False

    has_brand = parse_vehicle_title(title).brand is not None or any(
        contains_word(folded, hint) for hint in MODEL_HINTS
    )
    return has_brand or looks_vehicle


def detect_auction_type_label(text: str) -> str:
    """Rótulo do tipo de leilão exibido no card (padrão: Online)."""
    lowered = text.lower()
    for terms, label in AUCTION_TYPE_LABELS:
        if any(term in lowered for term in terms):
            return label
    return "Online"


def extract_offer_id(url: str, title: str) -> str:
    """
    Id externo a partir da URL da oferta.

    Sem id numérico ou UUID na URL, usa o título (e o ano, se houver).
    """
    match = _OFFER_ID_PATTERN.search(strip_tracking(url) or "")
    if match:
        return f"superbid-{match.group(1)}"

    year = _YEAR_HINT.search(title)
    suffix = f"-{year.group(0)}" if year else ""
    return f"superbid-{slugify(title)}{suffix}"


class SuperbidScraper(BaseScraper):
    """Scraper do Superbid."""

    name = "Superbid"
    base_url = BASE_URL

    def page_url(self, page_number: int) -> str:
        return f"{LISTING_URL}?pageNumber={page_number}&pageSize={PAGE_SIZE}"

    def _parse_short_date(self, text: str):
        match = _SHORT_DATE_PATTERN.search(text)
        if not match:
            return None
        reference = self.reference_date
        parsed = parse_br_date(
            match.group(0),
            reference=datetime(reference.year, reference.month, reference.day, tzinfo=BR_TZ),
        )
        if parsed and parsed.date() < reference - timedelta(days=YEAR_ROLLOVER_DAYS):
            parsed = parsed.replace(year=parsed.year + 1)
        return parsed

    def parse_card(self, card: Dict[str, Any]) -> Optional[RawListing]:
        title = clean_text(card.get("title"))
        if len(title) < MIN_TITLE_LENGTH:
            return None
        if any(term in title.lower() for term in IGNORED_TITLE_TERMS):
            return None
        if not is_relevant_vehicle(title):
            logger.debug("[%s] Lote descartado (não parece veículo): %s", self.name, title[:50])
            return None

        href = card.get("href") or ""
        if not href:
            return None

        paragraphs = [clean_text(p) for p in card.get("paragraphs") or [] if p]
        full_text = clean_text(card.get("fullText"))

        price_source = next((p for p in paragraphs if "R$" in p), full_text)
        price_match = _PRICE_PATTERN.search(price_source)
        price_text = price_match.group(0) if price_match else None

        date_source = paragraphs[0] if paragraphs and _SHORT_DATE_PATTERN.search(paragraphs[0]) else full_text
        mileage_source = next((p for p in paragraphs if "km" in p.lower()), full_text)

        return RawListing(
            title=title,
            detail_url=href,
            external_id=extract_offer_id(href, title),
            price_text=price_text,
            current_bid=parse_price(price_text),
            image_url=card.get("imageUrl") or None,
            auction_type_label=detect_auction_type_label(full_text),
            auction_date=self._parse_short_date(date_source),
            year_label=title,
            mileage=parse_mileage(mileage_source),
        )

    async def scrape(self, page: Page) -> List[RawListing]:
        listings: List[RawListing] = []
        duplicate_pages = 0

        for page_number in range(1, self.config.MAX_PAGES + 1):
            await self.navigate(page, self.page_url(page_number))
            if not await self.wait_for_content(page, CARD_SELECTOR):
                break

            cards = await self.extract(page, EXTRACT_SCRIPT)
            if not cards:
                break

            outcome = self.process_cards(cards)
            listings.extend(outcome.listings)
            logger.info(
                "[%s] Página %d: %d cards, %d lotes, %d duplicados",
                self.name, page_number, outcome.cards, len(outcome.listings), outcome.duplicates,
            )

            if outcome.repeated or not outcome.listings:
                duplicate_pages += 1
                if duplicate_pages >= self.config.MAX_DUPLICATE_PAGES:
                    logger.info("[%s] Páginas repetidas consecutivas, fim alcançado", self.name)
                    break
            else:
                duplicate_pages = 0

            await self.polite_delay()

        return listings
