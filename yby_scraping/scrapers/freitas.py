"""
Freitas Leiloeiro - pesquisa de lotes por tipo de veículo.

Fonte: https://www.freitasleiloeiro.com.br/Leiloes/Pesquisar
- Uma pesquisa por categoria (TipoLoteId): carros, motos, caminhões e ônibus
- Sem paginação: a lista cresce com scroll infinito
- Cards: .cardLote-data, .cardLote-descVeic, .cardLote-vlr

Título no formato "I/GM CLASSIC LIFE, 08/08, PLACA: D__-___0, GASOL/ALC, PRETA".
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Page

from ..common.parsing import clean_text, parse_br_date, parse_price
from ..models import RawListing
from .base import BaseScraper

logger = logging.getLogger(__name__)

BASE_URL = "https://www.freitasleiloeiro.com.br"
SEARCH_URL = (
    f"{BASE_URL}/Leiloes/Pesquisar?Categoria=1&Nome=&TipoLoteId={{tipo}}"
    "&AnoModeloMin=0&AnoModeloMax=0&Condicao=0&PatioId=0&Tag=&FaixaValor=0"
)

# (TipoLoteId, rótulo do tipo de veículo)
CATEGORIES = (
    (1, "Carros"),
    (3, "Motos"),
    (7, "Caminhões e Ônibus"),
)

CONTAINER_SELECTOR = ".col-md-9"

# Rolagens seguidas sem lote novo antes de encerrar a categoria
MAX_STABLE_SCROLLS = 3

_ID_PATTERNS = (
    re.compile(r"[Ll]eilao[/\-]?(\d+)"),
    re.compile(r"[Ll]ote[/\-]?(\d+)"),
    re.compile(r"/(\d+)"),
)
_FUEL_PATTERN = re.compile(r"\b(GASOL/ALC|GASOL|ETANOL|DIESEL|FLEX|ALC)\b", re.IGNORECASE)
_PLATE_PATTERN = re.compile(r"PLACA:\s*([A-Z0-9_\-]+)", re.IGNORECASE)
_COLOR_PATTERN = re.compile(r"^[A-ZÀ-Ú ]+$", re.IGNORECASE)

EXTRACT_SCRIPT = """
() => {
    return Array.from(document.querySelectorAll('.col-md-9 .mt-3')).map(card => {
        const text = (selector) => {
            const el = card.querySelector(selector);
            return el && el.textContent ? el.textContent.trim() : '';
        };
        const link = card.querySelector('a[href*="Leilao"], a[href*="lote"], a[href*="Leiloes"]')
            || card.closest('a');
        const img = card.querySelector('img');
        return {
            href: link ? (link.getAttribute('href') || '') : '',
            title: text('.cardLote-descVeic'),
            priceText: text('.cardLote-vlr'),
            dateText: text('.cardLote-data'),
            imageUrl: img ? (img.getAttribute('src') || img.getAttribute('data-src') || '') : '',
            dataId: card.getAttribute('data-id') || card.getAttribute('data-lote-id') || '',
        };
    }).filter(c => c.title);
}
"""

SCROLL_SCRIPT = """
() => { window.scrollTo(0, document.body.scrollHeight); window.scrollBy(0, 500); }
"""


def extract_lot_id(href: str, data_id: str = "") -> Optional[str]:
    for pattern in _ID_PATTERNS:
        match = pattern.search(href or "")
        if match:
            return f"freitas-{match.group(1)}"
    if data_id:
        return f"freitas-{data_id}"
    return None


def split_lot_title(title: str) -> Dict[str, Optional[str]]:
    """
    Separa os campos do título do lote.

    Exemplo:
        >>> split_lot_title("I/GM CLASSIC LIFE, 08/08, PLACA: D__-___0, GASOL/ALC, PRETA")
        {'brand': 'GM', 'model': 'CLASSIC LIFE', 'year_label': '08/08',
         'plate': 'D__-___0', 'fuel_type': 'GASOL/ALC', 'color': 'PRETA'}
    """
    parts = [p.strip() for p in title.split(",")]
    brand, model = _split_brand_model(parts[0] if parts else "")

    year_label = parts[1] if len(parts) > 1 and re.search(r"\d{2}/\d{2}", parts[1]) else None

    fuel = _FUEL_PATTERN.search(title)
    plate = _PLATE_PATTERN.search(title)

    color = None
    if len(parts) > 2:
        last = parts[-1].rstrip(";").strip()
        if _COLOR_PATTERN.match(last) and not _FUEL_PATTERN.fullmatch(last):
            color = last

    return {
        "brand": brand,
        "model": model,
        "year_label": year_label,
        "plate": plate.group(1) if plate else None,
        "fuel_type": fuel.group(1).upper() if fuel else None,
        "color": color,
    }


def _split_brand_model(first_part: str) -> Tuple[Optional[str], Optional[str]]:
    # "I/GM CLASSIC LIFE" ou "FIAT/FIORINO FLEX": marca é o 1o token após a barra
    match = re.match(r"^[^/]+/(.+)", first_part)
    if not match:
        return None, None
    tokens = match.group(1).split()
    if not tokens:
        return None, None
    return tokens[0], " ".join(tokens[1:]) or None


class FreitasScraper(BaseScraper):
    """Scraper do Freitas Leiloeiro."""

    name = "Freitas Leiloeiro"
    base_url = BASE_URL

    def parse_card(self, card: Dict[str, Any]) -> Optional[RawListing]:
        title = clean_text(card.get("title"))
        href = card.get("href") or ""
        external_id = extract_lot_id(href, card.get("dataId") or "")
        if not title or not href:
            return None

        fields = split_lot_title(title)
        price = parse_price(card.get("priceText"))

        return RawListing(
            title=title,
            detail_url=href,
            external_id=external_id,
            price_text=card.get("priceText"),
            current_bid=price,
            minimum_bid=price,
            image_url=card.get("imageUrl") or None,
            auction_date=parse_br_date(card.get("dateText")),
            vehicle_type_label=card.get("category"),
            brand=fields["brand"],
            model=fields["model"],
            year_label=fields["year_label"],
            fuel_type=fields["fuel_type"],
            color=fields["color"],
            extra={"plate": fields["plate"]} if fields["plate"] else {},
        )

    async def _scrape_category(self, page: Page, tipo: int, label: str) -> List[RawListing]:
        listings: List[RawListing] = []

        await self.navigate(page, SEARCH_URL.format(tipo=tipo))
        if not await self.wait_for_content(page, CONTAINER_SELECTOR):
            return listings

        stable_scrolls = 0
        for scroll in range(1, self.config.MAX_PAGES + 1):
            cards = await self.extract(page, EXTRACT_SCRIPT)
            for card in cards:
                card["category"] = label

            outcome = self.process_cards(cards)
            listings.extend(outcome.listings)
            logger.debug(
                "[%s] [%s] Rolagem %d: %d novos lotes", self.name, label, scroll, len(outcome.listings)
            )

            if not outcome.listings:
                stable_scrolls += 1
                if stable_scrolls >= MAX_STABLE_SCROLLS:
                    break
            else:
                stable_scrolls = 0

            await page.evaluate(SCROLL_SCRIPT)
            await self.polite_delay()

        logger.info("[%s] [%s] %d lotes", self.name, label, len(listings))
        return listings

    async def scrape(self, page: Page) -> List[RawListing]:
        listings: List[RawListing] = []
        for index, (tipo, label) in enumerate(CATEGORIES):
            listings.extend(await self._scrape_category(page, tipo, label))
            if index < len(CATEGORIES) - 1:
                await self.polite_delay()
        return listings
