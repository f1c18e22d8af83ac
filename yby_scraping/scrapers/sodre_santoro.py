"""
Sodré Santoro - lotes de veículos.

Fonte: https://www.sodresantoro.com.br/veiculos/lotes
- Ordenação por data do leilão (sort=auction_date_init_asc)
- Paginação via &page=N
- Um link /lote/<id> por veículo

Como a listagem é ordenada por data, páginas sem nenhum leilão futuro
depois da 5a página indicam o fim dos lotes relevantes.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from ..common.parsing import clean_text, parse_br_date, parse_mileage, parse_price
from ..models import RawListing
from .base import BaseScraper

logger = logging.getLogger(__name__)

BASE_URL = "https://www.sodresantoro.com.br"
LISTING_URL = f"{BASE_URL}/veiculos/lotes?sort=auction_date_init_asc"

CARD_SELECTOR = 'a[href*="/lote/"], .lote-card, .vehicle-card'

# Depois desta página, parar se nenhuma data futura aparecer
EARLY_STOP_AFTER_PAGE = 5

_LOT_ID_PATTERN = re.compile(r"/lote/([^/?#]+)")
_DATE_HINT = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}")
_LOCATION_HINT = re.compile(r"[-/,]\s*[A-Z]{2}\s*$")

EXTRACT_SCRIPT = """
() => {
    const selectors = ['a[href*="/lote/"]', '.lote-card a[href]', '.vehicle-card a[href]'];
    let cards = [];
    for (const selector of selectors) {
        const found = document.querySelectorAll(selector);
        if (found.length > 0) { cards = Array.from(found); break; }
    }

    const firstText = (root, selectors) => {
        for (const s of selectors) {
            const el = root.querySelector(s);
            if (el && el.textContent && el.textContent.trim()) return el.textContent.trim();
        }
        return '';
    };

    const seen = new Set();
    const results = [];
    for (const card of cards) {
        const href = card.getAttribute('href') || '';
        if (!href || seen.has(href)) continue;
        seen.add(href);

        const img = card.querySelector('img');
        const infoTexts = Array.from(card.querySelectorAll('.text-body-small, .text-caption, .info'))
            .map(el => (el.textContent || '').trim())
            .filter(t => t);

        results.push({
            href,
            title: firstText(card, ['.text-body-medium', '.title', '.titulo', 'h2', 'h3']),
            price: firstText(card, ['.text-primary.text-headline-small', '.price', '.lance', '.text-primary']),
            imageUrl: img ? (img.getAttribute('src') || img.getAttribute('data-src') || '') : '',
            infoTexts,
        });
    }
    return results;
}
"""


class SodreSantoroScraper(BaseScraper):
    """Scraper do Sodré Santoro."""

    name = "Sodré Santoro"
    base_url = BASE_URL

    def page_url(self, page_number: int) -> str:
        if page_number == 1:
            return LISTING_URL
        return f"{LISTING_URL}&page={page_number}"

    def parse_card(self, card: Dict[str, Any]) -> Optional[RawListing]:
        title = clean_text(card.get("title"))
        href = card.get("href") or ""
        if not title or not href:
            return None

        match = _LOT_ID_PATTERN.search(href)
        external_id = match.group(1) if match else None

        info_texts = [clean_text(t) for t in card.get("infoTexts") or [] if t]

        auction_date = None
        for text in info_texts:
            if _DATE_HINT.search(text):
                auction_date = parse_br_date(text)
                break

        location = next(
            (t for t in info_texts if _LOCATION_HINT.search(t) and not _DATE_HINT.search(t)),
            None,
        )
        mileage = next(
            (m for m in (parse_mileage(t) for t in info_texts) if m is not None),
            None,
        )

        return RawListing(
            title=title,
            detail_url=href,
            external_id=external_id,
            price_text=card.get("price"),
            current_bid=parse_price(card.get("price")),
            image_url=card.get("imageUrl") or None,
            location_text=location,
            auction_date=auction_date,
            auction_type_label="Online",
            year_label=title,
            mileage=mileage,
            condition="Usado",
        )

    async def scrape(self, page: Page) -> List[RawListing]:
        listings: List[RawListing] = []
        duplicate_pages = 0

        for page_number in range(1, self.config.MAX_PAGES + 1):
            await self.navigate(page, self.page_url(page_number))
            await self.wait_for_content(page, CARD_SELECTOR)

            cards = await self.extract(page, EXTRACT_SCRIPT)
            if not cards:
                logger.info("[%s] Página %d vazia, fim da listagem", self.name, page_number)
                break

            outcome = self.process_cards(cards)
            listings.extend(outcome.listings)
            logger.info(
                "[%s] Página %d: %d cards, %d lotes, %d duplicados, %d leilões futuros",
                self.name, page_number, outcome.cards, len(outcome.listings),
                outcome.duplicates, outcome.future_auctions,
            )

            if outcome.future_auctions == 0 and page_number > EARLY_STOP_AFTER_PAGE:
                logger.info("[%s] Nenhum leilão futuro na página %d, finalizando", self.name, page_number)
                break

            if outcome.repeated:
                duplicate_pages += 1
                if duplicate_pages >= self.config.MAX_DUPLICATE_PAGES:
                    logger.info("[%s] Páginas repetidas consecutivas, fim alcançado", self.name)
                    break
            else:
                duplicate_pages = 0

            await self.polite_delay()

        return listings
