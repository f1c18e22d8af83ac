"""
Base dos scrapers de leiloeiros (Playwright + stealth).

Cada scraper concreto define:
    - name / base_url
    - scrape(page): laço de paginação específico do site
    - parse_card(card): dict extraído do DOM -> RawListing

A base cuida da sessão do navegador (aberta e fechada em todos os
caminhos), da navegação, do filtro de leilões passados, da deduplicação e
do isolamento de erros por lote.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from playwright_stealth import Stealth

from ..common.parsing import BR_TZ
from ..config import Config, config as default_config
from ..errors import AdapterNavigationError
from ..models import RawListing

logger = logging.getLogger(__name__)


@dataclass
class ScrapeStats:
    """Estatísticas de uma coleta."""
    pages_visited: int = 0
    cards_found: int = 0
    listings_kept: int = 0
    duplicates: int = 0
    past_auctions: int = 0
    extraction_errors: int = 0
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PageOutcome:
    """Resultado do processamento de uma página de listagem."""
    listings: List[RawListing] = field(default_factory=list)
    cards: int = 0
    duplicates: int = 0
    future_auctions: int = 0

    @property
    def repeated(self) -> bool:
        """Página repetida: 90% ou mais dos cards já vistos."""
        return self.cards > 0 and self.duplicates >= self.cards * 0.9


class BaseScraper(ABC):
    """Scraper de um leiloeiro. Nunca escreve no banco."""

    name: str = ""
    base_url: str = ""

    def __init__(self, cfg: Optional[Config] = None, today: Optional[date] = None):
        self.config = cfg or default_config
        self.today = today
        self.stats = ScrapeStats()
        self._seen_ids: Set[str] = set()

    # ------------------------------------------------------------------
    # Sessão do navegador
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def browser_session(self) -> AsyncIterator[Page]:
        """Abre Chromium + contexto + página com stealth; fecha ao sair."""
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=self.config.HEADLESS,
                args=self.config.BROWSER_ARGS,
            )
            try:
                context = await browser.new_context(
                    viewport={
                        "width": self.config.VIEWPORT_WIDTH,
                        "height": self.config.VIEWPORT_HEIGHT,
                    },
                    user_agent=self.config.USER_AGENT,
                    locale=self.config.LOCALE,
                    timezone_id=self.config.TIMEZONE,
                )
                page = await context.new_page()
                page.set_default_timeout(self.config.NAVIGATION_TIMEOUT_MS)
                await Stealth().apply_stealth_async(page)
                logger.debug("[%s] Navegador inicializado", self.name)
                yield page
            finally:
                await browser.close()
                logger.debug("[%s] Navegador fechado", self.name)

    # ------------------------------------------------------------------
    # Capacidades: navegar, aguardar conteúdo, extrair
    # ------------------------------------------------------------------

    async def navigate(self, page: Page, url: str) -> None:
        """Navega para a URL; falha vira AdapterNavigationError."""
        logger.info("[%s] Acessando %s", self.name, url)
        try:
            await page.goto(
                url,
                timeout=self.config.NAVIGATION_TIMEOUT_MS,
                wait_until="domcontentloaded",
            )
        except PlaywrightError as e:
            raise AdapterNavigationError(self.name, url, str(e)) from e
        self.stats.pages_visited += 1

    async def wait_for_content(self, page: Page, selector: str) -> bool:
        """Aguarda os cards da listagem. False se não apareceram a tempo."""
        try:
            await page.wait_for_selector(selector, timeout=self.config.SELECTOR_TIMEOUT_MS)
            return True
        except PlaywrightTimeoutError:
            logger.info("[%s] Nenhum card encontrado (%s)", self.name, selector)
            return False

    async def extract(self, page: Page, script: str) -> List[Dict[str, Any]]:
        """Executa o script de extração no DOM e retorna a lista de cards."""
        cards = await page.evaluate(script)
        return [c for c in cards or [] if isinstance(c, dict)]

    async def polite_delay(self) -> None:
        await asyncio.sleep(
            random.uniform(self.config.PAGE_DELAY_MIN_SECONDS, self.config.PAGE_DELAY_MAX_SECONDS)
        )

    # ------------------------------------------------------------------
    # Processamento de cards
    # ------------------------------------------------------------------

    @property
    def reference_date(self) -> date:
        return self.today or datetime.now(BR_TZ).date()

    def process_cards(self, cards: Iterable[Dict[str, Any]]) -> PageOutcome:
        """
        Converte cards em RawListing.

        Erro em um card é registrado e o card é pulado. Leilões passados e
        lotes já vistos nesta execução são descartados.
        """
        outcome = PageOutcome()
        for card in cards:
            outcome.cards += 1
            self.stats.cards_found += 1
            try:
                listing = self.parse_card(card)
            except Exception as e:
                self.stats.extraction_errors += 1
                logger.warning("[%s] Erro ao extrair card: %s", self.name, e)
                continue

            if listing is None:
                continue

            key = listing.external_id or listing.detail_url
            if key in self._seen_ids:
                outcome.duplicates += 1
                self.stats.duplicates += 1
                continue
            self._seen_ids.add(key)

            if listing.auction_date is not None:
                if listing.auction_date.date() < self.reference_date:
                    self.stats.past_auctions += 1
                    continue
                outcome.future_auctions += 1

            outcome.listings.append(listing)

        self.stats.listings_kept += len(outcome.listings)
        return outcome

    @abstractmethod
    def parse_card(self, card: Dict[str, Any]) -> Optional[RawListing]:
        """Converte um card extraído do DOM; None para cards irrelevantes."""

    @abstractmethod
    async def scrape(self, page: Page) -> List[RawListing]:
        """Laço de paginação do site."""

    # ------------------------------------------------------------------
    # Ponto de entrada
    # ------------------------------------------------------------------

    async def fetch_listings(self) -> List[RawListing]:
        """Coleta todos os lotes futuros do leiloeiro."""
        self.stats = ScrapeStats(started_at=datetime.now(BR_TZ).isoformat())
        self._seen_ids = set()

        logger.info("[%s] Iniciando coleta (lotes a partir de %s)", self.name, self.reference_date)
        async with self.browser_session() as page:
            listings = await self.scrape(page)

        self.stats.finished_at = datetime.now(BR_TZ).isoformat()
        logger.info(
            "[%s] Coleta finalizada: %d lotes, %d páginas, %d duplicados, %d passados, %d erros",
            self.name, len(listings), self.stats.pages_visited, self.stats.duplicates,
            self.stats.past_auctions, self.stats.extraction_errors,
        )
        return listings
