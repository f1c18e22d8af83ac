"""
Scrapers de leiloeiros.

O nome de cada scraper é o mesmo nome cadastrado na tabela auctioneers.
"""

from typing import Callable, Dict, List, Optional, Sequence

from ..common.parsing import slugify
from ..config import Config
from .base import BaseScraper, ScrapeStats
from .freitas import FreitasScraper
from .sodre_santoro import SodreSantoroScraper
from .superbid import SuperbidScraper

ScraperFactory = Callable[..., BaseScraper]

# Nome do leiloeiro -> fábrica do scraper
ADAPTERS: Dict[str, ScraperFactory] = {
    SodreSantoroScraper.name: SodreSantoroScraper,
    SuperbidScraper.name: SuperbidScraper,
    FreitasScraper.name: FreitasScraper,
}

# Apelidos aceitos em AUCTIONEERS / --auctioneers
ALIASES: Dict[str, str] = {
    "sodre": SodreSantoroScraper.name,
    "sodre-santoro": SodreSantoroScraper.name,
    "superbid": SuperbidScraper.name,
    "freitas": FreitasScraper.name,
    "freitas-leiloeiro": FreitasScraper.name,
}


def resolve_adapter_name(value: str) -> Optional[str]:
    """Nome canônico do leiloeiro a partir de nome, slug ou apelido."""
    if value in ADAPTERS:
        return value
    slug = slugify(value)
    for name in ADAPTERS:
        if slugify(name) == slug:
            return name
    return ALIASES.get(slug)


def build_adapters(
    only: Optional[Sequence[str]] = None,
    cfg: Optional[Config] = None,
) -> Dict[str, Optional[BaseScraper]]:
    """
    Instancia os scrapers selecionados.

    Nomes pedidos que não correspondem a nenhum scraper aparecem com valor
    None, para que o orquestrador registre a falha da fonte.
    """
    if not only:
        return {name: factory(cfg) for name, factory in ADAPTERS.items()}

    adapters: Dict[str, Optional[BaseScraper]] = {}
    for requested in only:
        name = resolve_adapter_name(requested)
        if name is None:
            adapters[requested] = None
        else:
            adapters[name] = ADAPTERS[name](cfg)
    return adapters


def available_adapters() -> List[str]:
    return list(ADAPTERS)


__all__ = [
    "ADAPTERS",
    "ALIASES",
    "BaseScraper",
    "FreitasScraper",
    "ScrapeStats",
    "SodreSantoroScraper",
    "SuperbidScraper",
    "available_adapters",
    "build_adapters",
    "resolve_adapter_name",
]
