"""
Configuração do pipeline de scraping YBY Leilões.

Centraliza constantes, limites e variáveis de ambiente usadas pelos
scrapers, pelo orquestrador e pela camada de persistência.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Procura o .env na raiz do projeto
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "sim")


@dataclass
class Config:
    """Configurações do pipeline."""

    # === IDENTIFICAÇÃO ===
    PIPELINE_NAME: str = "yby-scraping"
    PIPELINE_VERSION: str = "1.0.0"

    # === SUPABASE ===
    VEHICLES_TABLE: str = "vehicles"
    AUCTIONEERS_TABLE: str = "auctioneers"
    SCRAPING_LOGS_TABLE: str = "scraping_logs"

    # === NAVEGADOR ===
    HEADLESS: bool = field(default_factory=lambda: _env_bool("HEADLESS", True))
    NAVIGATION_TIMEOUT_MS: int = 30000
    SELECTOR_TIMEOUT_MS: int = 10000
    VIEWPORT_WIDTH: int = 1920
    VIEWPORT_HEIGHT: int = 1080
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )
    LOCALE: str = "pt-BR"
    TIMEZONE: str = "America/Sao_Paulo"
    BROWSER_ARGS: List[str] = field(default_factory=lambda: [
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-gpu",
    ])

    # === PAGINAÇÃO / RATE LIMIT ===
    MAX_PAGES: int = 50
    PAGE_DELAY_MIN_SECONDS: float = 0.5
    PAGE_DELAY_MAX_SECONDS: float = 1.5
    MAX_DUPLICATE_PAGES: int = 2

    # === ORQUESTRADOR ===
    ADAPTER_TIMEOUT_SECONDS: float = field(
        default_factory=lambda: float(os.getenv("ADAPTER_TIMEOUT_SECONDS", "900"))
    )
    SOURCE_DELAY_SECONDS: float = 5.0

    # === FIPE ===
    FIPE_API_URL: str = "https://parallelum.com.br/fipe/api/v1"
    FIPE_TIMEOUT_SECONDS: float = 15.0
    FIPE_LOOKUP_ENABLED: bool = field(
        default_factory=lambda: _env_bool("FIPE_LOOKUP_ENABLED", False)
    )

    # === LOG ===
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # === SUPABASE (via variáveis de ambiente) ===
    @property
    def supabase_url(self) -> Optional[str]:
        return os.getenv("SUPABASE_URL")

    @property
    def supabase_key(self) -> Optional[str]:
        return os.getenv("SUPABASE_SERVICE_KEY")

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def auctioneer_filter(self) -> List[str]:
        """Slugs de leiloeiros definidos em AUCTIONEERS (separados por vírgula)."""
        raw = os.getenv("AUCTIONEERS", "")
        return [s.strip().lower() for s in raw.split(",") if s.strip()]


# Instância global de configuração
config = Config()
