"""
Exceções do pipeline de scraping.

Cada erro é terminal para o seu escopo (lote, fonte ou registro) e aparece
no relatório apenas como contagem e mensagem. Não há retry automático.
"""


class ScrapingError(Exception):
    """Erro base do pipeline."""


class AdapterNavigationError(ScrapingError):
    """Falha de navegação que aborta a execução de um scraper."""

    def __init__(self, auctioneer: str, url: str, reason: str):
        self.auctioneer = auctioneer
        self.url = url
        self.reason = reason
        super().__init__(f"[{auctioneer}] falha ao navegar para {url}: {reason}")


class AdapterTimeoutError(ScrapingError):
    """Scraper excedeu o tempo máximo de execução."""

    def __init__(self, auctioneer: str, timeout_seconds: float):
        self.auctioneer = auctioneer
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"[{auctioneer}] tempo limite de {timeout_seconds:.0f}s excedido"
        )


class ConfigurationError(ScrapingError):
    """Configuração ausente (leiloeiro não registrado, credenciais)."""


class UpsertError(ScrapingError):
    """Falha ao gravar um veículo no banco."""


class RunAlreadyActiveError(ScrapingError):
    """Já existe uma execução em andamento neste processo."""
