"""
Orquestrador da execução de scraping.

Fluxo por leiloeiro (sequencial):
    scraper -> RawListing -> normalização -> FIPE (opcional) -> score -> upsert

Falha de um leiloeiro (timeout, navegação, leiloeiro não cadastrado ou
qualquer exceção do scraper) é registrada no relatório e não interrompe
os demais. Só uma execução por processo é permitida.

Ao fim de cada leiloeiro cadastrado grava uma linha em scraping_logs e, em
caso de sucesso, atualiza auctioneers.last_scrape_at.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .common.parsing import BR_TZ
from .config import Config, config as default_config
from .errors import AdapterTimeoutError, ConfigurationError, RunAlreadyActiveError
from .fipe import FipeClient
from .models import CanonicalVehicle, RawListing
from .normalize import VehicleNormalizer
from .report import RunReport, SourceResult
from .repository import AuctioneerRegistry, VehicleRepository
from .scoring import apply_deal_score, calculate_deal_score
from .scrapers import BaseScraper, build_adapters, resolve_adapter_name
from .upsert import UpsertCoordinator

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunGuard:
    """Flag de execução ativa, compartilhada pelo processo."""

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Marca a execução como ativa; False se já havia uma."""
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()


# Guard padrão do processo
RUN_GUARD = RunGuard()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ScrapeOrchestrator:
    """Executa os scrapers e reconcilia o resultado de cada um com o banco."""

    def __init__(
        self,
        repository: VehicleRepository,
        registry: AuctioneerRegistry,
        adapters: Optional[Dict[str, Optional[BaseScraper]]] = None,
        fipe: Optional[FipeClient] = None,
        cfg: Optional[Config] = None,
        guard: Optional[RunGuard] = None,
    ):
        self.config = cfg or default_config
        self.repository = repository
        self.registry = registry
        self.adapters = adapters if adapters is not None else build_adapters(cfg=self.config)
        self.fipe = fipe
        self.guard = guard or RUN_GUARD
        self.normalizer = VehicleNormalizer()
        self.upsert = UpsertCoordinator(repository)
        self.state = RunState.IDLE

    # ------------------------------------------------------------------
    # Seleção de fontes
    # ------------------------------------------------------------------

    def _select(self, only: Optional[Sequence[str]]) -> Dict[str, Optional[BaseScraper]]:
        if not only:
            return dict(self.adapters)

        selected: Dict[str, Optional[BaseScraper]] = {}
        for requested in only:
            name = resolve_adapter_name(requested)
            if name is None and requested in self.adapters:
                name = requested
            if name is not None and name in self.adapters:
                selected[name] = self.adapters[name]
            else:
                selected[requested] = None
        return selected

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------

    async def run(self, only: Optional[Sequence[str]] = None) -> RunReport:
        """
        Executa todos os scrapers (ou apenas `only`).

        Raises:
            RunAlreadyActiveError: se outra execução está em andamento
        """
        if not self.guard.try_acquire():
            raise RunAlreadyActiveError("Já existe uma execução de scraping em andamento")

        try:
            return await self._run(only)
        finally:
            self.guard.release()

    async def _run(self, only: Optional[Sequence[str]]) -> RunReport:
        started = time.monotonic()
        run_at = datetime.now(BR_TZ)
        report = RunReport(timestamp=run_at.isoformat(), state=RunState.RUNNING.value)
        self.state = RunState.RUNNING

        sources = self._select(only)
        logger.info("Iniciando execução: %s", ", ".join(sources) or "(nenhum leiloeiro)")

        try:
            for index, (name, adapter) in enumerate(sources.items()):
                if index > 0 and self.config.SOURCE_DELAY_SECONDS > 0:
                    await asyncio.sleep(self.config.SOURCE_DELAY_SECONDS)
                report.results.append(await self._run_source(name, adapter, run_at))

            succeeded = any(r.success for r in report.results)
            self.state = RunState.COMPLETED if succeeded or not report.results else RunState.FAILED
        except Exception as e:
            logger.exception("Erro inesperado na execução: %s", e)
            report.error_message = str(e)
            self.state = RunState.FAILED

        report.state = self.state.value
        report.execution_time_ms = _elapsed_ms(started)

        summary = report.summary
        logger.info(
            "Execução finalizada (%s) em %dms: %d coletados, %d criados, %d atualizados, %d erros",
            report.state, report.execution_time_ms, summary["totalScraped"],
            summary["totalCreated"], summary["totalUpdated"], summary["totalErrors"],
        )
        return report

    async def _run_source(
        self,
        name: str,
        adapter: Optional[BaseScraper],
        run_at: datetime,
    ) -> SourceResult:
        result = SourceResult(auctioneer=name)
        started = time.monotonic()
        started_at = datetime.now(BR_TZ)
        auctioneer_id: Optional[str] = None

        try:
            if adapter is None:
                raise ConfigurationError(f"Nenhum scraper registrado para '{name}'")

            auctioneer_id = await asyncio.to_thread(self.registry.resolve, name)
            if auctioneer_id is None:
                raise ConfigurationError(f"Leiloeiro não cadastrado: '{name}'")

            timeout = self.config.ADAPTER_TIMEOUT_SECONDS
            try:
                listings = await asyncio.wait_for(adapter.fetch_listings(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise AdapterTimeoutError(name, timeout) from e

            result.scraped = len(listings)
            result.errors += adapter.stats.extraction_errors

            vehicles = await self._prepare(name, auctioneer_id, adapter.base_url, listings, run_at, result)

            reconciled = await asyncio.to_thread(
                self.upsert.reconcile, auctioneer_id, vehicles, run_at
            )
            result.created = reconciled.created
            result.updated = reconciled.updated
            result.deactivated = reconciled.deactivated
            result.errors += reconciled.errors
            result.error_messages.extend(reconciled.error_messages)
            result.success = True

        except Exception as e:
            result.success = False
            result.errors += 1
            result.error_messages.append(str(e))
            logger.error("[%s] Falha na coleta: %s", name, e)

        result.execution_time_ms = _elapsed_ms(started)
        if auctioneer_id is not None:
            await self._record_source(name, auctioneer_id, result, started_at)
        logger.info(
            "[%s] %s: %d coletados, %d criados, %d atualizados, %d erros (%dms)",
            name, "OK" if result.success else "FALHA", result.scraped, result.created,
            result.updated, result.errors, result.execution_time_ms,
        )
        return result

    async def _record_source(
        self,
        name: str,
        auctioneer_id: str,
        result: SourceResult,
        started_at: datetime,
    ) -> None:
        """
        Atualiza last_scrape_at (só em sucesso) e grava o scraping_logs.

        Falhas aqui não derrubam a fonte: contam como erro no relatório.
        """
        completed_at = datetime.now(BR_TZ)

        if result.success:
            try:
                await asyncio.to_thread(self.registry.touch_auctioneer, auctioneer_id, completed_at)
            except Exception as e:
                result.errors += 1
                result.error_messages.append(f"last_scrape_at: {e}")
                logger.warning("[%s] Falha ao atualizar last_scrape_at: %s", name, e)

        record = result.to_log_record(auctioneer_id, started_at, completed_at)
        try:
            await asyncio.to_thread(self.repository.record_run, record)
        except Exception as e:
            result.errors += 1
            result.error_messages.append(f"registro de execução: {e}")
            logger.warning("[%s] Falha ao gravar registro de execução: %s", name, e)

    async def _prepare(
        self,
        name: str,
        auctioneer_id: str,
        base_url: str,
        listings: List[RawListing],
        run_at: datetime,
        result: SourceResult,
    ) -> List[CanonicalVehicle]:
        """Normaliza, enriquece com FIPE e calcula o score de cada lote."""
        vehicles: List[CanonicalVehicle] = []
        for raw in listings:
            try:
                vehicle = self.normalizer.normalize(raw, auctioneer_id, base_url, scraped_at=run_at)
            except (ValueError, TypeError, ArithmeticError) as e:
                result.errors += 1
                result.error_messages.append(f"normalização de {raw.detail_url}: {e}")
                logger.warning("[%s] Lote ignorado na normalização (%s): %s", name, raw.detail_url, e)
                continue

            if self.fipe is not None:
                await self.fipe.enrich(vehicle)

            apply_deal_score(vehicle, calculate_deal_score(vehicle, current_year=run_at.year))
            vehicles.append(vehicle)
        return vehicles
