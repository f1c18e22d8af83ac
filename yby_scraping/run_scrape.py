#!/usr/bin/env python3
"""
Run Scrape - executa a coleta de todos os leiloeiros.

Uso:
    python -m yby_scraping.run_scrape [--auctioneers sodre,superbid] [--dry-run] [--output FILE]

Flags:
    --auctioneers: Leiloeiros separados por vírgula (nome, slug ou apelido)
    --dry-run: Usa armazenamento em memória (não grava no Supabase)
    --output: Salva o relatório JSON no arquivo informado

Exit code 1 quando algum leiloeiro falhou.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .common.parsing import BR_TZ, slugify
from .config import Config, config
from .errors import ConfigurationError, RunAlreadyActiveError
from .fipe import FipeClient
from .logging_setup import setup_logging
from .orchestrator import RunState, ScrapeOrchestrator
from .report import RunReport
from .repository import (
    AuctioneerRegistry,
    InMemoryVehicleRepository,
    StaticAuctioneerRegistry,
    SupabaseAuctioneerRegistry,
    SupabaseVehicleRepository,
    VehicleRepository,
    create_supabase_client,
)
from .scrapers import available_adapters

logger = logging.getLogger(__name__)


def create_stores(cfg: Config, dry_run: bool) -> Tuple[VehicleRepository, AuctioneerRegistry]:
    """Repositório e registro de leiloeiros (Supabase ou memória)."""
    if dry_run:
        logger.info("Dry-run: usando armazenamento em memória")
        registry = StaticAuctioneerRegistry({name: slugify(name) for name in available_adapters()})
        return InMemoryVehicleRepository(), registry

    client = create_supabase_client(cfg)
    return (
        SupabaseVehicleRepository(client=client, cfg=cfg),
        SupabaseAuctioneerRegistry(client=client, cfg=cfg),
    )


def _split_names(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [name.strip() for name in raw.split(",") if name.strip()]


async def run_pipeline(
    cfg: Config,
    only: Sequence[str],
    dry_run: bool = False,
) -> RunReport:
    """
    Monta os armazenamentos e executa o orquestrador.

    Credenciais ausentes ou execução já ativa viram um relatório com
    state=failed e errorMessage, em vez de exceção.
    """
    try:
        repository, registry = create_stores(cfg, dry_run)
    except ConfigurationError as e:
        logger.error("Configuração inválida: %s", e)
        return _failed_report(str(e))

    fipe = FipeClient(cfg) if cfg.FIPE_LOOKUP_ENABLED else None
    try:
        orchestrator = ScrapeOrchestrator(repository, registry, fipe=fipe, cfg=cfg)
        return await orchestrator.run(only=only or None)
    except RunAlreadyActiveError as e:
        logger.error("%s", e)
        return _failed_report(str(e))
    finally:
        if fipe is not None:
            await fipe.close()


def _failed_report(message: str) -> RunReport:
    return RunReport(
        timestamp=datetime.now(BR_TZ).isoformat(),
        state=RunState.FAILED.value,
        error_message=message,
    )



def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="YBY Leilões - coleta de veículos")
    parser.add_argument("--auctioneers", type=str, default=None,
                        help="Leiloeiros separados por vírgula (default: todos ou AUCTIONEERS)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Não grava no Supabase (armazenamento em memória)")
    parser.add_argument("--output", type=Path, default=None,
                        help="Arquivo para salvar o relatório JSON")
    parser.add_argument("--log-level", type=str, default=config.LOG_LEVEL,
                        help="Nível de log (default: LOG_LEVEL ou INFO)")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    only = _split_names(args.auctioneers) or config.auctioneer_filter
    logger.info("=" * 60)
    logger.info("YBY LEILÕES - Execução de scraping")
    logger.info("Leiloeiros: %s", ", ".join(only) if only else "todos")
    logger.info("Dry-run: %s", args.dry_run)
    logger.info("=" * 60)

    report = asyncio.run(run_pipeline(config, only, dry_run=args.dry_run))
    output = report.to_json()
    print(output)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output, encoding="utf-8")
        logger.info("Relatório salvo: %s", args.output)

    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
