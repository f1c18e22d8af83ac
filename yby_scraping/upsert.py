"""
Upsert Coordinator - reconciliação de um lote com a tabela vehicles.

Para cada veículo do lote:
    - existe (mesmo leiloeiro + external_id, ou + URL) -> UPDATE dos campos mutáveis
    - não existe -> INSERT com is_active = true

Depois do lote:
    - linhas ativas do leiloeiro ausentes do lote -> is_active = false
    - linhas com leilão anterior à data da execução -> is_active = false

Lotes não são transacionais: falha de um registro é registrada e o
restante segue.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import List, Optional, Sequence

from .common.parsing import BR_TZ
from .errors import UpsertError
from .models import CanonicalVehicle
from .repository import VehicleRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Contadores de uma reconciliação."""
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)


class UpsertCoordinator:
    """Aplica o lote de um leiloeiro ao repositório."""

    def __init__(self, repository: VehicleRepository):
        self.repository = repository

    def _upsert_one(self, vehicle: CanonicalVehicle, run_at: datetime) -> bool:
        """Grava um veículo. Retorna True se criou, False se atualizou."""
        try:
            existing = self.repository.find_by_identity(
                vehicle.auctioneer_id, vehicle.external_id, vehicle.original_url
            )
            if existing:
                fields = vehicle.mutable_record()
                fields["scraped_at"] = run_at.isoformat()
                fields["is_active"] = not vehicle.is_expired(run_at.date())
                self.repository.update(existing["id"], fields)
                return False

            record = vehicle.to_record()
            record["is_active"] = True
            record["scraped_at"] = run_at.isoformat()
            self.repository.insert(record)
            return True
        except Exception as e:
            key, value = vehicle.identity
            raise UpsertError(f"{key}={value}: {e}") from e

    def reconcile(
        self,
        auctioneer_id: str,
        vehicles: Sequence[CanonicalVehicle],
        run_at: Optional[datetime] = None,
    ) -> ReconcileResult:
        """
        Reconcilia o lote completo de um leiloeiro.

        Só deve ser chamado quando o scraper terminou com sucesso: um lote
        vazio bem-sucedido desativa todos os veículos ativos do leiloeiro.
        """
        run_at = run_at or datetime.now(BR_TZ)
        result = ReconcileResult()

        for vehicle in vehicles:
            try:
                if self._upsert_one(vehicle, run_at):
                    result.created += 1
                else:
                    result.updated += 1
            except UpsertError as e:
                result.errors += 1
                result.error_messages.append(str(e))
                logger.error("[%s] Falha ao gravar veículo %s", auctioneer_id, e)

        # Identidades de todo o lote, inclusive registros que falharam:
        # um veículo ainda anunciado não deve ser desativado por erro de escrita
        external_ids = {v.external_id for v in vehicles if v.external_id}
        original_urls = {v.original_url for v in vehicles if not v.external_id}

        try:
            result.deactivated += self.repository.deactivate_missing(
                auctioneer_id, external_ids, original_urls
            )
            run_day_start = datetime.combine(run_at.date(), time.min, tzinfo=run_at.tzinfo)
            result.deactivated += self.repository.deactivate_expired(
                auctioneer_id, run_day_start
            )
        except Exception as e:
            result.errors += 1
            result.error_messages.append(f"desativação: {e}")
            logger.error("[%s] Falha ao desativar veículos: %s", auctioneer_id, e)

        logger.info(
            "[%s] Reconciliação: %d criados, %d atualizados, %d desativados, %d erros",
            auctioneer_id, result.created, result.updated, result.deactivated, result.errors,
        )
        return result
