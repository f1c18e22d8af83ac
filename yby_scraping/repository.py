"""
Repositórios - camada de persistência.

- VehicleRepository: tabela vehicles (Supabase ou memória)
- AuctioneerRegistry: resolve nome de leiloeiro -> id

Linhas nunca são apagadas: veículos que saem do ar são apenas desativados
(is_active = false).
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .common.parsing import slugify
from .config import Config, config as default_config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Limite de linhas por resposta do PostgREST
FETCH_CHUNK_SIZE = 1000

_RANGE_SUFFIXES = ("__gte", "__lte")


@dataclass
class SearchPage:
    """Página de resultados de busca."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


def _split_filter_key(key: str):
    for suffix in _RANGE_SUFFIXES:
        if key.endswith(suffix):
            return key[: -len(suffix)], suffix[2:]
    return key, "eq"


def _is_present(row: Mapping[str, Any], external_ids: set, original_urls: set) -> bool:
    if row.get("external_id") and row["external_id"] in external_ids:
        return True
    return bool(row.get("original_url")) and row["original_url"] in original_urls


def create_supabase_client(cfg: Optional[Config] = None):
    """Cria cliente Supabase a partir de SUPABASE_URL / SUPABASE_SERVICE_KEY."""
    cfg = cfg or default_config
    if not cfg.supabase_enabled:
        raise ConfigurationError(
            "Credenciais Supabase não encontradas (SUPABASE_URL / SUPABASE_SERVICE_KEY)"
        )

    from supabase import create_client

    client = create_client(cfg.supabase_url, cfg.supabase_key)
    logger.info("Supabase conectado: %s", cfg.supabase_url)
    return client


# ============================================================
# VEÍCULOS
# ============================================================

class VehicleRepository(ABC):
    """Contrato do armazenamento de veículos."""

    @abstractmethod
    def find_by_identity(
        self,
        auctioneer_id: str,
        external_id: Optional[str],
        original_url: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """Busca linha por (leiloeiro, external_id) ou, sem ele, (leiloeiro, URL)."""

    @abstractmethod
    def insert(self, record: Dict[str, Any]) -> str:
        """Insere linha e retorna o id gerado."""

    @abstractmethod
    def update(self, row_id: str, fields: Dict[str, Any]) -> None:
        """Atualização parcial de uma linha."""

    @abstractmethod
    def deactivate_missing(
        self,
        auctioneer_id: str,
        external_ids: Iterable[str],
        original_urls: Iterable[str],
    ) -> int:
        """Desativa linhas ativas do leiloeiro ausentes do lote. Retorna quantas."""

    @abstractmethod
    def deactivate_expired(self, auctioneer_id: str, before: datetime) -> int:
        """Desativa linhas ativas com auction_date anterior a `before`."""

    @abstractmethod
    def search(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        page_size: int = 20,
        order_by: str = "deal_score",
        descending: bool = True,
    ) -> SearchPage:
        """Busca paginada; filtros por igualdade ou sufixos __gte / __lte."""

    @abstractmethod
    def record_run(self, record: Dict[str, Any]) -> None:
        """Grava o registro de execução de um leiloeiro (scraping_logs)."""


class SupabaseVehicleRepository(VehicleRepository):
    """Tabela vehicles no Supabase (PostgREST)."""

    def __init__(self, client=None, cfg: Optional[Config] = None):
        self.config = cfg or default_config
        self.client = client or create_supabase_client(self.config)
        self.table_name = self.config.VEHICLES_TABLE

    def _table(self):
        return self.client.table(self.table_name)

    def find_by_identity(self, auctioneer_id, external_id, original_url):
        query = self._table().select("*").eq("auctioneer_id", auctioneer_id)
        if external_id:
            query = query.eq("external_id", external_id)
        elif original_url:
            query = query.eq("original_url", original_url)
        else:
            return None

        response = query.limit(1).execute()
        return response.data[0] if response.data else None

    def insert(self, record):
        response = self._table().insert(record).execute()
        if not response.data:
            raise RuntimeError("INSERT não retornou a linha criada")
        return response.data[0]["id"]

    def update(self, row_id, fields):
        self._table().update(fields).eq("id", row_id).execute()

    def _active_rows(self, auctioneer_id: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            response = (
                self._table()
                .select("id, external_id, original_url")
                .eq("auctioneer_id", auctioneer_id)
                .eq("is_active", True)
                .order("id")
                .range(start, start + FETCH_CHUNK_SIZE - 1)
                .execute()
            )
            chunk = response.data or []
            rows.extend(chunk)
            if len(chunk) < FETCH_CHUNK_SIZE:
                return rows
            start += FETCH_CHUNK_SIZE

    def _deactivate_ids(self, ids: List[str]) -> None:
        for i in range(0, len(ids), FETCH_CHUNK_SIZE):
            chunk = ids[i:i + FETCH_CHUNK_SIZE]
            self._table().update({"is_active": False}).in_("id", chunk).execute()

    def deactivate_missing(self, auctioneer_id, external_ids, original_urls):
        external_ids, original_urls = set(external_ids), set(original_urls)
        stale = [
            row["id"]
            for row in self._active_rows(auctioneer_id)
            if not _is_present(row, external_ids, original_urls)
        ]
        if stale:
            self._deactivate_ids(stale)
        logger.debug("%d veículos ausentes desativados (leiloeiro %s)", len(stale), auctioneer_id)
        return len(stale)

    def deactivate_expired(self, auctioneer_id, before):
        response = (
            self._table()
            .update({"is_active": False})
            .eq("auctioneer_id", auctioneer_id)
            .eq("is_active", True)
            .lt("auction_date", before.isoformat())
            .execute()
        )
        return len(response.data or [])

    def search(self, filters=None, page=1, page_size=20, order_by="deal_score", descending=True):
        page = max(1, page)
        query = self._table().select("*", count="exact")

        for key, value in (filters or {}).items():
            column, op = _split_filter_key(key)
            query = getattr(query, op)(column, value)

        start = (page - 1) * page_size
        response = (
            query.order(order_by, desc=descending)
            .range(start, start + page_size - 1)
            .execute()
        )
        return SearchPage(
            items=response.data or [],
            total=response.count or 0,
            page=page,
            page_size=page_size,
        )

    def record_run(self, record):
        self.client.table(self.config.SCRAPING_LOGS_TABLE).insert(record).execute()


class InMemoryVehicleRepository(VehicleRepository):
    """Armazenamento em memória (dry-run e testes)."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.run_logs: List[Dict[str, Any]] = []

    def find_by_identity(self, auctioneer_id, external_id, original_url):
        if external_id:
            key, value = "external_id", external_id
        elif original_url:
            key, value = "original_url", original_url
        else:
            return None

        for row in self.rows.values():
            if row.get("auctioneer_id") == auctioneer_id and row.get(key) == value:
                return dict(row)
        return None

    def insert(self, record):
        row_id = record.get("id") or str(uuid.uuid4())
        self.rows[row_id] = {**record, "id": row_id}
        return row_id

    def update(self, row_id, fields):
        if row_id not in self.rows:
            raise KeyError(row_id)
        self.rows[row_id].update(fields)

    def _active(self, auctioneer_id: str) -> List[Dict[str, Any]]:
        return [
            row for row in self.rows.values()
            if row.get("auctioneer_id") == auctioneer_id and row.get("is_active")
        ]

    def deactivate_missing(self, auctioneer_id, external_ids, original_urls):
        external_ids, original_urls = set(external_ids), set(original_urls)
        count = 0
        for row in self._active(auctioneer_id):
            if not _is_present(row, external_ids, original_urls):
                row["is_active"] = False
                count += 1
        return count

    def deactivate_expired(self, auctioneer_id, before):
        count = 0
        for row in self._active(auctioneer_id):
            auction_date = row.get("auction_date")
            if isinstance(auction_date, str):
                auction_date = datetime.fromisoformat(auction_date)
            if auction_date and auction_date < before:
                row["is_active"] = False
                count += 1
        return count

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        for key, expected in filters.items():
            column, op = _split_filter_key(key)
            value = row.get(column)
            if op == "eq" and value != expected:
                return False
            if op == "gte" and (value is None or value < expected):
                return False
            if op == "lte" and (value is None or value > expected):
                return False
        return True

    def search(self, filters=None, page=1, page_size=20, order_by="deal_score", descending=True):
        page = max(1, page)
        matched = [dict(r) for r in self.rows.values() if self._matches(r, filters or {})]

        # Valores nulos sempre no fim, independente da direção
        with_value = [r for r in matched if r.get(order_by) is not None]
        without_value = [r for r in matched if r.get(order_by) is None]
        with_value.sort(key=lambda r: r[order_by], reverse=descending)
        ordered = with_value + without_value

        start = (page - 1) * page_size
        return SearchPage(
            items=ordered[start:start + page_size],
            total=len(matched),
            page=page,
            page_size=page_size,
        )

    def record_run(self, record):
        self.run_logs.append(dict(record))


# ============================================================
# LEILOEIROS
# ============================================================

class AuctioneerRegistry(ABC):
    """Resolve o nome de um leiloeiro para o id cadastrado."""

    @abstractmethod
    def resolve(self, name: str) -> Optional[str]:
        """Id do leiloeiro ou None se não cadastrado."""

    @abstractmethod
    def touch_auctioneer(self, auctioneer_id: str, scraped_at: datetime) -> None:
        """Marca last_scrape_at do leiloeiro após uma coleta bem sucedida."""


class SupabaseAuctioneerRegistry(AuctioneerRegistry):
    """Tabela auctioneers no Supabase: busca por nome e depois por slug."""

    def __init__(self, client=None, cfg: Optional[Config] = None):
        self.config = cfg or default_config
        self.client = client or create_supabase_client(self.config)
        self.table_name = self.config.AUCTIONEERS_TABLE

    def _first_id(self, column: str, value: str) -> Optional[str]:
        response = (
            self.client.table(self.table_name)
            .select("id")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        return response.data[0]["id"] if response.data else None

    def resolve(self, name):
        auctioneer_id = self._first_id("name", name)
        if auctioneer_id is None:
            auctioneer_id = self._first_id("slug", slugify(name))
        if auctioneer_id is None:
            logger.warning("Leiloeiro não cadastrado: %s", name)
        return auctioneer_id

    def touch_auctioneer(self, auctioneer_id, scraped_at):
        (
            self.client.table(self.table_name)
            .update({"last_scrape_at": scraped_at.isoformat()})
            .eq("id", auctioneer_id)
            .execute()
        )


class StaticAuctioneerRegistry(AuctioneerRegistry):
    """Mapa fixo nome/slug -> id."""

    def __init__(self, mapping: Mapping[str, str]):
        self._ids: Dict[str, str] = {}
        for name, auctioneer_id in mapping.items():
            self._ids[name.lower()] = auctioneer_id
            self._ids[slugify(name)] = auctioneer_id
        self.last_scrape_at: Dict[str, datetime] = {}

    def resolve(self, name):
        return self._ids.get(name.lower()) or self._ids.get(slugify(name))

    def touch_auctioneer(self, auctioneer_id, scraped_at):
        self.last_scrape_at[auctioneer_id] = scraped_at
