"""
Cliente da tabela FIPE (API pública parallelum, v1).

Fluxo de consulta: marca -> modelo -> ano -> preço. Cada etapa é cacheada
em memória durante a execução. Qualquer falha retorna None: veículo sem
FIPE simplesmente não recebe pontos de desconto no score.

Após um HTTP 429 o cliente se desabilita até o fim da execução (não há
retry).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .common.parsing import parse_price
from .config import Config, config as default_config
from .models import CanonicalVehicle, VehicleType

logger = logging.getLogger(__name__)

VEHICLE_TYPE_PATHS = {
    VehicleType.CAR: "carros",
    VehicleType.VAN: "carros",
    VehicleType.MOTORCYCLE: "motos",
    VehicleType.TRUCK: "caminhoes",
}


@dataclass(frozen=True)
class FipeQuote:
    """Preço de referência FIPE de um veículo."""
    price: Decimal
    fipe_code: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year_model: Optional[int] = None
    reference_month: Optional[str] = None


def _find_by_name(items: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    """Primeiro item cujo nome contém `name` (case-insensitive)."""
    wanted = name.strip().lower()
    if not wanted:
        return None
    for item in items:
        if wanted in str(item.get("nome", "")).lower():
            return item
    return None


class FipeClient:
    """
    Consulta de preços FIPE com cache por execução.

    Uso:
        async with FipeClient() as fipe:
            await fipe.enrich(vehicle)
    """

    def __init__(
        self,
        cfg: Optional[Config] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = cfg or default_config
        self._client = httpx.AsyncClient(
            base_url=self.config.FIPE_API_URL,
            timeout=self.config.FIPE_TIMEOUT_SECONDS,
            headers={"User-Agent": self.config.USER_AGENT},
            transport=transport,
        )
        self.enabled = True
        self._cache: Dict[str, Any] = {}
        self.stats = {"lookups": 0, "hits": 0, "misses": 0, "errors": 0}

    async def __aenter__(self) -> "FipeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str) -> Optional[Any]:
        if path in self._cache:
            return self._cache[path]
        if not self.enabled:
            return None

        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            self.stats["errors"] += 1
            logger.warning("FIPE: erro de rede em %s: %s", path, e)
            return None

        if response.status_code == 429:
            self.enabled = False
            self.stats["errors"] += 1
            logger.warning("FIPE: rate limit atingido; consultas desabilitadas nesta execução")
            return None

        if response.status_code != 200:
            self.stats["errors"] += 1
            logger.debug("FIPE: HTTP %d em %s", response.status_code, path)
            return None

        try:
            data = response.json()
        except ValueError:
            self.stats["errors"] += 1
            logger.warning("FIPE: resposta não-JSON em %s", path)
            return None

        self._cache[path] = data
        return data

    async def _resolve_codes(
        self,
        type_path: str,
        brand: str,
        model: str,
        year: int,
    ) -> Optional[Tuple[str, str, str]]:
        brands = await self._get_json(f"/{type_path}/marcas")
        brand_item = _find_by_name(brands or [], brand)
        if not brand_item:
            return None
        brand_code = str(brand_item["codigo"])

        models = await self._get_json(f"/{type_path}/marcas/{brand_code}/modelos")
        model_items = (models or {}).get("modelos", []) if isinstance(models, dict) else []
        # Nome do modelo na FIPE inclui versão ("UNO MILLE 1.0 ..."); casa pela 1a palavra
        model_item = _find_by_name(model_items, model.split()[0])
        if not model_item:
            return None
        model_code = str(model_item["codigo"])

        years = await self._get_json(
            f"/{type_path}/marcas/{brand_code}/modelos/{model_code}/anos"
        )
        year_item = next(
            (y for y in years or [] if str(y.get("codigo", "")).startswith(str(year))),
            None,
        )
        if not year_item:
            return None

        return brand_code, model_code, str(year_item["codigo"])

    async def lookup(self, vehicle: CanonicalVehicle) -> Optional[FipeQuote]:
        """Busca o preço FIPE de um veículo; None se não encontrado."""
        type_path = VEHICLE_TYPE_PATHS.get(vehicle.vehicle_type)
        year = vehicle.year_model or vehicle.year_manufacture
        if not (self.enabled and type_path and vehicle.brand and vehicle.model and year):
            return None

        self.stats["lookups"] += 1
        codes = await self._resolve_codes(type_path, vehicle.brand, vehicle.model, year)
        if not codes:
            self.stats["misses"] += 1
            return None

        brand_code, model_code, year_code = codes
        data = await self._get_json(
            f"/{type_path}/marcas/{brand_code}/modelos/{model_code}/anos/{year_code}"
        )
        price = parse_price((data or {}).get("Valor")) if isinstance(data, dict) else None
        if price is None:
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        return FipeQuote(
            price=price,
            fipe_code=data.get("CodigoFipe"),
            brand=data.get("Marca"),
            model=data.get("Modelo"),
            year_model=data.get("AnoModelo"),
            reference_month=data.get("MesReferencia"),
        )

    async def enrich(self, vehicle: CanonicalVehicle) -> CanonicalVehicle:
        """Preenche fipe_price/fipe_code do veículo quando a consulta encontra preço."""
        quote = await self.lookup(vehicle)
        if quote:
            vehicle.fipe_price = quote.price
            vehicle.fipe_code = quote.fipe_code
        return vehicle
