"""
Contratos de dados do pipeline.

- RawListing: dados brutos de um lote, como extraídos por um scraper
- CanonicalVehicle: veículo normalizado, persistido na tabela vehicles
- DealScore: score de oportunidade, recalculado a cada execução
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class VehicleType(str, Enum):
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    TRUCK = "truck"
    VAN = "van"
    OTHER = "other"


class AuctionType(str, Enum):
    JUDICIAL = "judicial"
    LIEN_BASED = "lien_based"
    BANK_REPOSSESSION = "bank_repossession"
    SEIZURE = "seizure"
    ONLINE = "online"
    IN_PERSON = "in_person"
    HYBRID = "hybrid"


class DealCategory(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    HIGH = "high"


@dataclass
class RawListing:
    """Lote extraído de um site de leiloeiro (schema varia por fonte)."""
    title: str
    detail_url: str

    external_id: Optional[str] = None
    lot_number: Optional[str] = None

    # Valores (já convertidos por parse_price; None se não parseável)
    price_text: Optional[str] = None
    current_bid: Optional[Decimal] = None
    minimum_bid: Optional[Decimal] = None
    appraised_value: Optional[Decimal] = None

    # Mídia
    image_url: Optional[str] = None
    images: List[str] = field(default_factory=list)

    # Localização (texto livre ou campos já separados)
    location_text: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    # Leilão
    auction_type_label: Optional[str] = None
    auction_date: Optional[datetime] = None
    has_financing: Optional[bool] = None

    # Veículo
    vehicle_type_label: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year_label: Optional[str] = None
    mileage: Optional[int] = None
    color: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    condition: Optional[str] = None

    extra: Dict[str, Any] = field(default_factory=dict)


# Campos atualizados quando um veículo já existente é observado novamente
MUTABLE_FIELDS: Tuple[str, ...] = (
    "title", "brand", "model", "version", "year_model", "year_manufacture",
    "vehicle_type", "color", "fuel_type", "transmission", "mileage",
    "condition", "state", "city", "current_bid", "minimum_bid",
    "appraised_value", "has_financing", "auction_type", "auction_date",
    "fipe_price", "fipe_code", "fipe_discount_percentage", "deal_score",
    "thumbnail_url", "lot_number", "images", "original_url",
)


@dataclass
class CanonicalVehicle:
    """Veículo normalizado, independente da fonte."""
    # Identidade
    auctioneer_id: str
    original_url: str
    external_id: Optional[str] = None

    # Descrição
    title: str = ""
    brand: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    year_model: Optional[int] = None
    year_manufacture: Optional[int] = None
    vehicle_type: VehicleType = VehicleType.CAR
    color: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    mileage: Optional[int] = None
    condition: Optional[str] = None

    # Localização
    state: Optional[str] = None
    city: Optional[str] = None

    # Comercial
    current_bid: Optional[Decimal] = None
    minimum_bid: Optional[Decimal] = None
    appraised_value: Optional[Decimal] = None
    has_financing: Optional[bool] = None
    auction_type: Optional[AuctionType] = None
    auction_date: Optional[datetime] = None

    # FIPE
    fipe_price: Optional[Decimal] = None
    fipe_code: Optional[str] = None
    fipe_discount_percentage: Optional[Decimal] = None

    # Derivados
    deal_score: Optional[int] = None
    is_active: bool = True
    thumbnail_url: Optional[str] = None
    lot_number: Optional[str] = None
    scraped_at: Optional[datetime] = None
    images: List[str] = field(default_factory=list)

    @property
    def identity(self) -> Tuple[str, str]:
        """Chave de identidade dentro do leiloeiro: external_id ou URL original."""
        if self.external_id:
            return ("external_id", self.external_id)
        return ("original_url", self.original_url)

    def is_expired(self, as_of: date) -> bool:
        """True se a data do leilão já passou."""
        if self.auction_date is None:
            return False
        return self.auction_date.date() < as_of

    def to_record(self) -> Dict[str, Any]:
        """Converte para dicionário serializável (Supabase / JSON)."""
        return {key: _to_json_value(value) for key, value in asdict(self).items()}

    def mutable_record(self) -> Dict[str, Any]:
        """
        Campos mutáveis para UPDATE.

        Campos não reportados nesta execução vão como None e apagam o valor
        anterior: lance, FIPE e score da linha sempre vêm da mesma coleta.
        """
        record = self.to_record()
        return {key: record[key] for key in MUTABLE_FIELDS}


@dataclass(frozen=True)
class DealScore:
    """Score de oportunidade de um veículo (0-100)."""
    score: int
    discount_vs_fipe: int
    category: DealCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "discount_vs_fipe": self.discount_vs_fipe,
            "category": self.category.value,
        }


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
