"""
Módulo de Normalização - RawListing -> CanonicalVehicle.

Responsável por:
1. Completar marca/modelo/ano a partir do título (title_parser)
2. Mapear rótulos livres para os enums de tipo de leilão e de veículo
3. Validar UF e cidade (lista de UFs e blacklist institucional)
4. Resolver URLs relativas de detalhe e de imagem
5. Quantizar valores monetários em 2 casas decimais
"""

import logging
import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from .common.parsing import BR_TZ, clean_text, contains_word, fold_text, parse_year_pair
from .common.url_resolution import resolve_absolute_url
from .models import AuctionType, CanonicalVehicle, RawListing, VehicleType
from .title_parser import parse_vehicle_title

logger = logging.getLogger(__name__)


# Mapeamento de UFs válidas
VALID_UFS = {
    "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO",
    "MA", "MT", "MS", "MG", "PA", "PB", "PR", "PE", "PI",
    "RJ", "RN", "RS", "RO", "RR", "SC", "SP", "SE", "TO"
}

# Nomes de instituições que aparecem no lugar da cidade em alguns sites
INVALID_CITY_KEYWORDS = (
    "BANCO", "SEGURADORA", "FINANCEIRA", "CONCESSIONÁRIA", "CONCESSIONARIA",
    "AUTOMOTIVA", "LEILÃO", "LEILAO", "AUTOMÓVEIS", "AUTOMOVEIS",
    "VEÍCULOS", "VEICULOS",
)

MIN_CITY_LENGTH = 2

# Ordem importa: o primeiro grupo que casar define o tipo
AUCTION_TYPE_KEYWORDS = (
    (AuctionType.JUDICIAL, ("judicial",)),
    (AuctionType.LIEN_BASED, ("fiduciaria", "alienacao")),
    (AuctionType.BANK_REPOSSESSION, ("banco", "bancario", "financeira", "retomada")),
    (AuctionType.SEIZURE, ("apreendido", "apreensao", "detran", "patio")),
    (AuctionType.HYBRID, ("hibrido",)),
    (AuctionType.IN_PERSON, ("presencial",)),
)

VEHICLE_TYPE_KEYWORDS = (
    (VehicleType.MOTORCYCLE, ("moto", "motos", "motocicleta", "motoneta", "scooter")),
    (VehicleType.TRUCK, ("caminhao", "caminhoes", "onibus", "truck", "carreta", "cavalo mecanico")),
    (VehicleType.VAN, ("van", "furgao")),
    (VehicleType.OTHER, ("trator", "reboque", "maquina", "semirreboque")),
)

# Marcas que no Brasil só (ou quase só) vendem um tipo de veículo
MOTORCYCLE_BRANDS = (
    "YAMAHA", "KAWASAKI", "DUCATI", "HARLEY-DAVIDSON", "TRIUMPH", "DAFRA",
    "SHINERAY", "HAOJUE", "ROYAL ENFIELD", "KTM",
)
TRUCK_BRANDS = ("SCANIA", "IVECO", "DAF", "MAN", "AGRALE")

# Palavras do título (modelos e carrocerias). Ordem = precedência:
# caminhão vence van, que vence moto.
TITLE_TYPE_KEYWORDS = (
    (VehicleType.TRUCK, (
        "caminhao", "caminhoes", "truck", "onibus", "bus", "carreta", "bitrem",
        "rodotrem", "cavalo mecanico", "toco", "accelo", "atego", "axor",
        "actros", "fh", "fm", "vm", "cargo", "constellation", "delivery",
        "worker", "stralis", "tector", "eurocargo", "militar", "exercito",
    )),
    (VehicleType.VAN, (
        "van", "minivan", "kombi", "master", "ducato", "sprinter", "furgao",
        "furgon", "panel",
    )),
    (VehicleType.MOTORCYCLE, (
        "moto", "motos", "motocicleta", "motoneta", "scooter",
        "cb 250", "cb 300", "cb 500", "cb 600", "cb 1000",
        "cg 125", "cg 150", "cg 160",
        # Titan só com cilindrada (não confundir com Ford Titanium)
        "titan 125", "titan 150", "titan 160",
        "fan 125", "fan 150", "fan 160",
        "xre", "xtz", "fazer", "mt-03", "mt-07", "mt-09", "crosser", "biz",
        "hornet", "cbr", "twister", "factor", "pop", "bros", "pcx", "nmax", "neo",
    )),
    (VehicleType.OTHER, (
        "trator", "reboque", "semirreboque", "retroescavadeira", "empilhadeira",
        "maquina",
    )),
)

_LOCATION_PATTERN = re.compile(r"^(.*?)\s*[-/,]\s*([A-Za-z]{2})$")
_CENTS = Decimal("0.01")


# ============================================================
# VALIDAÇÃO DE LOCALIZAÇÃO
# ============================================================

def normalize_state(value: Optional[str]) -> Optional[str]:
    """UF em maiúsculas se válida; caso contrário None."""
    if not value:
        return None
    uf = value.strip().upper()
    return uf if uf in VALID_UFS else None


def normalize_city(value: Optional[str]) -> Optional[str]:
    """
    Valida nome de cidade.

    Rejeita nomes curtos demais e nomes de instituições (ex: "BANCO ABC",
    "XYZ VEÍCULOS"), que alguns sites exibem no campo de localização.
    """
    if not value:
        return None

    city = clean_text(value)
    if len(city) < MIN_CITY_LENGTH:
        return None

    upper = city.upper()
    if any(keyword in upper for keyword in INVALID_CITY_KEYWORDS):
        logger.debug("Cidade rejeitada (nome institucional): %s", city)
        return None

    return city


def split_location(text: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Separa "Cidade - UF" ou "Cidade/UF" em (cidade, uf).

    Exemplos:
        >>> split_location("São Paulo - SP")
        ('São Paulo', 'SP')
        >>> split_location("Curitiba/PR")
        ('Curitiba', 'PR')
    """
    cleaned = clean_text(text)
    if not cleaned:
        return (None, None)

    match = _LOCATION_PATTERN.match(cleaned)
    if match and normalize_state(match.group(2)):
        return (match.group(1) or None, match.group(2).upper())

    if normalize_state(cleaned):
        return (None, cleaned.upper())

    return (cleaned, None)


# ============================================================
# MAPEAMENTO DE RÓTULOS
# ============================================================

def map_auction_type(label: Optional[str]) -> AuctionType:
    """Rótulo livre de tipo de leilão -> AuctionType (padrão: online)."""
    folded = fold_text(label)
    for auction_type, keywords in AUCTION_TYPE_KEYWORDS:
        if any(keyword in folded for keyword in keywords):
            return auction_type
    return AuctionType.ONLINE


def _match_type(folded: str, groups) -> Optional[VehicleType]:
    for vehicle_type, keywords in groups:
        if any(contains_word(folded, keyword) for keyword in keywords):
            return vehicle_type
    return None


def map_vehicle_type(label: Optional[str]) -> VehicleType:
    """Rótulo livre de tipo de veículo -> VehicleType (padrão: car)."""
    return _match_type(fold_text(label), VEHICLE_TYPE_KEYWORDS) or VehicleType.CAR


def classify_vehicle_type(
    title: Optional[str],
    brand: Optional[str] = None,
    label: Optional[str] = None,
) -> VehicleType:
    """
    Tipo de veículo a partir das pistas disponíveis, na ordem:

    1. Rótulo de categoria da fonte ("Motos", "Caminhões e Ônibus")
    2. Marca que só vende um tipo (YAMAHA -> moto, SCANIA -> caminhão)
    3. Palavras do título (modelos como CG 160, KOMBI, ATEGO)
    4. Padrão: car
    """
    from_label = _match_type(fold_text(label), VEHICLE_TYPE_KEYWORDS)
    if from_label:
        return from_label

    brand_upper = (brand or "").upper()
    if brand_upper in MOTORCYCLE_BRANDS:
        return VehicleType.MOTORCYCLE
    if brand_upper in TRUCK_BRANDS:
        return VehicleType.TRUCK

    return _match_type(fold_text(title), TITLE_TYPE_KEYWORDS) or VehicleType.CAR


def quantize_money(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


# ============================================================
# NORMALIZADOR
# ============================================================

class VehicleNormalizer:
    """Converte RawListing de qualquer fonte em CanonicalVehicle."""

    def normalize(
        self,
        raw: RawListing,
        auctioneer_id: str,
        base_url: Optional[str] = None,
        scraped_at: Optional[datetime] = None,
    ) -> CanonicalVehicle:
        title = clean_text(raw.title)

        brand = clean_text(raw.brand).upper() or None
        model = clean_text(raw.model) or None
        year_manufacture, year_model = parse_year_pair(raw.year_label)

        if not (brand and model and year_model):
            parsed = parse_vehicle_title(title)
            brand = brand or parsed.brand
            model = model or parsed.model
            if year_model is None and parsed.year is not None:
                year_manufacture = year_model = parsed.year

        city, state = raw.city, raw.state
        if raw.location_text and not (city and state):
            loc_city, loc_state = split_location(raw.location_text)
            city = city or loc_city
            state = state or loc_state

        original_url = resolve_absolute_url(base_url, raw.detail_url) or raw.detail_url
        images = [
            url for url in (resolve_absolute_url(base_url, img) for img in raw.images)
            if url
        ]
        thumbnail = resolve_absolute_url(base_url, raw.image_url)
        if thumbnail and thumbnail not in images:
            images.insert(0, thumbnail)

        return CanonicalVehicle(
            auctioneer_id=auctioneer_id,
            original_url=original_url,
            external_id=raw.external_id,
            title=title,
            brand=brand,
            model=model,
            year_model=year_model,
            year_manufacture=year_manufacture,
            vehicle_type=classify_vehicle_type(title, brand, raw.vehicle_type_label),
            color=clean_text(raw.color) or None,
            fuel_type=clean_text(raw.fuel_type) or None,
            transmission=clean_text(raw.transmission) or None,
            mileage=raw.mileage,
            condition=clean_text(raw.condition) or None,
            state=normalize_state(state),
            city=normalize_city(city),
            current_bid=quantize_money(raw.current_bid),
            minimum_bid=quantize_money(raw.minimum_bid),
            appraised_value=quantize_money(raw.appraised_value),
            has_financing=raw.has_financing,
            auction_type=map_auction_type(raw.auction_type_label),
            auction_date=raw.auction_date,
            thumbnail_url=thumbnail or (images[0] if images else None),
            lot_number=raw.lot_number,
            scraped_at=scraped_at or datetime.now(BR_TZ),
            images=images,
        )
