"""
Deal Score - pontuação de oportunidade de um veículo (0-100).

Função pura: mesmo veículo + mesmo ano de referência = mesmo score.

Sinais (a partir da base 50):
    Desconto vs FIPE   >=30% +40 | >=20% +30 | >=10% +20 | >=5% +10 | <0% -20
    Idade              <=3 +20 | <=5 +15 | <=10 +10 | <=15 +5
    Quilometragem      <30k +15 | <60k +10 | <100k +5 | >200k -5
    Tipo de leilão     online +15 | híbrido +10 | outros +5
    Financiamento      +10

Categorias: >=80 excellent, >=65 good, >=50 fair, abaixo disso high.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .common.parsing import BR_TZ
from .models import AuctionType, CanonicalVehicle, DealCategory, DealScore

BASE_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100

# (desconto mínimo %, pontos), avaliados em ordem
DISCOUNT_TIERS = ((30, 40), (20, 30), (10, 20), (5, 10))
ABOVE_FIPE_PENALTY = -20

# (idade máxima em anos, pontos)
AGE_TIERS = ((3, 20), (5, 15), (10, 10), (15, 5))

# (km máximo exclusivo, pontos)
MILEAGE_TIERS = ((30_000, 15), (60_000, 10), (100_000, 5))
HIGH_MILEAGE_THRESHOLD = 200_000
HIGH_MILEAGE_PENALTY = -5

AUCTION_TYPE_POINTS = {
    AuctionType.ONLINE: 15,
    AuctionType.HYBRID: 10,
}
OTHER_AUCTION_TYPE_POINTS = 5

FINANCING_POINTS = 10

CATEGORY_THRESHOLDS = (
    (80, DealCategory.EXCELLENT),
    (65, DealCategory.GOOD),
    (50, DealCategory.FAIR),
)

CATEGORY_LABELS = {
    DealCategory.EXCELLENT: "Excelente Negócio",
    DealCategory.GOOD: "Bom Negócio",
    DealCategory.FAIR: "Preço Justo",
    DealCategory.HIGH: "Preço Alto",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _discount_percentage(
    fipe_price: Optional[Decimal],
    current_bid: Optional[Decimal],
) -> Optional[float]:
    if not fipe_price or not current_bid or fipe_price <= 0 or current_bid <= 0:
        return None
    return float((fipe_price - current_bid) / fipe_price * 100)


def _discount_points(discount: float) -> int:
    for minimum, points in DISCOUNT_TIERS:
        if discount >= minimum:
            return points
    if discount < 0:
        return ABOVE_FIPE_PENALTY
    return 0


def _age_points(year_manufacture: Optional[int], current_year: int) -> int:
    if year_manufacture is None:
        return 0
    age = current_year - year_manufacture
    for maximum, points in AGE_TIERS:
        if age <= maximum:
            return points
    return 0


def _mileage_points(mileage: Optional[int]) -> int:
    # 0 km é um valor reportado (veículo novo), não ausência
    if mileage is None:
        return 0
    for limit, points in MILEAGE_TIERS:
        if mileage < limit:
            return points
    if mileage > HIGH_MILEAGE_THRESHOLD:
        return HIGH_MILEAGE_PENALTY
    return 0


def _auction_type_points(auction_type: Optional[AuctionType]) -> int:
    if auction_type is None:
        return 0
    return AUCTION_TYPE_POINTS.get(auction_type, OTHER_AUCTION_TYPE_POINTS)


def categorize(score: int) -> DealCategory:
    for minimum, category in CATEGORY_THRESHOLDS:
        if score >= minimum:
            return category
    return DealCategory.HIGH


def calculate_deal_score(
    vehicle: CanonicalVehicle,
    current_year: Optional[int] = None,
) -> DealScore:
    """
    Calcula o Deal Score de um veículo.

    Args:
        vehicle: Veículo normalizado
        current_year: Ano de referência para a idade. O orquestrador passa o
            ano da execução; sem ele usa o ano corrente (America/Sao_Paulo).

    Returns:
        DealScore com score em [0, 100], desconto vs FIPE arredondado
        (0 quando não calculável) e categoria.
    """
    if current_year is None:
        current_year = datetime.now(BR_TZ).year

    score = float(BASE_SCORE)
    discount = _discount_percentage(vehicle.fipe_price, vehicle.current_bid)

    if discount is not None:
        score += _discount_points(discount)

    score += _age_points(vehicle.year_manufacture, current_year)
    score += _mileage_points(vehicle.mileage)
    score += _auction_type_points(vehicle.auction_type)

    if vehicle.has_financing:
        score += FINANCING_POINTS

    final = _round_half_up(min(MAX_SCORE, max(MIN_SCORE, score)))

    return DealScore(
        score=final,
        discount_vs_fipe=_round_half_up(discount) if discount is not None else 0,
        category=categorize(final),
    )


def score_label(score: int) -> str:
    """Rótulo em português exibido junto ao score."""
    return CATEGORY_LABELS[categorize(score)]


def apply_deal_score(vehicle: CanonicalVehicle, deal: DealScore) -> CanonicalVehicle:
    """Grava score e desconto FIPE no veículo (colunas persistidas)."""
    vehicle.deal_score = deal.score
    if vehicle.fipe_price and vehicle.current_bid:
        vehicle.fipe_discount_percentage = Decimal(deal.discount_vs_fipe)
    else:
        vehicle.fipe_discount_percentage = None
    return vehicle
