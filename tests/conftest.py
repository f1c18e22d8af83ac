"""
Pytest configuration and fixtures for YBY scraping tests.
"""
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from yby_scraping.common.parsing import BR_TZ  # noqa: E402
from yby_scraping.models import AuctionType, CanonicalVehicle, VehicleType  # noqa: E402


@pytest.fixture
def make_vehicle():
    """Factory de CanonicalVehicle com valores neutros para o score."""
    def _make(**overrides):
        fields = dict(
            auctioneer_id="auc-1",
            original_url="https://example.com/lote/1",
            external_id="1",
            title="FIAT UNO 2015",
            vehicle_type=VehicleType.CAR,
        )
        fields.update(overrides)
        return CanonicalVehicle(**fields)
    return _make


@pytest.fixture
def future_date():
    return datetime(2099, 1, 10, 14, 0, tzinfo=BR_TZ)


@pytest.fixture
def priced_vehicle(make_vehicle):
    return make_vehicle(
        fipe_price=Decimal("50000"),
        current_bid=Decimal("30000"),
        year_manufacture=2022,
        mileage=20000,
        auction_type=AuctionType.ONLINE,
        has_financing=True,
    )
