"""
Tests for UpsertCoordinator reconciliation.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from yby_scraping.common.parsing import BR_TZ
from yby_scraping.repository import InMemoryVehicleRepository
from yby_scraping.scoring import apply_deal_score, calculate_deal_score
from yby_scraping.upsert import UpsertCoordinator

RUN_AT = datetime(2026, 5, 10, 3, 0, tzinfo=BR_TZ)


def _active_ids(repo, auctioneer_id="auc-1"):
    return sorted(
        row["external_id"] or row["original_url"]
        for row in repo.rows.values()
        if row["auctioneer_id"] == auctioneer_id and row["is_active"]
    )


class TestReconcile:
    @pytest.fixture
    def repo(self):
        return InMemoryVehicleRepository()

    @pytest.fixture
    def coordinator(self, repo):
        return UpsertCoordinator(repo)

    def test_first_run_creates_all(self, coordinator, repo, make_vehicle):
        batch = [make_vehicle(external_id=x, original_url=f"https://x.com/{x}") for x in "ABC"]

        result = coordinator.reconcile("auc-1", batch, RUN_AT)

        assert (result.created, result.updated, result.deactivated, result.errors) == (3, 0, 0, 0)
        assert _active_ids(repo) == ["A", "B", "C"]

    def test_replace_by_presence(self, coordinator, repo, make_vehicle):
        first = [make_vehicle(external_id=x, original_url=f"https://x.com/{x}") for x in "ABC"]
        coordinator.reconcile("auc-1", first, RUN_AT)

        second = [make_vehicle(external_id=x, original_url=f"https://x.com/{x}") for x in "ACD"]
        result = coordinator.reconcile("auc-1", second, RUN_AT)

        assert result.created == 1
        assert result.updated == 2
        assert result.deactivated == 1
        assert _active_ids(repo) == ["A", "C", "D"]
        # B fica no banco, apenas desativado
        assert len(repo.rows) == 4

    def test_idempotent(self, coordinator, repo, make_vehicle):
        batch = [make_vehicle(external_id=x, original_url=f"https://x.com/{x}") for x in "AB"]
        coordinator.reconcile("auc-1", batch, RUN_AT)
        snapshot = {k: dict(v) for k, v in repo.rows.items()}

        result = coordinator.reconcile("auc-1", batch, RUN_AT)

        assert (result.created, result.updated, result.deactivated) == (0, 2, 0)
        assert repo.rows == snapshot

    def test_update_changes_mutable_fields(self, coordinator, repo, make_vehicle):
        coordinator.reconcile("auc-1", [make_vehicle(current_bid=Decimal("1000"))], RUN_AT)
        coordinator.reconcile("auc-1", [make_vehicle(current_bid=Decimal("1500"), deal_score=70)], RUN_AT)

        (row,) = repo.rows.values()
        assert row["current_bid"] == 1500.0
        assert row["deal_score"] == 70
        assert row["scraped_at"] == RUN_AT.isoformat()

    def test_update_clears_values_missing_from_new_run(self, coordinator, repo, make_vehicle):
        first = make_vehicle(current_bid=Decimal("30000"), fipe_price=Decimal("50000"), city="Campinas")
        apply_deal_score(first, calculate_deal_score(first, current_year=2026))
        coordinator.reconcile("auc-1", [first], RUN_AT)

        second = make_vehicle(current_bid=None, fipe_price=None)
        apply_deal_score(second, calculate_deal_score(second, current_year=2026))
        coordinator.reconcile("auc-1", [second], RUN_AT)

        (row,) = repo.rows.values()
        assert row["current_bid"] is None
        assert row["fipe_price"] is None
        assert row["fipe_discount_percentage"] is None
        assert row["city"] is None
        assert row["deal_score"] == second.deal_score

    def test_identity_falls_back_to_url(self, coordinator, repo, make_vehicle):
        vehicle = make_vehicle(external_id=None, original_url="https://x.com/sem-id")
        coordinator.reconcile("auc-1", [vehicle], RUN_AT)
        result = coordinator.reconcile("auc-1", [vehicle], RUN_AT)

        assert result.updated == 1
        assert len(repo.rows) == 1

    def test_other_auctioneer_untouched(self, coordinator, repo, make_vehicle):
        coordinator.reconcile("auc-2", [make_vehicle(auctioneer_id="auc-2", external_id="Z")], RUN_AT)

        coordinator.reconcile("auc-1", [], RUN_AT)

        assert _active_ids(repo, "auc-2") == ["Z"]

    def test_empty_batch_deactivates_all(self, coordinator, repo, make_vehicle):
        coordinator.reconcile("auc-1", [make_vehicle(external_id="A")], RUN_AT)

        result = coordinator.reconcile("auc-1", [], RUN_AT)

        assert result.deactivated == 1
        assert _active_ids(repo) == []

    def test_expired_auction_is_deactivated(self, coordinator, repo, make_vehicle):
        past = datetime(2026, 5, 9, 14, 0, tzinfo=BR_TZ)
        today = datetime(2026, 5, 10, 20, 0, tzinfo=BR_TZ)
        batch = [
            make_vehicle(external_id="OLD", auction_date=past),
            make_vehicle(external_id="TODAY", auction_date=today),
        ]

        result = coordinator.reconcile("auc-1", batch, RUN_AT)

        assert result.created == 2
        assert result.deactivated == 1
        assert _active_ids(repo) == ["TODAY"]

    def test_single_failure_does_not_abort_batch(self, make_vehicle):
        repo = InMemoryVehicleRepository()
        original_insert = repo.insert

        def flaky_insert(record):
            if record["external_id"] == "B":
                raise RuntimeError("duplicate key")
            return original_insert(record)

        repo.insert = flaky_insert
        coordinator = UpsertCoordinator(repo)
        batch = [make_vehicle(external_id=x) for x in "ABC"]

        result = coordinator.reconcile("auc-1", batch, RUN_AT)

        assert result.created == 2
        assert result.errors == 1
        assert "external_id=B" in result.error_messages[0]
        assert _active_ids(repo) == ["A", "C"]

    def test_failed_record_is_not_deactivated(self, make_vehicle):
        repo = InMemoryVehicleRepository()
        coordinator = UpsertCoordinator(repo)
        coordinator.reconcile("auc-1", [make_vehicle(external_id="A")], RUN_AT)

        repo.update = MagicMock(side_effect=RuntimeError("timeout"))
        result = coordinator.reconcile("auc-1", [make_vehicle(external_id="A")], RUN_AT)

        assert result.errors == 1
        assert result.deactivated == 0
        assert _active_ids(repo) == ["A"]

    def test_deactivation_failure_is_reported(self, make_vehicle):
        repo = MagicMock()
        repo.find_by_identity.return_value = None
        repo.insert.return_value = "id-1"
        repo.deactivate_missing.side_effect = RuntimeError("connection reset")

        result = UpsertCoordinator(repo).reconcile("auc-1", [make_vehicle()], RUN_AT)

        assert result.created == 1
        assert result.errors == 1
        assert "connection reset" in result.error_messages[0]
