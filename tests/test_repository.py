"""
Tests for the vehicle repositories and auctioneer registries.
"""
from datetime import datetime
from unittest.mock import MagicMock, call

import pytest

from yby_scraping.common.parsing import BR_TZ
from yby_scraping.config import Config
from yby_scraping.errors import ConfigurationError
from yby_scraping.repository import (
    InMemoryVehicleRepository,
    SearchPage,
    StaticAuctioneerRegistry,
    SupabaseAuctioneerRegistry,
    SupabaseVehicleRepository,
    create_supabase_client,
)


def _row(row_id, **fields):
    base = {"id": row_id, "auctioneer_id": "auc-1", "is_active": True}
    base.update(fields)
    return base


class TestInMemoryVehicleRepository:
    @pytest.fixture
    def repo(self):
        repo = InMemoryVehicleRepository()
        repo.insert(_row("r1", external_id="A", original_url="https://x.com/a", deal_score=80, state="SP"))
        repo.insert(_row("r2", external_id="B", original_url="https://x.com/b", deal_score=60, state="RJ"))
        repo.insert(_row("r3", external_id=None, original_url="https://x.com/c", deal_score=None, state="SP"))
        repo.insert(_row("r4", auctioneer_id="auc-2", external_id="A", original_url="https://y.com/a"))
        return repo

    def test_find_by_external_id_is_scoped_to_auctioneer(self, repo):
        assert repo.find_by_identity("auc-1", "A", None)["id"] == "r1"
        assert repo.find_by_identity("auc-2", "A", None)["id"] == "r4"

    def test_find_by_url_fallback(self, repo):
        assert repo.find_by_identity("auc-1", None, "https://x.com/c")["id"] == "r3"

    def test_find_missing(self, repo):
        assert repo.find_by_identity("auc-1", "Z", None) is None
        assert repo.find_by_identity("auc-1", None, None) is None

    def test_insert_generates_id(self):
        repo = InMemoryVehicleRepository()
        row_id = repo.insert({"auctioneer_id": "auc-1", "external_id": "A"})
        assert row_id
        assert repo.rows[row_id]["external_id"] == "A"

    def test_update(self, repo):
        repo.update("r1", {"current_bid": 1000.0})
        assert repo.rows["r1"]["current_bid"] == 1000.0

    def test_update_unknown_row(self, repo):
        with pytest.raises(KeyError):
            repo.update("nope", {"current_bid": 1.0})

    def test_deactivate_missing(self, repo):
        count = repo.deactivate_missing("auc-1", {"A"}, {"https://x.com/c"})
        assert count == 1
        assert repo.rows["r2"]["is_active"] is False
        assert repo.rows["r1"]["is_active"] is True
        assert repo.rows["r3"]["is_active"] is True
        # Outro leiloeiro não é afetado
        assert repo.rows["r4"]["is_active"] is True

    def test_deactivate_missing_with_empty_batch(self, repo):
        assert repo.deactivate_missing("auc-1", set(), set()) == 3

    def test_deactivate_expired(self, repo):
        repo.update("r1", {"auction_date": "2020-01-01T10:00:00-03:00"})
        repo.update("r2", {"auction_date": "2099-01-01T10:00:00-03:00"})

        count = repo.deactivate_expired("auc-1", datetime(2026, 1, 1, tzinfo=BR_TZ))

        assert count == 1
        assert repo.rows["r1"]["is_active"] is False
        assert repo.rows["r2"]["is_active"] is True

    def test_search_filters_and_sort(self, repo):
        page = repo.search({"state": "SP", "auctioneer_id": "auc-1"})
        assert [r["id"] for r in page.items] == ["r1", "r3"]
        assert page.total == 2

    def test_search_range_filter(self, repo):
        page = repo.search({"deal_score__gte": 70})
        assert [r["id"] for r in page.items] == ["r1"]
        page = repo.search({"deal_score__lte": 70})
        assert [r["id"] for r in page.items] == ["r2"]

    def test_search_ascending_keeps_nulls_last(self, repo):
        page = repo.search({"auctioneer_id": "auc-1"}, descending=False)
        assert [r["id"] for r in page.items] == ["r2", "r1", "r3"]

    def test_search_pagination(self, repo):
        page = repo.search({"auctioneer_id": "auc-1"}, page=2, page_size=2)
        assert [r["id"] for r in page.items] == ["r3"]
        assert page.total == 3
        assert page.total_pages == 2

    def test_record_run_keeps_logs(self):
        repo = InMemoryVehicleRepository()
        repo.record_run({"auctioneer_id": "auc-1", "status": "error"})
        assert repo.run_logs == [{"auctioneer_id": "auc-1", "status": "error"}]


class TestSearchPage:
    def test_total_pages(self):
        assert SearchPage(total=41, page_size=20).total_pages == 3
        assert SearchPage(total=0, page_size=20).total_pages == 0


class TestSupabaseVehicleRepository:
    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def repo(self, client):
        return SupabaseVehicleRepository(client=client, cfg=Config())

    def test_find_by_external_id(self, repo, client):
        query = client.table.return_value.select.return_value
        query.eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "r1"}]
        )

        row = repo.find_by_identity("auc-1", "A", "https://x.com/a")

        assert row == {"id": "r1"}
        client.table.assert_called_with("vehicles")
        query.eq.assert_called_once_with("auctioneer_id", "auc-1")
        query.eq.return_value.eq.assert_called_once_with("external_id", "A")

    def test_find_by_url_when_no_external_id(self, repo, client):
        query = client.table.return_value.select.return_value
        query.eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])

        assert repo.find_by_identity("auc-1", None, "https://x.com/a") is None
        query.eq.return_value.eq.assert_called_once_with("original_url", "https://x.com/a")

    def test_insert_returns_id(self, repo, client):
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[{"id": "new-id"}]
        )
        assert repo.insert({"external_id": "A"}) == "new-id"

    def test_insert_without_returned_row_raises(self, repo, client):
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
        with pytest.raises(RuntimeError):
            repo.insert({"external_id": "A"})

    def test_update(self, repo, client):
        repo.update("r1", {"deal_score": 70})
        client.table.return_value.update.assert_called_once_with({"deal_score": 70})
        client.table.return_value.update.return_value.eq.assert_called_once_with("id", "r1")

    def test_deactivate_missing(self, repo, client):
        select_chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        select_chain.order.return_value.range.return_value.execute.return_value = MagicMock(data=[
            {"id": "r1", "external_id": "A", "original_url": "https://x.com/a"},
            {"id": "r2", "external_id": "B", "original_url": "https://x.com/b"},
            {"id": "r3", "external_id": None, "original_url": "https://x.com/c"},
        ])

        count = repo.deactivate_missing("auc-1", ["A"], ["https://x.com/c"])

        assert count == 1
        client.table.return_value.update.assert_called_once_with({"is_active": False})
        client.table.return_value.update.return_value.in_.assert_called_once_with("id", ["r2"])

    def test_deactivate_missing_nothing_stale(self, repo, client):
        select_chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        select_chain.order.return_value.range.return_value.execute.return_value = MagicMock(data=[
            {"id": "r1", "external_id": "A", "original_url": "https://x.com/a"},
        ])

        assert repo.deactivate_missing("auc-1", ["A"], []) == 0
        client.table.return_value.update.assert_not_called()

    def test_deactivate_expired(self, repo, client):
        chain = client.table.return_value.update.return_value.eq.return_value.eq.return_value
        chain.lt.return_value.execute.return_value = MagicMock(data=[{"id": "r1"}, {"id": "r2"}])
        before = datetime(2026, 1, 1, tzinfo=BR_TZ)

        assert repo.deactivate_expired("auc-1", before) == 2
        chain.lt.assert_called_once_with("auction_date", before.isoformat())

    def test_search(self, repo, client):
        query = client.table.return_value.select.return_value
        ordered = query.eq.return_value.gte.return_value.order.return_value
        ordered.range.return_value.execute.return_value = MagicMock(data=[{"id": "r1"}], count=42)

        page = repo.search({"state": "SP", "deal_score__gte": 70}, page=2, page_size=20)

        client.table.return_value.select.assert_called_once_with("*", count="exact")
        query.eq.assert_called_once_with("state", "SP")
        query.eq.return_value.gte.assert_called_once_with("deal_score", 70)
        query.eq.return_value.gte.return_value.order.assert_called_once_with("deal_score", desc=True)
        ordered.range.assert_called_once_with(20, 39)
        assert page.items == [{"id": "r1"}]
        assert page.total == 42

    def test_record_run(self, repo, client):
        repo.record_run({"auctioneer_id": "auc-1", "status": "success"})

        client.table.assert_called_with("scraping_logs")
        client.table.return_value.insert.assert_called_once_with(
            {"auctioneer_id": "auc-1", "status": "success"}
        )
        client.table.return_value.insert.return_value.execute.assert_called_once()


class TestAuctioneerRegistries:
    def test_supabase_registry_falls_back_to_slug(self):
        client = MagicMock()
        chain = client.table.return_value.select.return_value
        chain.eq.return_value.limit.return_value.execute.side_effect = [
            MagicMock(data=[]),
            MagicMock(data=[{"id": "auc-9"}]),
        ]
        registry = SupabaseAuctioneerRegistry(client=client, cfg=Config())

        assert registry.resolve("Sodré Santoro") == "auc-9"
        client.table.assert_called_with("auctioneers")
        assert chain.eq.call_args_list == [
            call("name", "Sodré Santoro"),
            call("slug", "sodre-santoro"),
        ]

    def test_supabase_registry_missing(self):
        client = MagicMock()
        chain = client.table.return_value.select.return_value
        chain.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
        registry = SupabaseAuctioneerRegistry(client=client, cfg=Config())

        assert registry.resolve("Desconhecido") is None

    def test_static_registry(self):
        registry = StaticAuctioneerRegistry({"Sodré Santoro": "auc-1"})
        assert registry.resolve("Sodré Santoro") == "auc-1"
        assert registry.resolve("sodre santoro") == "auc-1"
        assert registry.resolve("Superbid") is None

    def test_supabase_registry_touch(self):
        client = MagicMock()
        registry = SupabaseAuctioneerRegistry(client=client, cfg=Config())
        scraped_at = datetime(2026, 5, 10, 3, 0, tzinfo=BR_TZ)

        registry.touch_auctioneer("auc-9", scraped_at)

        client.table.assert_called_with("auctioneers")
        client.table.return_value.update.assert_called_once_with(
            {"last_scrape_at": scraped_at.isoformat()}
        )
        client.table.return_value.update.return_value.eq.assert_called_once_with("id", "auc-9")

    def test_static_registry_touch(self):
        registry = StaticAuctioneerRegistry({"Sodré Santoro": "auc-1"})
        scraped_at = datetime(2026, 5, 10, 3, 0, tzinfo=BR_TZ)

        registry.touch_auctioneer("auc-1", scraped_at)

        assert registry.last_scrape_at == {"auc-1": scraped_at}


class TestCreateSupabaseClient:
    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            create_supabase_client(Config())
