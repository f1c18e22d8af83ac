"""
Tests for the scrape orchestrator (source isolation, timeouts, run guard, report).
"""
import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from yby_scraping.common.parsing import BR_TZ
from yby_scraping.config import Config
from yby_scraping.errors import AdapterNavigationError, RunAlreadyActiveError
from yby_scraping.models import RawListing
from yby_scraping.orchestrator import RunGuard, RunState, ScrapeOrchestrator
from yby_scraping.repository import InMemoryVehicleRepository, StaticAuctioneerRegistry
from yby_scraping.scrapers.base import BaseScraper

FUTURE = datetime(2099, 3, 1, 10, 0, tzinfo=BR_TZ)


def _listing(lot: str, **overrides) -> RawListing:
    fields = dict(
        title="FIAT UNO MILLE 2015",
        detail_url=f"/lote/{lot}",
        external_id=lot,
        current_bid=Decimal("20000"),
        location_text="Campinas - SP",
        auction_date=FUTURE,
    )
    fields.update(overrides)
    return RawListing(**fields)


class FakeAdapter(BaseScraper):
    """Scraper sem navegador: devolve lotes prontos ou falha."""

    base_url = "https://fake.example.com"

    def __init__(self, name, listings=(), error=None, delay=0.0, extraction_errors=0, cfg=None):
        super().__init__(cfg)
        self.name = name
        self.listings = list(listings)
        self.error = error
        self.delay = delay
        self.extraction_errors = extraction_errors

    def parse_card(self, card):
        return None

    async def scrape(self, page):
        return []

    async def fetch_listings(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.stats.extraction_errors = self.extraction_errors
        return list(self.listings)


@pytest.fixture
def cfg():
    return Config(SOURCE_DELAY_SECONDS=0, ADAPTER_TIMEOUT_SECONDS=5)


@pytest.fixture
def repository():
    return InMemoryVehicleRepository()


@pytest.fixture
def registry():
    return StaticAuctioneerRegistry({"Alpha": "auc-alpha", "Beta": "auc-beta"})


def _orchestrator(repository, registry, adapters, cfg, guard=None):
    return ScrapeOrchestrator(
        repository, registry, adapters=adapters, cfg=cfg, guard=guard or RunGuard()
    )


class TestSourceIsolation:
    def test_failed_source_does_not_stop_others(self, repository, registry, cfg):
        adapters = {
            "Alpha": FakeAdapter("Alpha", error=AdapterNavigationError("Alpha", "https://a", "net::ERR")),
            "Beta": FakeAdapter("Beta", listings=[_listing("1"), _listing("2")]),
        }
        orchestrator = _orchestrator(repository, registry, adapters, cfg)

        report = asyncio.run(orchestrator.run())

        alpha, beta = report.results
        assert alpha.success is False
        assert alpha.errors == 1
        assert "ERR" in alpha.error_messages[0]
        assert beta.success is True
        assert beta.scraped == 2
        assert beta.created == 2
        assert report.success is False
        assert report.state == RunState.COMPLETED.value
        assert {row["auctioneer_id"] for row in repository.rows.values()} == {"auc-beta"}

    def test_timeout_marks_source_failed(self, repository, registry):
        cfg = Config(SOURCE_DELAY_SECONDS=0, ADAPTER_TIMEOUT_SECONDS=0.05)
        adapters = {"Alpha": FakeAdapter("Alpha", listings=[_listing("1")], delay=1.0)}

        report = asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        assert report.results[0].success is False
        assert "tempo limite" in report.results[0].error_messages[0]
        assert repository.rows == {}

    def test_unregistered_scraper(self, repository, registry, cfg):
        adapters = {"Alpha": FakeAdapter("Alpha")}
        orchestrator = _orchestrator(repository, registry, adapters, cfg)

        report = asyncio.run(orchestrator.run(only=["Gama"]))

        assert [r.auctioneer for r in report.results] == ["Gama"]
        assert report.results[0].success is False
        assert "Nenhum scraper registrado" in report.results[0].error_messages[0]
        assert report.state == RunState.FAILED.value
        assert orchestrator.state == RunState.FAILED

    def test_auctioneer_missing_from_registry(self, repository, registry, cfg):
        adapters = {"Delta": FakeAdapter("Delta", listings=[_listing("1")])}

        report = asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        assert report.results[0].success is False
        assert "não cadastrado" in report.results[0].error_messages[0]
        assert repository.rows == {}

    def test_extraction_errors_are_counted(self, repository, registry, cfg):
        adapters = {"Beta": FakeAdapter("Beta", listings=[_listing("1")], extraction_errors=2)}

        report = asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        assert report.results[0].success is True
        assert report.results[0].errors == 2


class TestPipeline:
    def test_vehicles_are_normalized_and_scored(self, repository, registry, cfg):
        adapters = {"Beta": FakeAdapter("Beta", listings=[_listing("1")])}

        asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        (row,) = repository.rows.values()
        assert row["original_url"] == "https://fake.example.com/lote/1"
        assert row["brand"] == "FIAT"
        assert row["year_model"] == 2015
        assert row["state"] == "SP"
        assert row["city"] == "Campinas"
        assert row["is_active"] is True
        assert isinstance(row["deal_score"], int)

    def test_second_run_reconciles(self, repository, registry, cfg):
        adapter = FakeAdapter("Beta", listings=[_listing("1"), _listing("2")])
        orchestrator = _orchestrator(repository, registry, {"Beta": adapter}, cfg)
        asyncio.run(orchestrator.run())

        adapter.listings = [_listing("2", current_bid=Decimal("18000")), _listing("3")]
        report = asyncio.run(orchestrator.run())

        result = report.results[0]
        assert (result.created, result.updated, result.deactivated) == (1, 1, 1)
        active = {row["external_id"] for row in repository.rows.values() if row["is_active"]}
        assert active == {"2", "3"}


class TestRunGuard:
    def test_rejects_concurrent_run(self, repository, registry, cfg):
        guard = RunGuard()
        assert guard.try_acquire() is True
        orchestrator = _orchestrator(repository, registry, {}, cfg, guard=guard)

        with pytest.raises(RunAlreadyActiveError):
            asyncio.run(orchestrator.run())
        guard.release()

    def test_guard_released_after_run(self, repository, registry, cfg):
        guard = RunGuard()
        adapters = {"Alpha": FakeAdapter("Alpha", error=RuntimeError("boom"))}

        asyncio.run(_orchestrator(repository, registry, adapters, cfg, guard=guard).run())

        assert guard.active is False


class TestReport:
    def test_report_shape(self, repository, registry, cfg):
        adapters = {"Beta": FakeAdapter("Beta", listings=[_listing("1")])}

        data = asyncio.run(_orchestrator(repository, registry, adapters, cfg).run()).to_dict()

        assert data["success"] is True
        assert data["state"] == "completed"
        assert set(data) >= {"success", "timestamp", "executionTimeMs", "summary", "results"}
        assert data["summary"] == {
            "totalAuctioneers": 1,
            "totalScraped": 1,
            "totalCreated": 1,
            "totalUpdated": 0,
            "totalErrors": 0,
        }
        assert set(data["results"][0]) == {
            "auctioneer", "success", "scraped", "created", "updated", "errors",
            "executionTimeMs", "deactivated", "errorMessages",
        }
        assert "errorMessage" not in data

    def test_empty_run_is_completed(self, repository, registry, cfg):
        report = asyncio.run(_orchestrator(repository, registry, {}, cfg).run())

        assert report.success is True
        assert report.state == RunState.COMPLETED.value
        assert report.summary["totalAuctioneers"] == 0


class FailingLogRepository(InMemoryVehicleRepository):
    def record_run(self, record):
        raise RuntimeError("scraping_logs indisponível")


class TestRunBookkeeping:
    def test_success_is_logged_and_touches_auctioneer(self, repository, registry, cfg):
        adapters = {"Beta": FakeAdapter("Beta", listings=[_listing("1"), _listing("2")])}

        asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        [log] = repository.run_logs
        assert log["auctioneer_id"] == "auc-beta"
        assert log["status"] == "success"
        assert log["vehicles_scraped"] == 2
        assert log["vehicles_created"] == 2
        assert log["error_message"] is None
        assert datetime.fromisoformat(log["started_at"]) <= datetime.fromisoformat(log["completed_at"])
        assert "auc-beta" in registry.last_scrape_at

    def test_failure_is_logged_without_touching_auctioneer(self, repository, registry, cfg):
        error = AdapterNavigationError("Alpha", "https://a", "net::ERR")
        adapters = {"Alpha": FakeAdapter("Alpha", error=error)}

        asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        [log] = repository.run_logs
        assert log["status"] == "error"
        assert "ERR" in log["error_message"]
        assert registry.last_scrape_at == {}

    def test_unregistered_auctioneer_is_not_logged(self, repository, registry, cfg):
        adapters = {"Delta": FakeAdapter("Delta", listings=[_listing("1")])}

        asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        assert repository.run_logs == []

    def test_log_failure_counts_as_error(self, registry, cfg):
        repository = FailingLogRepository()
        adapters = {"Beta": FakeAdapter("Beta", listings=[_listing("1")])}

        report = asyncio.run(_orchestrator(repository, registry, adapters, cfg).run())

        result = report.results[0]
        assert result.success is True
        assert result.errors == 1
        assert "scraping_logs indisponível" in result.error_messages[-1]
        assert len(repository.rows) == 1
