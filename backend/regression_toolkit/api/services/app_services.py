"""
Application Services Container

Centralized container for all application-level services, built once per
process by the lifespan and reached from routes through get_services().
"""

import logging
from dataclasses import dataclass

from regression_toolkit.core.config import Settings, get_settings
from regression_toolkit.storage import Database, get_database
from regression_toolkit.storage.config_store import ComparisonConfigStore
from regression_toolkit.storage.run_store import SqlRunStore
from regression_toolkit.visual_testing import (
    BaselineRegistry,
    RegressionLedger,
    RegressionOrchestrator,
    ScreenshotComparator,
    ScreenshotFetcher,
    TrendAggregator,
)

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """
    Container for all application-level services

    Provides centralized access to:
    - Database (SQLite persistence)
    - SqlRunStore (suites, runs, screenshot references)
    - BaselineRegistry, RegressionLedger, TrendAggregator
    - ComparisonConfigStore (thresholds, ignore regions)
    - ScreenshotFetcher, ScreenshotComparator, RegressionOrchestrator
    """

    settings: Settings
    database: Database
    run_store: SqlRunStore
    registry: BaselineRegistry
    ledger: RegressionLedger
    config_store: ComparisonConfigStore
    fetcher: ScreenshotFetcher
    comparator: ScreenshotComparator
    orchestrator: RegressionOrchestrator
    trends: TrendAggregator

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        database: Database | None = None,
    ) -> "AppServices":
        """
        Create new AppServices instance with all dependencies

        Args:
            settings: Settings (default: get_settings())
            database: Database (default: the global database)

        Returns:
            Initialized AppServices instance
        """
        logger.info("Initializing application services...")

        settings = settings or get_settings()
        database = database or get_database()

        run_store = SqlRunStore(database)
        registry = BaselineRegistry(database)
        ledger = RegressionLedger(database, upsert=settings.upsert_regressions)
        config_store = ComparisonConfigStore(database, default_threshold=settings.default_threshold)
        fetcher = ScreenshotFetcher(
            timeout=settings.fetch_timeout,
            retries=settings.fetch_retries,
            backoff=settings.fetch_backoff,
        )
        comparator = ScreenshotComparator()
        orchestrator = RegressionOrchestrator(
            run_store=run_store,
            registry=registry,
            ledger=ledger,
            config=config_store,
            fetcher=fetcher,
            comparator=comparator,
            settings=settings,
        )

        logger.info("Application services initialized")

        return cls(
            settings=settings,
            database=database,
            run_store=run_store,
            registry=registry,
            ledger=ledger,
            config_store=config_store,
            fetcher=fetcher,
            comparator=comparator,
            orchestrator=orchestrator,
            trends=TrendAggregator(ledger),
        )

    async def cleanup(self) -> None:
        """Release network clients (called on shutdown)"""
        logger.info("Cleaning up application services...")
        await self.fetcher.close()
