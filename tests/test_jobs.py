"""Tests for scheduled jobs."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from sqlalchemy import select

from magicodex.db.operations import SUCCESS, complete_sync_run, create_sync_run, utcnow
from magicodex.jobs import prune_sync_runs, sync_catalog
from magicodex.jobs.sync_catalog import build_parser, run_sync
from magicodex.models.db import SyncRunDB
from magicodex.services.sync_orchestrator import SyncRequest, SyncType


class TestSyncCatalogArgs:
    def test_defaults(self) -> None:
        args = build_parser().parse_args([])

        assert args.sync_type == "full"
        assert args.set_code is None
        assert args.force is False

    def test_all_options(self) -> None:
        args = build_parser().parse_args(
            ["--type", "cards", "--set", "DMU", "--lang", "fr", "--force"]
        )

        assert (args.sync_type, args.set_code, args.language, args.force) == (
            "cards",
            "DMU",
            "fr",
            True,
        )

    def test_rejects_unknown_type(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--type", "everything"])


class TestRunSync:
    @pytest.mark.asyncio
    @respx.mock
    async def test_run_sync_success(self, orchestrator, raw_set):
        """A successful sync returns its result."""
        respx.get("https://api.scryfall.com/sets").mock(
            return_value=httpx.Response(200, json={"data": [raw_set()]})
        )

        with patch("magicodex.jobs.sync_catalog.init_db", new_callable=AsyncMock):
            result = await run_sync(SyncRequest(SyncType.SETS), orchestrator)

        assert result is not None
        assert result.status == SUCCESS
        assert result.records_processed == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_run_sync_upstream_failure(self, orchestrator):
        """Catalog failures are logged and reported as None."""
        respx.get("https://api.scryfall.com/sets").mock(return_value=httpx.Response(400))

        with patch("magicodex.jobs.sync_catalog.init_db", new_callable=AsyncMock):
            result = await run_sync(SyncRequest(SyncType.SETS), orchestrator)

        assert result is None

    @pytest.mark.asyncio
    async def test_run_sync_unknown_set(self, orchestrator):
        with patch("magicodex.jobs.sync_catalog.init_db", new_callable=AsyncMock):
            result = await run_sync(SyncRequest(SyncType.EXTRAS, set_code="NOPE"), orchestrator)

        assert result is None

    def test_main_exit_codes(self):
        with patch("magicodex.jobs.sync_catalog.run_sync", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = MagicMock()
            assert sync_catalog.main(["--type", "sets"]) == 0

            request = mock_run.call_args.args[0]
            assert request.sync_type is SyncType.SETS

            mock_run.return_value = None
            assert sync_catalog.main([]) == 1


class TestPruneSyncRuns:
    @pytest.mark.asyncio
    async def test_prune_deletes_old_runs(self, session_factory, session):
        async with session_factory() as setup:
            for age in (timedelta(days=60), timedelta(days=1)):
                run = await create_sync_run(setup, "sets", started_at=utcnow() - age)
                await complete_sync_run(setup, run.id, SUCCESS, "done")
            await setup.commit()

        with patch("magicodex.jobs.prune_sync_runs.async_session_factory", session_factory):
            deleted = await prune_sync_runs.prune(30)

        assert deleted == 1
        remaining = (await session.execute(select(SyncRunDB))).scalars().all()
        assert len(remaining) == 1

    def test_main_rejects_negative_days(self):
        with pytest.raises(SystemExit):
            prune_sync_runs.main(["--days", "-1"])

    def test_main_runs_prune(self):
        with patch("magicodex.jobs.prune_sync_runs.prune", new_callable=AsyncMock) as mock_prune:
            assert prune_sync_runs.main(["--days", "7"]) == 0

        mock_prune.assert_awaited_once_with(7)
