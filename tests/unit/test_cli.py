from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from click.testing import CliRunner

from catalog_sync.cli.run_worker import cli
from catalog_sync.core.enums import SyncType


def test_enqueue_command_queues_job(mocker):
    session = MagicMock()
    session.commit = AsyncMock()

    @asynccontextmanager
    async def fake_session():
        yield session

    mocker.patch("catalog_sync.cli.run_worker.get_session", fake_session)
    enqueue = mocker.patch("catalog_sync.cli.run_worker.enqueue_job", new_callable=AsyncMock,
                           return_value=MagicMock(id=42))

    result = CliRunner().invoke(cli, ["enqueue", "tenant-1", "FULL_PRODUCT", "--skip-existing"])

    assert result.exit_code == 0, result.output
    assert "Queued FULL_PRODUCT job 42 for tenant tenant-1" in result.output
    enqueue.assert_awaited_once_with(
        session, tenant_id="tenant-1", sync_type=SyncType.FULL_PRODUCT, metadata={"skipExisting": True},
    )
    session.commit.assert_awaited_once()


def test_enqueue_rejects_unknown_sync_type():
    result = CliRunner().invoke(cli, ["enqueue", "tenant-1", "INVOICES"])

    assert result.exit_code != 0
    assert "INVOICES" in result.output
