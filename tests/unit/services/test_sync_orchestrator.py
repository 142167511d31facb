# Sync orchestrator unit tests
import asyncio
from datetime import datetime, timezone

import pytest

from app.core.exceptions import ConnectionNotFoundError, ValidationError
from app.models.sync_log import SyncLog
from app.services import sync_orchestrator
from app.services.connections import ConnectionService
from app.services.sync_orchestrator import SyncOrchestrator, parse_sync_type
from tests.fakes import gid, page, payload


class GatedSync:
    """Stand-in sync module that finishes only when the test opens the gate."""

    def __init__(self):
        self.gate = asyncio.Event()

    async def run(self):
        await self.gate.wait()
        return {
            "success": True,
            "status": "success",
            "summary": {"total": 1, "created": 1, "updated": 0, "skipped": 0, "failed": 0, "errors": []},
            "logs": [{"message": "done"}],
        }


async def drain_running_tasks():
    await asyncio.gather(*list(sync_orchestrator._running_tasks))


@pytest.fixture
def orchestrator(session_factory, production_client, staging_client):
    clients = {
        production_client.store_domain: production_client,
        staging_client.store_domain: staging_client,
    }
    return SyncOrchestrator(
        session_factory=session_factory,
        client_factory=lambda domain, token: clients[domain],
        timeout_seconds=5,
    )


def script_pages(production_client, staging_client):
    production_client.on("GetPages", page("pages", [{"id": gid("Page", 1), "title": "About", "handle": "about"}]))
    staging_client.on("GetPages", page("pages", []))
    staging_client.on("CreatePage", payload("pageCreate", "page", {"id": gid("Page", 10), "handle": "about", "title": "About"}))


def test_parse_sync_type():
    assert parse_sync_type("pages").value == "pages"
    with pytest.raises(ValidationError):
        parse_sync_type("orders")


@pytest.mark.asyncio
async def test_interactive_run_returns_final_result(orchestrator, connection_row, production_client, staging_client):
    script_pages(production_client, staging_client)

    result = await orchestrator.run_sync(connection_row.id, "pages")

    assert result["status"] == "success"
    assert result["summary"]["created"] == 1
    status = await orchestrator.get_status(result["log_id"])
    assert status["status"] == "success"
    assert status["completed_at"] is not None
    assert status["summary"]["created"] == 1
    assert status["logs"]


@pytest.mark.asyncio
async def test_timeout_returns_flag_and_run_finishes_later(orchestrator, connection_row, mocker):
    gated = GatedSync()
    mocker.patch("app.services.sync_orchestrator.build_sync", return_value=gated)
    orchestrator.timeout_seconds = 0.05

    result = await orchestrator.run_sync(connection_row.id, "pages")

    assert result["timeout"] is True
    assert "status" not in result
    running = await orchestrator.get_status(result["log_id"])
    assert running["status"] == "in_progress"
    assert running["completed_at"] is None

    gated.gate.set()
    await drain_running_tasks()

    final = await orchestrator.get_status(result["log_id"])
    assert final["status"] == "success"
    assert final["summary"]["created"] == 1


@pytest.mark.asyncio
async def test_background_types_return_log_id_immediately(orchestrator, connection_row, mocker):
    gated = GatedSync()
    mocker.patch("app.services.sync_orchestrator.build_sync", return_value=gated)

    result = await orchestrator.run_sync(connection_row.id, "products")

    assert result["started"] is True
    assert (await orchestrator.get_status(result["log_id"]))["status"] == "in_progress"

    gated.gate.set()
    await drain_running_tasks()
    assert (await orchestrator.get_status(result["log_id"]))["status"] == "success"


@pytest.mark.asyncio
async def test_non_interactive_run_waits_for_background_types(orchestrator, connection_row, mocker):
    gated = GatedSync()
    gated.gate.set()
    mocker.patch("app.services.sync_orchestrator.build_sync", return_value=gated)

    result = await orchestrator.run_sync(connection_row.id, "products", interactive=False)

    assert result["status"] == "success"
    assert "started" not in result


@pytest.mark.asyncio
async def test_crashing_module_marks_log_failed(orchestrator, connection_row, mocker):
    mocker.patch("app.services.sync_orchestrator.build_sync", side_effect=RuntimeError("boom"))

    result = await orchestrator.run_sync(connection_row.id, "pages")

    assert result["status"] == "failed"
    status = await orchestrator.get_status(result["log_id"])
    assert status["status"] == "failed"
    assert status["summary"]["errors"] == ["boom"]


@pytest.mark.asyncio
async def test_final_log_is_not_overwritten(orchestrator, connection_row, session_factory):
    async with session_factory() as db:
        log = SyncLog(shop=connection_row.shop, connection_id=connection_row.id, sync_type="pages",
                      status="success", summary={"created": 3}, logs=[],
                      completed_at=datetime.now(timezone.utc))
        db.add(log)
        await db.commit()
        log_id = log.id

    async with session_factory() as db:
        await orchestrator._finalize(db, log_id, {"status": "failed", "summary": {}, "logs": []})
        await orchestrator._write_progress(db, log_id, {"stage": "processing", "percentage": 50})

    status = await orchestrator.get_status(log_id)
    assert status["status"] == "success"
    assert status["summary"] == {"created": 3}


@pytest.mark.asyncio
async def test_run_sync_preconditions(orchestrator, connection_row, db_session):
    with pytest.raises(ValidationError):
        await orchestrator.run_sync(connection_row.id, "orders")

    with pytest.raises(ConnectionNotFoundError):
        await orchestrator.run_sync(99999, "pages")

    await ConnectionService(db_session).update_connection(connection_row.id, is_active=False)
    with pytest.raises(ConnectionNotFoundError):
        await orchestrator.run_sync(connection_row.id, "pages")

    orchestrator.staging_token = None
    with pytest.raises(ValidationError):
        await orchestrator.run_sync(connection_row.id, "pages")


@pytest.mark.asyncio
async def test_get_status_unknown_log(orchestrator):
    assert await orchestrator.get_status(424242) is None
