# File sync unit tests
import pytest

from app.services.sync.files import FileSync, filename_from_url
from tests.fakes import gid, page, payload


def image(file_id, url, alt=""):
    return {"id": gid("MediaImage", file_id), "alt": alt, "fileStatus": "READY", "image": {"url": url}}


@pytest.fixture(autouse=True)
def no_sleep(mocker):
    mocker.patch("app.services.sync.files.asyncio.sleep", new=mocker.AsyncMock())


def test_filename_from_url():
    assert filename_from_url("https://cdn.shopify.com/s/files/1/files/hero%20banner.jpg?v=123") == "hero banner.jpg"
    assert filename_from_url(None) is None
    assert filename_from_url("https://cdn.shopify.com/") is None


@pytest.mark.asyncio
async def test_fetch_skips_product_media(sync_context, production_client):
    production_client.on("GetImageFiles", page("files", [
        image(1, "https://cdn.shopify.com/s/files/1/files/logo.png"),
        image(2, "https://cdn.shopify.com/s/files/1/products/shirt.jpg"),
        {"id": None},
        {"id": gid("GenericFile", 3)},
    ]))

    files = await FileSync(sync_context).fetch_production()

    assert [f["id"] for f in files] == [gid("MediaImage", 1)]


@pytest.mark.asyncio
async def test_file_sync_skips_existing_and_uploads_new(sync_context, production_client, staging_client, mapping_service):
    production_client.on("GetImageFiles", page("files", [
        image(1, "https://cdn.shopify.com/s/files/1/files/logo.png"),
        image(2, "https://cdn.shopify.com/s/files/1/files/banner.jpg", alt="Banner"),
    ]))

    def find(variables):
        if variables["query"] == 'filename:"logo.png"':
            return {"files": {"nodes": [{"id": gid("MediaImage", 500), "fileStatus": "READY"}]}}
        return {"files": {"nodes": []}}

    statuses = iter(["PROCESSING", "READY"])
    staging_client.on("FindFile", find)
    staging_client.on("fileCreate", {"fileCreate": {"files": [{"id": gid("MediaImage", 501), "fileStatus": "UPLOADED"}], "userErrors": []}})
    staging_client.on("FileStatus", lambda v: {"node": {"id": v["id"], "fileStatus": next(statuses)}})

    result = await FileSync(sync_context, poll_attempts=5, poll_interval=0).run()

    summary = result["summary"]
    assert summary["skipped"] == 1
    assert summary["created"] == 1
    assert len(staging_client.calls_to("FileStatus")) == 2
    created = staging_client.calls_to("fileCreate")[0]["files"][0]
    assert created["filename"] == "banner.jpg"
    assert created["alt"] == "Banner"
    assert created["originalSource"].endswith("banner.jpg")

    assert await mapping_service.get_mappings_count(sync_context.connection.id, "file") == 2
    logo = await mapping_service.get_mapping(sync_context.connection.id, "file", "1")
    assert logo.staging_gid == gid("MediaImage", 500)
    assert logo.match_key == "filename"


@pytest.mark.asyncio
async def test_file_processing_timeout_counts_as_failure(sync_context, production_client, staging_client, mapping_service):
    production_client.on("GetImageFiles", page("files", [image(1, "https://cdn.shopify.com/s/files/1/files/slow.png")]))
    staging_client.on("FindFile", {"files": {"nodes": []}})
    staging_client.on("fileCreate", {"fileCreate": {"files": [{"id": gid("MediaImage", 600), "fileStatus": "UPLOADED"}], "userErrors": []}})
    staging_client.on("FileStatus", {"node": {"fileStatus": "PROCESSING"}})

    result = await FileSync(sync_context, poll_attempts=3, poll_interval=0).run()

    assert len(staging_client.calls_to("FileStatus")) == 3
    assert result["summary"]["failed"] == 1
    assert result["summary"]["timeouts"] == 1
    assert "TIMEOUT" in result["summary"]["errors"][0]
    assert await mapping_service.get_mappings_count(sync_context.connection.id, "file") == 0


@pytest.mark.asyncio
async def test_failed_processing_and_duplicate_upload(sync_context, production_client, staging_client):
    production_client.on("GetImageFiles", page("files", [
        image(1, "https://cdn.shopify.com/s/files/1/files/broken.png"),
        image(2, "https://cdn.shopify.com/s/files/1/files/dupe.png"),
    ]))
    staging_client.on("FindFile", {"files": {"nodes": []}})

    def create(variables):
        if variables["files"][0]["filename"] == "dupe.png":
            return {"fileCreate": {"files": [], "userErrors": [{"message": "File already exists", "code": "FILENAME_ALREADY_EXISTS"}]}}
        return {"fileCreate": {"files": [{"id": gid("MediaImage", 700), "fileStatus": "FAILED"}], "userErrors": []}}

    staging_client.on("fileCreate", create)

    result = await FileSync(sync_context, poll_attempts=1, poll_interval=0).run()

    assert result["summary"]["failed"] == 1
    assert result["summary"]["skipped"] == 1
    assert "status FAILED" in result["summary"]["errors"][0]
