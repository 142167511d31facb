# app/services/sync/files.py
"""
Image files from Settings > Files.

Files are matched by filename. Shopify processes uploads asynchronously, so a
created file is polled until it is READY or FAILED; if neither happens within
the configured attempts the file counts as failed with status TIMEOUT.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from app.core.config import get_settings
from app.core.enums import ResourceType, SyncType
from app.services.sync.base import ResourceSync, new_summary

logger = logging.getLogger(__name__)

PRODUCTION_FILES_QUERY = """
query GetImageFiles($first: Int!, $after: String) {
  files(first: $first, after: $after, query: "media_type:IMAGE") {
    nodes {
      ... on MediaImage {
        id
        alt
        fileStatus
        image {
          url
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

STAGING_FILE_BY_NAME_QUERY = """
query FindFile($query: String!) {
  files(first: 1, query: $query) {
    nodes {
      id
      fileStatus
    }
  }
}
"""

FILE_CREATE_MUTATION = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
      id
      fileStatus
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

FILE_STATUS_QUERY = """
query FileStatus($id: ID!) {
  node(id: $id) {
    ... on File {
      id
      fileStatus
    }
  }
}
"""


def filename_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or None


class FileSync(ResourceSync):
    sync_type = SyncType.FILES
    resource_type = ResourceType.FILE.value
    label = "files"

    def __init__(self, ctx, poll_attempts: Optional[int] = None, poll_interval: Optional[float] = None):
        super().__init__(ctx)
        settings = get_settings()
        self.poll_attempts = poll_attempts if poll_attempts is not None else settings.FILE_POLL_ATTEMPTS
        self.poll_interval = poll_interval if poll_interval is not None else settings.FILE_POLL_INTERVAL_SECONDS

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(timeouts=0)

    def describe(self, item: Dict[str, Any]) -> str:
        return filename_from_url((item.get("image") or {}).get("url")) or item.get("id", "file")

    async def fetch_production(self) -> List[Dict[str, Any]]:
        files = await self.ctx.production.fetch_all(PRODUCTION_FILES_QUERY, ["files"], page_size=50)
        # Product media is synced with products; only standalone uploads here
        return [
            f for f in files
            if f.get("id") and (f.get("image") or {}).get("url")
            and "/products/" not in f["image"]["url"]
        ]

    async def find_staging_file(self, filename: str) -> Optional[Dict[str, Any]]:
        data = await self.ctx.staging.execute(STAGING_FILE_BY_NAME_QUERY, {"query": f'filename:"{filename}"'})
        nodes = ((data.get("files") or {}).get("nodes")) or []
        return nodes[0] if nodes else None

    async def wait_for_processing(self, file_id: str) -> str:
        for attempt in range(self.poll_attempts):
            data = await self.ctx.staging.execute(FILE_STATUS_QUERY, {"id": file_id})
            status = (data.get("node") or {}).get("fileStatus")
            if status in ("READY", "FAILED"):
                return status
            if attempt < self.poll_attempts - 1:
                await asyncio.sleep(self.poll_interval)
        return "TIMEOUT"

    async def process_item(self, file: Dict[str, Any]) -> None:
        url = file["image"]["url"]
        filename = filename_from_url(url)

        existing = await self.find_staging_file(filename)
        if existing:
            self.record_skipped(filename, "already exists in staging")
            await self.save_mapping(file, existing, "filename", filename, title=filename)
            return

        payload = await self.mutate(FILE_CREATE_MUTATION, {"files": [{
            "alt": file.get("alt") or "",
            "contentType": "IMAGE",
            "originalSource": url,
            "filename": filename,
            "duplicateResolutionMode": "RAISE_ERROR",
        }]}, "fileCreate")
        created = (payload.get("files") or [None])[0]
        if not created:
            raise ValueError("fileCreate returned no file")

        status = created.get("fileStatus")
        if status not in ("READY", "FAILED"):
            status = await self.wait_for_processing(created["id"])

        if status == "READY":
            self.record_created(filename, f"Uploaded file: {filename}")
            await self.save_mapping(file, created, "filename", filename, title=filename)
        elif status == "TIMEOUT":
            self.summary["timeouts"] += 1
            self.record_failure(filename, f"processing did not finish after {self.poll_attempts} checks (status TIMEOUT)")
        else:
            self.record_failure(filename, "file processing failed (status FAILED)")
