"""
Import a recipe from a web page: fetch the HTML, store it as an upload that
remembers its source URL, and start the HTML analysis.
"""

import logging
import re
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..core.config import Settings, get_settings
from ..core.state_machine import AnalysisStateMachine
from ..models.upload import HTML_CONTENT_TYPE, Upload
from ..storage.memory_store import MemoryStore

log = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; RecipeImporter/1.0)"
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def build_html_filename(url: str) -> str:
    """'https://example.com/recipes/simple-breakfast?print=1' -> 'example.com-simple-breakfast.html'"""
    parsed = urlparse(url)
    host = _UNSAFE.sub("-", parsed.hostname or "page").strip("-")
    segments = [s for s in parsed.path.split("/") if s]
    slug = segments[-1] if segments else "recipe"
    slug = re.sub(r"\.html?$", "", slug, flags=re.IGNORECASE)
    slug = _UNSAFE.sub("-", slug).strip("-") or "recipe"
    return f"{host}-{slug}.html"


def validate_import_url(url: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Only http(s) URLs can be imported: {url!r}")
    return parsed.geturl()


async def fetch_html(url: str, client: httpx.AsyncClient) -> str:
    response = await client.get(url, headers={"User-Agent": USER_AGENT, "Accept": "text/html"})
    response.raise_for_status()
    return response.text


async def import_recipe_url(
    url: str,
    store: MemoryStore,
    machine: AnalysisStateMachine,
    client: Optional[httpx.AsyncClient] = None,
    settings: Settings | None = None,
) -> Tuple[str, str]:
    """Fetch ``url`` and queue it for HTML analysis. Returns (upload_id, analysis_id)."""
    settings = settings or get_settings()
    url = validate_import_url(url)

    if client is None:
        async with httpx.AsyncClient(follow_redirects=True, timeout=settings.url_fetch_timeout) as owned:
            html = await fetch_html(url, owned)
    else:
        html = await fetch_html(url, client)

    data = html.encode("utf-8")
    storage_id = await store.store_blob(data, HTML_CONTENT_TYPE)
    upload = Upload(
        storage_id=storage_id,
        filename=build_html_filename(url),
        size=len(data),
        content_type=HTML_CONTENT_TYPE,
        upload_source="url-import",
        source_url=url,
    )
    await store.insert_upload(upload)
    log.info(f"🌐 Imported {url} as upload {upload.id} ({len(data)} bytes)")

    analysis_id = await machine.trigger_html_analysis(upload.id)
    return upload.id, analysis_id
