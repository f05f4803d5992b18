"""
In-process implementation of the host store: uploads, analyses, recipes
and raw blobs. Every accessor is async so a real database adapter can take
its place without changing callers.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from ..core.errors import AnalysisNotFoundError
from ..models.analysis import Analysis, AnalysisStatus
from ..models.recipe import Recipe, new_id
from ..models.upload import Upload

log = logging.getLogger(__name__)


class MemoryStore:
    """Dictionary-backed store.

    Reads hand out deep copies, so the only way to change a record is through
    ``insert_*``, ``patch_*`` and ``delete_*``. Use ``transaction()`` around a
    read-check-write sequence that must not interleave with another one.
    """

    def __init__(self, base_url: str = "http://localhost:8000/storage"):
        self.base_url = base_url.rstrip("/")
        self._lock = asyncio.Lock()
        self._uploads: Dict[str, Upload] = {}
        self._analyses: Dict[str, Analysis] = {}
        self._recipes: Dict[str, Recipe] = {}
        self._blobs: Dict[str, tuple[bytes, str]] = {}

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            yield self

    # Blobs
    async def store_blob(self, data: bytes, content_type: str) -> str:
        storage_id = new_id()
        self._blobs[storage_id] = (bytes(data), content_type)
        return storage_id

    async def get_blob(self, storage_id: str) -> Optional[bytes]:
        entry = self._blobs.get(storage_id)
        return entry[0] if entry else None

    async def get_url(self, storage_id: str) -> Optional[str]:
        if storage_id not in self._blobs:
            return None
        return f"{self.base_url}/{storage_id}"

    async def delete_blob(self, storage_id: str) -> bool:
        return self._blobs.pop(storage_id, None) is not None

    # Uploads
    async def insert_upload(self, upload: Upload) -> str:
        self._uploads[upload.id] = upload.model_copy(deep=True)
        return upload.id

    async def get_upload(self, upload_id: str) -> Optional[Upload]:
        upload = self._uploads.get(upload_id)
        return upload.model_copy(deep=True) if upload else None

    # Analyses
    async def insert_analysis(self, analysis: Analysis) -> str:
        self._analyses[analysis.id] = analysis.model_copy(deep=True)
        return analysis.id

    async def get_analysis(self, analysis_id: str) -> Optional[Analysis]:
        analysis = self._analyses.get(analysis_id)
        return analysis.model_copy(deep=True) if analysis else None

    async def patch_analysis(self, analysis_id: str, **changes: Any) -> Analysis:
        current = self._analyses.get(analysis_id)
        if current is None:
            raise AnalysisNotFoundError(analysis_id)
        updated = current.model_copy(update=changes, deep=True)
        self._analyses[analysis_id] = updated
        return updated.model_copy(deep=True)

    async def find_analysis_by_upload(self, upload_id: str) -> Optional[Analysis]:
        for analysis in self._analyses.values():
            if analysis.upload_id == upload_id:
                return analysis.model_copy(deep=True)
        return None

    async def list_analyses_by_status(self, status: AnalysisStatus, limit: Optional[int] = 50) -> List[Analysis]:
        """Analyses in ``status``, newest first. ``limit=None`` returns all."""
        matching = [a for a in self._analyses.values() if a.status == status]
        matching.sort(key=lambda a: a.created_at, reverse=True)
        if limit is not None:
            matching = matching[:limit]
        return [a.model_copy(deep=True) for a in matching]

    # Recipes
    async def insert_recipe(self, recipe: Recipe) -> str:
        self._recipes[recipe.id] = recipe.model_copy(deep=True)
        log.debug(f"Stored recipe {recipe.id} ({recipe.title})")
        return recipe.id

    async def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        recipe = self._recipes.get(recipe_id)
        return recipe.model_copy(deep=True) if recipe else None

    async def list_recipes(self) -> List[Recipe]:
        return [r.model_copy(deep=True) for r in self._recipes.values()]

    async def delete_recipe(self, recipe_id: str) -> bool:
        return self._recipes.pop(recipe_id, None) is not None
