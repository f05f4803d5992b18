"""
Turns completed analyses into recipes.

Three entry points share one builder:
  - process_completed_analysis: scheduled after every successful extraction
  - manually_create_recipe: user-initiated, ignores the confidence bar
  - backfill_recipes: scans every completed analysis

An analysis with ``recipe_id`` set is never converted again by the first
two. Backfill treats a ``recipe_id`` whose recipe was deleted as unset.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.config import Settings, get_settings
from ..core.errors import AnalysisNotFoundError
from ..models.analysis import Analysis, AnalysisStatus
from ..models.recipe import MealType, Recipe, RecipeOverrides, utcnow
from ..storage.memory_store import MemoryStore
from .duration_parser import parse_duration
from .ingredient_parser import parse_ingredients
from .meal_type import infer_meal_type

log = logging.getLogger(__name__)

VISION_SOURCE = "Vision Analysis"
UNTITLED_RECIPE = "Untitled Recipe"
UNKNOWN_COOK_TIME = "Unknown"


class PipelineOutcome(BaseModel):
    success: bool = False
    skipped: bool = False
    exists: bool = False
    reason: Optional[str] = None
    recipe_id: Optional[str] = None


class BackfillDiagnostics(BaseModel):
    no_analysis_result: int = 0
    low_confidence: int = 0
    no_recipe_data: int = 0
    recipe_still_exists: int = 0
    orphaned_recipe_ids: int = 0


class BackfillError(BaseModel):
    analysis_id: str
    error: str


class BackfillReport(BaseModel):
    total: int = 0
    eligible: int = 0
    processed: int = 0
    skipped: int = 0
    errors: List[BackfillError] = []
    recipe_ids: List[str] = []
    diagnostics: BackfillDiagnostics = Field(default_factory=BackfillDiagnostics)


class RecipePipeline:
    def __init__(self, store: MemoryStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    @property
    def threshold(self) -> float:
        return self.settings.recipe_creation_threshold

    async def process_completed_analysis(self, analysis_id: str) -> PipelineOutcome:
        async with self.store.transaction():
            analysis = await self.store.get_analysis(analysis_id)
            if analysis is None:
                raise AnalysisNotFoundError(f"Analysis not found: {analysis_id}")

            if analysis.recipe_id:
                log.info(f"Analysis {analysis_id} already processed -> recipe {analysis.recipe_id}")
                return PipelineOutcome(skipped=True, reason="Already processed", recipe_id=analysis.recipe_id)

            reason = self._ineligible_reason(analysis)
            if reason:
                log.info(f"Skipping recipe creation for {analysis_id}: {reason}")
                return PipelineOutcome(skipped=True, reason=reason)

            recipe_id = await self._create_and_link(analysis)

        return PipelineOutcome(success=True, recipe_id=recipe_id)

    async def manually_create_recipe(
        self, analysis_id: str, overrides: Optional[RecipeOverrides] = None
    ) -> PipelineOutcome:
        async with self.store.transaction():
            analysis = await self.store.get_analysis(analysis_id)
            if analysis is None:
                raise AnalysisNotFoundError(f"Analysis not found: {analysis_id}")

            if analysis.recipe_id:
                return PipelineOutcome(exists=True, recipe_id=analysis.recipe_id)

            if analysis.analysis_result is None or analysis.analysis_result.recipe_data is None:
                raise ValueError("Analysis does not contain recipe data")

            recipe_id = await self._create_and_link(analysis, overrides)

        return PipelineOutcome(success=True, recipe_id=recipe_id)

    async def backfill_recipes(self) -> BackfillReport:
        """Create recipes for every eligible completed analysis. Additive only."""
        async with self.store.transaction():
            analyses = await self.store.list_analyses_by_status(AnalysisStatus.COMPLETED, limit=None)
            report = BackfillReport(total=len(analyses))
            diagnostics = report.diagnostics

            eligible: List[Analysis] = []
            for analysis in analyses:
                result = analysis.analysis_result
                if result is None:
                    diagnostics.no_analysis_result += 1
                    continue
                if result.confidence < self.threshold:
                    diagnostics.low_confidence += 1
                    continue
                if result.recipe_data is None:
                    diagnostics.no_recipe_data += 1
                    continue
                if analysis.recipe_id:
                    if await self.store.get_recipe(analysis.recipe_id) is not None:
                        diagnostics.recipe_still_exists += 1
                        continue
                    diagnostics.orphaned_recipe_ids += 1
                eligible.append(analysis)

            report.eligible = len(eligible)
            for analysis in eligible:
                try:
                    recipe_id = await self._create_and_link(analysis)
                except Exception as e:
                    log.exception(f"Backfill failed for analysis {analysis.id}")
                    report.errors.append(BackfillError(analysis_id=analysis.id, error=str(e)))
                    report.skipped += 1
                    continue
                report.processed += 1
                report.recipe_ids.append(recipe_id)

        log.info(
            f"Backfill done: {report.processed} created, {report.skipped} failed, "
            f"{report.eligible}/{report.total} eligible"
        )
        return report

    def _ineligible_reason(self, analysis: Analysis) -> Optional[str]:
        if analysis.status != AnalysisStatus.COMPLETED:
            return "Analysis not completed"
        result = analysis.analysis_result
        if result is None:
            return "No analysis result"
        if result.confidence < self.threshold:
            return f"Confidence {result.confidence} below threshold {self.threshold}"
        if result.recipe_data is None:
            return "No recipe data in analysis"
        return None

    async def _create_and_link(self, analysis: Analysis, overrides: Optional[RecipeOverrides] = None) -> str:
        recipe = await self.build_recipe(analysis, overrides)
        await self.store.insert_recipe(recipe)
        await self.store.patch_analysis(analysis.id, recipe_id=recipe.id, recipe_created_at=utcnow())
        log.info(f"🍳 Created recipe {recipe.id} '{recipe.title}' from analysis {analysis.id}")
        return recipe.id

    async def _image_url(self, storage_id: str) -> str:
        try:
            url = await self.store.get_url(storage_id)
        except Exception:
            log.warning("Failed to get storage URL, using default image", exc_info=True)
            return self.settings.default_recipe_image
        return url or self.settings.default_recipe_image

    async def build_recipe(self, analysis: Analysis, overrides: Optional[RecipeOverrides] = None) -> Recipe:
        """Map an analysis' extracted fields onto a new (unsaved) Recipe."""
        data = analysis.analysis_result.recipe_data
        overrides = overrides or RecipeOverrides()

        meal_type = (
            overrides.meal_type
            or infer_meal_type(data.title, data.ingredients)
            or MealType(self.settings.default_meal_type)
        )

        upload = await self.store.get_upload(analysis.upload_id)
        source = upload.source_url if upload and upload.source_url else VISION_SOURCE

        return Recipe(
            title=overrides.title or data.title or UNTITLED_RECIPE,
            meal_type=meal_type,
            cook_time=data.cook_time or UNKNOWN_COOK_TIME,
            cook_time_minutes=parse_duration(data.cook_time),
            is_favorite=False,
            source=source,
            image_url=await self._image_url(analysis.storage_id),
            ingredients=parse_ingredients(data.ingredients or []),
            instructions=data.instructions or None,
        )
