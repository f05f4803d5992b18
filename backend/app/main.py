import logging
from dataclasses import dataclass

from .core.config import Settings, get_settings
from .core.scheduler import ANALYZE_UPLOAD, PROCESS_COMPLETED_ANALYSIS, Scheduler
from .core.state_machine import AnalysisStateMachine, Extractor
from .services.openai_client import OpenAIVisionClient
from .services.recipe_pipeline import RecipePipeline
from .storage.memory_store import MemoryStore

log = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@dataclass
class Services:
    settings: Settings
    store: MemoryStore
    scheduler: Scheduler
    extractor: Extractor
    analyses: AnalysisStateMachine
    pipeline: RecipePipeline

    async def shutdown(self) -> None:
        await self.scheduler.cancel_all()
        if isinstance(self.extractor, OpenAIVisionClient):
            await self.extractor.close()


def build_services(
    settings: Settings | None = None,
    store: MemoryStore | None = None,
    extractor: Extractor | None = None,
) -> Services:
    """Wire the analysis pipeline and register its background steps."""
    settings = settings or get_settings()
    store = store or MemoryStore(settings.storage_base_url)
    extractor = extractor or OpenAIVisionClient(settings)
    scheduler = Scheduler()

    analyses = AnalysisStateMachine(store, scheduler, extractor, settings)
    pipeline = RecipePipeline(store, settings)

    scheduler.register(ANALYZE_UPLOAD, analyses.analyze_upload)
    scheduler.register(PROCESS_COMPLETED_ANALYSIS, pipeline.process_completed_analysis)

    log.info(f"Recipe pipeline ready (model {settings.openai_model}, openai configured: {bool(settings.openai_api_key)})")
    return Services(settings, store, scheduler, extractor, analyses, pipeline)


def create_app() -> Services:
    settings = get_settings()
    configure_logging(settings)
    return build_services(settings)
