"""
Lifecycle of one document analysis job.

    pending -> processing -> completed
                          -> pending   (retryable failure, retries left)
                          -> failed    (permanent)

Every step is a separate scheduled unit: submission schedules the
extraction, a failure schedules its own retry, a success schedules recipe
creation.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from ..models.analysis import Analysis, AnalysisErrorInfo, AnalysisResult, AnalysisStatus
from ..models.recipe import utcnow
from ..models.upload import HTML_CONTENT_TYPE, PDF_CONTENT_TYPE, Upload
from ..storage.memory_store import MemoryStore
from .config import Settings, get_settings
from .errors import (
    AnalysisError,
    AnalysisNotFoundError,
    ErrorCode,
    UnsupportedContentTypeError,
    UploadNotFoundError,
    classify_error,
)
from .scheduler import ANALYZE_UPLOAD, PROCESS_COMPLETED_ANALYSIS, Scheduler

log = logging.getLogger(__name__)

FALLBACK_CONTENT_TYPE = "application/octet-stream"


class Extractor(Protocol):
    async def analyze_image(self, image_url: str) -> AnalysisResult: ...

    async def analyze_html(self, html: str) -> AnalysisResult: ...

    async def analyze_pdf(self, pdf_url: str) -> AnalysisResult: ...


def gate_result(result: AnalysisResult, threshold: float) -> AnalysisResult:
    """Drop recipe_data unless the extraction cleared ``threshold``."""
    keep = result.recipe_data is not None and result.confidence >= threshold
    return result.model_copy(update={"recipe_data": result.recipe_data if keep else None})


def retry_delay(retry_count: int, delays) -> float:
    """Backoff for the ``retry_count``-th retry; the last delay repeats."""
    index = min(retry_count - 1, len(delays) - 1)
    return delays[max(index, 0)]


class AnalysisStateMachine:
    def __init__(
        self,
        store: MemoryStore,
        scheduler: Scheduler,
        extractor: Extractor,
        settings: Settings | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.extractor = extractor
        self.settings = settings or get_settings()

    # Submission
    async def trigger_analysis(self, upload_id: str) -> str:
        """Start (or return the existing) analysis for an image or PDF upload."""
        return await self._submit(upload_id, html=False)

    async def trigger_html_analysis(self, upload_id: str) -> str:
        """Start (or return the existing) analysis for an HTML upload."""
        return await self._submit(upload_id, html=True)

    async def _submit(self, upload_id: str, html: bool) -> str:
        async with self.store.transaction():
            upload = await self.store.get_upload(upload_id)
            if upload is None:
                raise UploadNotFoundError(f"Upload not found: {upload_id}")

            if html and not upload.is_html:
                raise UnsupportedContentTypeError("triggerHtmlAnalysis supports text/html uploads only")
            if not html and not (upload.is_image or upload.is_pdf):
                raise UnsupportedContentTypeError("triggerAnalysis supports image or PDF uploads only")

            existing = await self.store.find_analysis_by_upload(upload_id)
            if existing is not None:
                log.info(f"Analysis {existing.id} already exists for upload {upload_id}")
                return existing.id

            analysis = Analysis(
                upload_id=upload_id,
                storage_id=upload.storage_id,
                max_retries=self.settings.max_retries,
            )
            await self.store.insert_analysis(analysis)

        log.info(f"🆕 Analysis {analysis.id} pending for upload {upload_id} ({upload.content_type})")
        self.scheduler.run_after(
            0,
            ANALYZE_UPLOAD,
            analysis_id=analysis.id,
            storage_id=upload.storage_id,
            content_type=upload.content_type,
        )
        return analysis.id

    # One attempt
    async def analyze_upload(self, analysis_id: str, storage_id: str, content_type: str) -> None:
        """Run one extraction attempt and record its outcome."""
        await self.mark_processing(analysis_id)

        try:
            result = await self._extract(storage_id, content_type)
            await self.save_result(analysis_id, gate_result(result, self.settings.recipe_confidence_threshold))
        except Exception as error:
            info = classify_error(error)
            log.warning(f"Analysis attempt failed for {analysis_id}: {info.code} - {info.message}")
            await self.mark_failed(analysis_id, info)

    async def _extract(self, storage_id: str, content_type: str) -> AnalysisResult:
        kind = content_type.split(";")[0].strip().lower()

        if kind.startswith("image/") or kind == PDF_CONTENT_TYPE:
            url = await self.store.get_url(storage_id)
            if not url:
                raise AnalysisError(ErrorCode.INVALID_FORMAT, "Could not get storage URL", False)
            if kind == PDF_CONTENT_TYPE:
                return await self.extractor.analyze_pdf(url)
            return await self.extractor.analyze_image(url)

        if kind == HTML_CONTENT_TYPE:
            blob = await self.store.get_blob(storage_id)
            if blob is None:
                raise AnalysisError(ErrorCode.INVALID_FORMAT, "Could not read stored HTML", False)
            return await self.extractor.analyze_html(blob.decode("utf-8", errors="replace"))

        raise AnalysisError(ErrorCode.INVALID_FORMAT, f"Unsupported content type: {content_type}", False)

    # Transitions
    async def mark_processing(self, analysis_id: str) -> Analysis:
        async with self.store.transaction():
            analysis = await self.store.patch_analysis(
                analysis_id, status=AnalysisStatus.PROCESSING, updated_at=utcnow()
            )
        log.info(f"⏳ Analysis {analysis_id} processing (attempt {analysis.retry_count + 1})")
        return analysis

    async def save_result(self, analysis_id: str, result: AnalysisResult) -> Analysis:
        now = utcnow()
        async with self.store.transaction():
            analysis = await self.store.patch_analysis(
                analysis_id,
                status=AnalysisStatus.COMPLETED,
                analysis_result=result,
                updated_at=now,
                completed_at=now,
            )
        log.info(
            f"✅ Analysis {analysis_id} completed (confidence {result.confidence}, "
            f"recipe data {'kept' if result.recipe_data else 'dropped'})"
        )

        # the pipeline checks eligibility and idempotency itself
        self.scheduler.run_after(0, PROCESS_COMPLETED_ANALYSIS, analysis_id=analysis_id)
        return analysis

    async def mark_failed(self, analysis_id: str, error: AnalysisErrorInfo) -> Analysis:
        async with self.store.transaction():
            current = await self.store.get_analysis(analysis_id)
            if current is None:
                raise AnalysisNotFoundError(f"Analysis not found: {analysis_id}")

            retry_count = current.retry_count + 1
            should_retry = error.retryable and retry_count <= current.max_retries

            analysis = await self.store.patch_analysis(
                analysis_id,
                status=AnalysisStatus.PENDING if should_retry else AnalysisStatus.FAILED,
                error=error,
                retry_count=retry_count,
                updated_at=utcnow(),
            )
            # content type decides the extraction path, so read it fresh
            upload = await self.store.get_upload(current.upload_id)

        if not should_retry:
            log.error(f"❌ Analysis {analysis_id} failed permanently: {error.code} ({retry_count} attempts)")
            return analysis

        delay = retry_delay(retry_count, self.settings.retry_delays)
        content_type = upload.content_type if upload else FALLBACK_CONTENT_TYPE
        log.info(f"🔁 Retrying analysis {analysis_id} in {delay}s (retry {retry_count}/{current.max_retries})")
        self.scheduler.run_after(
            delay,
            ANALYZE_UPLOAD,
            analysis_id=analysis_id,
            storage_id=current.storage_id,
            content_type=content_type,
        )
        return analysis

    # Queries
    async def get_upload_with_analysis(self, upload_id: str) -> Optional[Dict[str, Any]]:
        upload: Optional[Upload] = await self.store.get_upload(upload_id)
        if upload is None:
            return None
        return {
            "upload": upload,
            "storage_url": await self.store.get_url(upload.storage_id),
            "analysis": await self.store.find_analysis_by_upload(upload_id),
        }
