import asyncio

import pytest

from backend.app.core.errors import AnalysisError, ErrorCode, UnsupportedContentTypeError, UploadNotFoundError
from backend.app.core.scheduler import ANALYZE_UPLOAD, PROCESS_COMPLETED_ANALYSIS
from backend.app.core.state_machine import AnalysisStateMachine, gate_result, retry_delay
from backend.app.models.analysis import AnalysisErrorInfo, AnalysisStatus
from backend.app.models.upload import Upload


def add_upload(store, content_type="image/png", data=b"\x89PNG\r\n\x1a\n0000", **fields):
    async def run():
        storage_id = await store.store_blob(data, content_type)
        upload = Upload(storage_id=storage_id, filename="card.png", size=len(data), content_type=content_type, **fields)
        await store.insert_upload(upload)
        return upload

    return asyncio.run(run())


def make_machine(store, scheduler, settings, extractor=None):
    return AnalysisStateMachine(store, scheduler, extractor, settings)


def test_submit_creates_pending_analysis_and_schedules_extraction(store, scheduler, settings):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings)

    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.PENDING
    assert analysis.retry_count == 0
    assert analysis.max_retries == 3
    assert scheduler.calls == [
        (0, ANALYZE_UPLOAD, {"analysis_id": analysis_id, "storage_id": upload.storage_id, "content_type": "image/png"})
    ]


def test_submit_is_idempotent_per_upload(store, scheduler, settings):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings)

    first = asyncio.run(machine.trigger_analysis(upload.id))
    second = asyncio.run(machine.trigger_analysis(upload.id))

    assert first == second
    assert len(scheduler.calls) == 1


def test_trigger_gates_on_content_type(store, scheduler, settings):
    image = add_upload(store)
    page = add_upload(store, content_type="text/html", data=b"<html></html>")
    machine = make_machine(store, scheduler, settings)

    with pytest.raises(UnsupportedContentTypeError, match="image or PDF uploads only"):
        asyncio.run(machine.trigger_analysis(page.id))
    pdf = add_upload(store, content_type="application/pdf", data=b"%PDF-1.7")
    assert asyncio.run(machine.trigger_analysis(pdf.id))
    scheduler.calls.clear()
    with pytest.raises(UnsupportedContentTypeError, match="text/html uploads only"):
        asyncio.run(machine.trigger_html_analysis(image.id))
    with pytest.raises(UploadNotFoundError):
        asyncio.run(machine.trigger_analysis("missing"))
    assert scheduler.calls == []


def test_success_keeps_recipe_data_and_hands_off(store, scheduler, settings, scripted_extractor, result_factory):
    upload = add_upload(store)
    extractor = scripted_extractor(result_factory(confidence=0.75))
    machine = make_machine(store, scheduler, settings, extractor)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.COMPLETED
    assert analysis.completed_at is not None
    assert analysis.analysis_result.recipe_data is not None
    assert extractor.image_urls == [f"http://files.test/{upload.storage_id}"]
    assert scheduler.calls[-1] == (0, PROCESS_COMPLETED_ANALYSIS, {"analysis_id": analysis_id})


def test_low_confidence_drops_recipe_data_but_still_hands_off(store, scheduler, settings, scripted_extractor, result_factory):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings, scripted_extractor(result_factory(confidence=0.5)))
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.COMPLETED
    assert analysis.analysis_result.recipe_data is None
    assert analysis.analysis_result.confidence == 0.5
    assert scheduler.calls[-1][1] == PROCESS_COMPLETED_ANALYSIS


def test_html_upload_uses_html_path(store, scheduler, settings, scripted_extractor, result_factory):
    upload = add_upload(store, content_type="text/html", data=b"<h1>Soup</h1>")
    extractor = scripted_extractor(result_factory())
    machine = make_machine(store, scheduler, settings, extractor)
    analysis_id = asyncio.run(machine.trigger_html_analysis(upload.id))

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "text/html"))

    assert extractor.html_inputs == ["<h1>Soup</h1>"]
    assert extractor.image_urls == []


def test_pdf_upload_uses_pdf_path(store, scheduler, settings, scripted_extractor, result_factory):
    upload = add_upload(store, content_type="application/pdf", data=b"%PDF-1.7\n%\xe2\xe3")
    extractor = scripted_extractor(result_factory())
    machine = make_machine(store, scheduler, settings, extractor)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "application/pdf"))

    assert extractor.pdf_urls == [f"http://files.test/{upload.storage_id}"]
    assert extractor.image_urls == []
    assert asyncio.run(store.get_analysis(analysis_id)).status == AnalysisStatus.COMPLETED


def test_failed_save_is_recorded_and_retried(store, scheduler, settings, scripted_extractor, result_factory):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings, scripted_extractor(result_factory()))
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))
    scheduler.calls.clear()

    patch_analysis = store.patch_analysis

    async def failing_completion(analysis_id, **changes):
        if changes.get("status") == AnalysisStatus.COMPLETED:
            raise RuntimeError("db write timeout")
        return await patch_analysis(analysis_id, **changes)

    store.patch_analysis = failing_completion
    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.PENDING
    assert analysis.error.code == "timeout"
    assert analysis.error.message == "db write timeout"
    assert analysis.retry_count == 1
    assert analysis.analysis_result is None
    assert scheduler.calls == [
        (5.0, ANALYZE_UPLOAD, {"analysis_id": analysis_id, "storage_id": upload.storage_id, "content_type": "image/png"})
    ]


def test_retryable_failure_goes_back_to_pending_with_backoff(store, scheduler, settings, scripted_extractor):
    upload = add_upload(store)
    extractor = scripted_extractor(AnalysisError(ErrorCode.RATE_LIMIT, "slow down"))
    machine = make_machine(store, scheduler, settings, extractor)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))
    scheduler.calls.clear()

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.PENDING
    assert analysis.retry_count == 1
    assert analysis.error.code == "rate_limit"
    assert scheduler.calls == [
        (5.0, ANALYZE_UPLOAD, {"analysis_id": analysis_id, "storage_id": upload.storage_id, "content_type": "image/png"})
    ]


def test_retries_follow_schedule_until_exhausted(store, scheduler, settings):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))
    scheduler.calls.clear()
    error = AnalysisErrorInfo(code="server_error", message="502", retryable=True)

    statuses = []
    for _ in range(4):
        statuses.append(asyncio.run(machine.mark_failed(analysis_id, error)).status)

    assert statuses == [AnalysisStatus.PENDING] * 3 + [AnalysisStatus.FAILED]
    assert [delay for delay, _, _ in scheduler.calls] == [5.0, 30.0, 120.0]

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.retry_count == analysis.max_retries + 1


def test_non_retryable_failure_is_terminal(store, scheduler, settings, scripted_extractor):
    upload = add_upload(store)
    extractor = scripted_extractor(AnalysisError(ErrorCode.CONTENT_POLICY, "rejected"))
    machine = make_machine(store, scheduler, settings, extractor)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))
    scheduler.calls.clear()

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.FAILED
    assert analysis.error.code == "content_policy"
    assert analysis.error.retryable is False
    assert scheduler.calls == []


def test_unexpected_exception_is_classified_unknown(store, scheduler, settings, scripted_extractor):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings, scripted_extractor(RuntimeError("kaboom")))
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "image/png"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.FAILED
    assert analysis.error.code == "unknown"
    assert analysis.error.message == "kaboom"


def test_unsupported_content_type_fails_without_retry(store, scheduler, settings, scripted_extractor):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings, scripted_extractor())
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))
    scheduler.calls.clear()

    asyncio.run(machine.analyze_upload(analysis_id, upload.storage_id, "application/zip"))

    analysis = asyncio.run(store.get_analysis(analysis_id))
    assert analysis.status == AnalysisStatus.FAILED
    assert analysis.error.code == "invalid_format"
    assert scheduler.calls == []


def test_get_upload_with_analysis(store, scheduler, settings):
    upload = add_upload(store)
    machine = make_machine(store, scheduler, settings)
    analysis_id = asyncio.run(machine.trigger_analysis(upload.id))

    view = asyncio.run(machine.get_upload_with_analysis(upload.id))

    assert view["upload"].id == upload.id
    assert view["storage_url"] == f"http://files.test/{upload.storage_id}"
    assert view["analysis"].id == analysis_id
    assert asyncio.run(machine.get_upload_with_analysis("missing")) is None


def test_gate_result(result_factory):
    assert gate_result(result_factory(confidence=0.7), 0.7).recipe_data is not None
    assert gate_result(result_factory(confidence=0.69), 0.7).recipe_data is None


def test_retry_delay_repeats_last_entry():
    delays = [5.0, 30.0, 120.0]
    assert [retry_delay(n, delays) for n in (1, 2, 3, 4, 7)] == [5.0, 30.0, 120.0, 120.0, 120.0]
