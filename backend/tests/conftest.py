from typing import List

import pytest

from backend.app.core.config import Settings
from backend.app.models.analysis import AnalysisResult, RecipeData
from backend.app.storage.memory_store import MemoryStore


class RecordingScheduler:
    """Stands in for Scheduler: records what would run instead of running it."""

    def __init__(self):
        self.calls = []

    def run_after(self, delay, name, **payload):
        self.calls.append((delay, name, payload))


class ScriptedExtractor:
    """Returns (or raises) the queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes: List = list(outcomes)
        self.image_urls = []
        self.html_inputs = []
        self.pdf_urls = []

    def _next(self):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def analyze_image(self, image_url):
        self.image_urls.append(image_url)
        return self._next()

    async def analyze_html(self, html):
        self.html_inputs.append(html)
        return self._next()

    async def analyze_pdf(self, pdf_url):
        self.pdf_urls.append(pdf_url)
        return self._next()


def make_result(confidence=0.9, **recipe_fields) -> AnalysisResult:
    recipe_fields.setdefault("title", "Blueberry Pancakes")
    recipe_fields.setdefault("ingredients", ["2 cups flour", "3 eggs", "salt to taste"])
    recipe_fields.setdefault("instructions", ["Mix", "Cook"])
    recipe_fields.setdefault("cook_time", "20 minutes")
    return AnalysisResult(
        raw_text="Blueberry Pancakes ...",
        description="A pancake recipe card",
        confidence=confidence,
        content_type="recipe",
        recipe_data=RecipeData(**recipe_fields),
    )


@pytest.fixture
def settings():
    return Settings(openai_api_key="test-key", retry_delays=[5.0, 30.0, 120.0], max_retries=3)


@pytest.fixture
def store():
    return MemoryStore("http://files.test")


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def scripted_extractor():
    return ScriptedExtractor
