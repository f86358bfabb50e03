from concurrent.futures import Future

import pytest


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True):
        pass


@pytest.fixture(autouse=True)
def offline_services(settings):
    """Never reach real LLM or enrichment APIs from tests."""
    settings.GEMINI_API_KEY = ''
    settings.ENRICHMENT = {
        **settings.ENRICHMENT,
        'GITHUB_TOKEN': '',
        'TWITTER_BEARER_TOKEN': '',
        'TAVILY_API_KEY': '',
    }


@pytest.fixture
def inline_executor():
    return InlineExecutor()
