import httpx
import pytest

from custom_cloud_logger import LogAnalyticsClient, config

WORKSPACE_ID = "11111111-1111-1111-1111-111111111111"
# base64 of bytes 0x00..0x3f
SHARED_KEY = "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8gISIjJCUmJygpKissLS4vMDEyMzQ1Njc4OTo7PD0+Pw=="


class Recorder:
    """
    httpx.MockTransport handler keeping every request it answers
    """

    def __init__(self, status_code: int = 200, text: str = ""):
        self.status_code = status_code
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.text)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def client(recorder):
    with LogAnalyticsClient(
        WORKSPACE_ID, SHARED_KEY, http_client=httpx.Client(transport=httpx.MockTransport(recorder))
    ) as log_client:
        yield log_client


@pytest.fixture
def environment(monkeypatch):
    monkeypatch.setattr(config, "app_state", {"bootstrapped": False})
    monkeypatch.setenv("WORKSPACE_ID", WORKSPACE_ID)
    monkeypatch.setenv("SHARED_KEY", SHARED_KEY)
    monkeypatch.delenv("LOG_ANALYTICS_ENDPOINT", raising=False)
