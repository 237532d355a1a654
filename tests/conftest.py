import pytest
from fastapi.testclient import TestClient

from income_verifier.config import load_settings
from income_verifier.main import create_app
from income_verifier.schemas.analysis import IncomeAssessment

TEST_PASSWORD = "correct horse battery staple"

# "%PDF-1.4" base64 encoded
PDF_DATA = "JVBERi0xLjQ="


class FakeClock:
    """Monotonic clock the tests can move by hand."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubAnalyzer:
    """Stands in for Gemini; records every call."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.assessment = IncomeAssessment(
            is_eligible=True,
            annual_income=28_000.0,
            reasoning="Bi-weekly base pay of $1,076.92 annualizes to $28,000.",
            document_type="Pay Stub",
        )

    async def analyze(self, files, household_size, poverty_level, poverty_threshold):
        self.calls.append(
            {
                "files": files,
                "household_size": household_size,
                "poverty_level": poverty_level,
                "poverty_threshold": poverty_threshold,
            }
        )
        if self.error is not None:
            raise self.error
        return self.assessment


def make_settings(**overrides):
    values = {
        "INCOME_VERIFIER_PASSWORD": TEST_PASSWORD,
        "GEMINI_API_KEY": "",
        "STATIC_DIR": "does-not-exist",
        "_env_file": None,
    }
    values.update(overrides)
    return load_settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def analyzer() -> StubAnalyzer:
    return StubAnalyzer()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, analyzer, clock):
    return create_app(settings, analyzer=analyzer, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def token(client) -> str:
    response = client.post("/api/auth", json={"password": TEST_PASSWORD})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token) -> dict:
    return {"Authorization": f"Bearer {token}"}


def analyze_body(household_size=3, files=None):
    if files is None:
        files = [{"mimeType": "application/pdf", "data": PDF_DATA, "name": "stub.pdf"}]
    return {"files": files, "householdSize": household_size}


