import pytest
from fastapi.testclient import TestClient

from tests.conftest import LOGIN_URL
from vendorwatch.alert_receiver import VendorTarget, create_app, load_vendors
from vendorwatch.schema.results import AnalysisResult

ALERT = {
    "vendorId": "vendor-1",
    "vehicleNumber": "12가3456",
    "failedStep": "search",
    "errorMessage": "Search button not found",
}


class FakeOrchestrator:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.inputs = []

    async def run(self, analysis):
        self.inputs.append(analysis)
        if self.error is not None:
            raise self.error
        return AnalysisResult(action="completed", message="P001 matches its stored contract")


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def client(orchestrator):
    vendors = {
        "vendor-1": VendorTarget(
            system_code="P001", url=LOGIN_URL, path_params={"siteId": "9981"}
        )
    }
    return TestClient(create_app(orchestrator, vendors))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_alert_runs_an_analysis(client, orchestrator):
    response = client.post("/webhook/alert", json=ALERT)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["vendorId"] == "vendor-1"
    assert body["result"]["action"] == "completed"

    analysis = orchestrator.inputs[0]
    assert analysis.system_code == "P001"
    assert analysis.url == LOGIN_URL
    assert analysis.search_query == "12가3456"
    assert analysis.path_params == {"siteId": "9981"}


def test_missing_vendor_id_is_rejected(client, orchestrator):
    alert = {key: value for key, value in ALERT.items() if key != "vendorId"}
    response = client.post("/webhook/alert", json=alert)

    assert response.status_code == 400
    assert "vendorId" in response.json()["error"]
    assert orchestrator.inputs == []


def test_unknown_failed_step_is_rejected(client):
    response = client.post("/webhook/alert", json={**ALERT, "failedStep": "pay"})
    assert response.status_code == 400
    assert "failedStep" in response.json()["error"]


def test_unknown_vendor_is_not_found(client, orchestrator):
    response = client.post("/webhook/alert", json={**ALERT, "vendorId": "vendor-9"})

    assert response.status_code == 404
    assert "Unknown vendor" in response.json()["error"]
    assert orchestrator.inputs == []


def test_analysis_failure_is_a_server_error():
    app = create_app(
        FakeOrchestrator(RuntimeError("browser crashed")),
        {"vendor-1": VendorTarget(system_code="P001", url=LOGIN_URL)},
    )
    response = TestClient(app).post("/webhook/alert", json=ALERT)

    assert response.status_code == 500
    assert response.json()["error"] == "browser crashed"


def test_vendor_registry_is_loaded_from_json(tmp_path):
    path = tmp_path / "vendors.json"
    path.write_text('{"vendor-1": {"system_code": "P001", "url": "%s"}}' % LOGIN_URL)

    vendors = load_vendors(path)

    assert vendors["vendor-1"].system_code == "P001"
    assert vendors["vendor-1"].search_query is None
