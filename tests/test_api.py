import pytest
from fastapi.testclient import TestClient

from zkvoting.api import create_app


@pytest.fixture
def api(service):
    return TestClient(create_app(service))


def test_generate_proof(api):
    response = api.post("/api/generateProof", json={"voteChoice": 1, "voteLimit": 2})

    assert response.status_code == 200
    body = response.json()
    assert set(body["proof"]) == {"a", "b", "c"}
    assert len(body["proof"]["b"]) == 2
    assert int(body["inputs"][0], 16) == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"voteChoice": 5, "voteLimit": 2},
        {"voteChoice": "1", "voteLimit": 2},
        {"voteChoice": 1},
        {},
    ],
)
def test_invalid_vote(api, zokrates_calls, payload):
    response = api.post("/api/generateProof", json=payload)

    assert response.status_code == 500
    assert response.json()["kind"] == "InvalidInput"
    assert zokrates_calls() == []


def test_body_that_is_not_an_object(api):
    response = api.post("/api/generateProof", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 500
    assert response.json()["kind"] == "InvalidInput"


def test_toolchain_failure_does_not_leak_output(api, monkeypatch):
    monkeypatch.setenv("FAKE_ZOKRATES_FAIL_STAGE", "compile")

    response = api.post("/api/generateProof", json={"voteChoice": 1, "voteLimit": 2})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Proof generation failed while running the circuit toolchain.",
        "kind": "ToolchainStageFailed",
    }
