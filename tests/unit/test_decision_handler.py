"""
Unit tests for the HTTP decision handler.
"""

import pytest
from unittest.mock import Mock
from fastapi import FastAPI
from fastapi.testclient import TestClient

from call_options.handlers import decision_handler
from call_options.models.decision import CallerIdOverride, Decision, PipelineState, RecordingInstruction
from call_options.utils.exceptions import SanityCheckFailed


@pytest.fixture
def mock_controller():
    """Mock call controller."""
    return Mock()


@pytest.fixture
def client(mock_controller):
    """Test client on an app exposing the decision router."""
    app = FastAPI()
    app.include_router(decision_handler.router)
    decision_handler.init_handler(mock_controller)
    yield TestClient(app)
    decision_handler.init_handler(None)


PAYLOAD = {
    "call_id": "1733832000.42",
    "channel_name": "SIP/trunk-00000042",
    "caller_number": "0499999999",
    "dialed_number": "0612345678",
    "account_id": "42",
}


def test_decide_returns_decision(client, mock_controller):
    """Test a decided call is returned with its effects."""
    mock_controller.decide.return_value = Decision(
        call_id="1733832000.42",
        state=PipelineState.DONE,
        record=True,
        recording=RecordingInstruction(path="/rec", filename="1733832000.42-20251210-123005.wav"),
        caller_id_override=CallerIdOverride(number="0611110000", name="0611110000"),
        original_account_id="42",
        account_id="42",
        canonical_number="33612345678",
    )

    response = client.post("/v1/decide", json=PAYLOAD)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "decided"
    assert data["terminate"] is False
    assert data["record"] is True
    assert data["recording"]["mixmonitor_args"] == "/rec/1733832000.42-20251210-123005.wav,b"
    assert data["caller_id_override"] == {"number": "0611110000", "name": "0611110000"}
    assert data["canonical_number"] == "33612345678"

    context = mock_controller.decide.call_args.args[0]
    assert context.call_id == "1733832000.42"
    assert context.account_id == "42"


def test_decide_terminated_call(client, mock_controller):
    """Test a blocked call is returned with terminate set."""
    mock_controller.decide.return_value = Decision(
        call_id="1733832000.42",
        state=PipelineState.DONE,
        terminate=True,
        reason="destination 33612345678 forbidden",
    )

    data = client.post("/v1/decide", json=PAYLOAD).json()

    assert data["terminate"] is True
    assert data["reason"] == "destination 33612345678 forbidden"


def test_decide_abstained(client, mock_controller):
    """Test an abstained event is reported as such."""
    mock_controller.decide.return_value = Decision(
        call_id="1733832000.42", state=PipelineState.ABSTAINED, reason="special extension [h]"
    )

    data = client.post("/v1/decide", json={**PAYLOAD, "dialed_number": "h"}).json()

    assert data["status"] == "abstained"


def test_decide_sanity_failure(client, mock_controller):
    """Test a malformed event is answered as aborted."""
    mock_controller.decide.side_effect = SanityCheckFailed("No dialed number has been passed")

    response = client.post("/v1/decide", json={**PAYLOAD, "dialed_number": ""})

    assert response.status_code == 200
    assert response.json()["status"] == "aborted"
    assert response.json()["reason"] == "No dialed number has been passed"


def test_decide_requires_call_id(client):
    """Test request validation."""
    response = client.post("/v1/decide", json={**PAYLOAD, "call_id": ""})

    assert response.status_code == 422


def test_decide_not_initialized():
    """Test 503 before the pipeline is ready."""
    app = FastAPI()
    app.include_router(decision_handler.router)
    decision_handler.init_handler(None)

    response = TestClient(app).post("/v1/decide", json=PAYLOAD)

    assert response.status_code == 503
