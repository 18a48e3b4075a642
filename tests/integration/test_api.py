"""Integration tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLM, FakeMedia
from weaveflow.api.dependencies import set_engine
from weaveflow.api.main import app
from weaveflow.capabilities.base import RemoteCallError
from weaveflow.engine import create_engine

OWNER = {"X-Owner-Id": "owner-1"}


@pytest.fixture
def llm():
    return FakeLLM("world")


@pytest.fixture
def client(llm):
    set_engine(create_engine(llm=llm, media=FakeMedia()))
    yield TestClient(app)
    set_engine(None)


def _hello_world(client):
    client.post("/v1/nodes", json={"type": "text", "id": "A", "data": {"text": "hello"}})
    client.post("/v1/nodes", json={"type": "llm", "id": "B", "data": {"model": "gemini-1.5-flash"}})
    return client.post(
        "/v1/edges",
        json={"source": "A", "target": "B", "sourceHandle": "output", "targetHandle": "user_message"},
    )


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_root_endpoint(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "weaveflow"


def test_build_graph(client):
    response = _hello_world(client)

    assert response.status_code == 201
    assert response.json()["id"] == "reactflow__edge-Aoutput-Buser_message"

    graph = client.get("/v1/graph").json()
    assert [node["id"] for node in graph["nodes"]] == ["A", "B"]
    llm = graph["nodes"][1]
    assert llm["data"]["userMessage"] == "hello"
    assert graph["edges"][0]["targetHandle"] == "user_message"


def test_add_node_defaults_and_generated_id(client):
    response = client.post("/v1/nodes", json={"type": "cropImage"})

    assert response.status_code == 201
    node = response.json()
    assert node["id"].startswith("cropImage-")
    assert node["data"]["widthPercent"] == 100


def test_duplicate_node_conflict(client):
    client.post("/v1/nodes", json={"type": "text", "id": "A"})

    assert client.post("/v1/nodes", json={"type": "text", "id": "A"}).status_code == 409


def test_cycle_rejected_with_reason(client):
    for node_id in ("A", "B"):
        client.post("/v1/nodes", json={"type": "text", "id": node_id})
    client.post("/v1/edges", json={"source": "A", "target": "B", "targetHandle": "input"})

    response = client.post("/v1/edges", json={"source": "B", "target": "A", "targetHandle": "input"})

    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "cycle"
    assert len(client.get("/v1/graph").json()["edges"]) == 1


def test_update_and_delete_node(client):
    client.post("/v1/nodes", json={"type": "text", "id": "A"})

    response = client.patch("/v1/nodes/A", json={"text": "edited"})
    assert response.status_code == 200
    assert response.json()["data"]["text"] == "edited"

    assert client.patch("/v1/nodes/A", json={"bogus": 1}).status_code == 422
    assert client.patch("/v1/nodes/ghost", json={"text": "x"}).status_code == 404
    assert client.delete("/v1/nodes/A").status_code == 200
    assert client.delete("/v1/nodes/A").status_code == 404


def test_delete_edge(client):
    edge_id = _hello_world(client).json()["id"]

    assert client.delete(f"/v1/edges/{edge_id}").status_code == 200
    assert client.delete(f"/v1/edges/{edge_id}").status_code == 404


def test_replace_graph_rejects_cycle(client):
    graph = {
        "nodes": [{"id": "x", "type": "text", "data": {}}, {"id": "y", "type": "text", "data": {}}],
        "edges": [
            {"id": "e1", "source": "x", "target": "y"},
            {"id": "e2", "source": "y", "target": "x"},
        ],
    }

    assert client.put("/v1/graph", json=graph).status_code == 422


def test_run_node_and_history(client):
    _hello_world(client)

    response = client.post("/v1/nodes/B/run", headers=OWNER)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["outputs"] == {"output": "world"}
    assert body["runId"] is not None

    runs = client.get("/v1/runs", headers=OWNER).json()
    assert len(runs) == 1
    assert runs[0]["node_runs"][0]["status"] == "success"
    assert client.get("/v1/runs").json() == []

    response = client.delete("/v1/runs", headers=OWNER)
    assert response.json() == {
        "success": True,
        "deletedCount": 1,
        "message": "Successfully deleted 1 workflow run(s)",
    }


def test_list_runs_limit_validated(client):
    _hello_world(client)
    client.post("/v1/nodes/B/run", headers=OWNER)
    client.post("/v1/nodes/B/run", headers=OWNER)

    assert client.get("/v1/runs?limit=0", headers=OWNER).status_code == 422
    assert client.get("/v1/runs?limit=-1", headers=OWNER).status_code == 422
    assert len(client.get("/v1/runs?limit=1", headers=OWNER).json()) == 1


def test_run_node_requires_owner(client):
    _hello_world(client)

    assert client.post("/v1/nodes/B/run").status_code == 401
    assert client.delete("/v1/runs").status_code == 401


def test_run_node_status_codes(client, llm):
    _hello_world(client)
    client.post("/v1/nodes", json={"type": "llm", "id": "empty"})

    assert client.post("/v1/nodes/ghost/run", headers=OWNER).status_code == 404
    assert client.post("/v1/nodes/A/run", headers=OWNER).status_code == 409

    response = client.post("/v1/nodes/empty/run", headers=OWNER)
    assert response.status_code == 400
    assert response.json()["detail"]["errorCategory"] == "validation"

    llm.replies = [RemoteCallError("401 Unauthorized")]
    response = client.post("/v1/nodes/B/run", headers=OWNER)
    assert response.status_code == 502
    assert response.json()["detail"]["errorCategory"] == "invalid_key"


def test_run_selection(client):
    _hello_world(client)

    response = client.post("/v1/runs", json={"nodeIds": ["B"]}, headers=OWNER)

    assert response.status_code == 200
    body = response.json()
    assert body["scope"] == "partial"
    assert body["status"] == "success"
    assert body["results"][0]["nodeId"] == "B"
