import json

import pytest
from fastapi.testclient import TestClient

import app.app as api
from conftest import FakeEmbedder, FakeOpenAI, make_course
from rag.config import Settings
from rag.errors import EmbeddingError
from rag.generator import ExplanationGenerator
from rag.vector_store import CourseStore

PAYLOAD = {
    "name": "Digital strategi",
    "description": "Kurset handler om digital strategi og ledelse.",
}


@pytest.fixture
def openai_client():
    return FakeOpenAI(content="### KURSSAMMENLIGNING\n▸ Høyt overlapp")


@pytest.fixture
def client(toy_corpus, openai_client):
    """Service wired to the toy corpus, a fake embedder and a fake LLM."""
    api.configure(CourseStore(toy_corpus), FakeEmbedder(), ExplanationGenerator(client=openai_client))
    return TestClient(api.app)


def _compare(client, **extra):
    response = client.post("/compare", json={**PAYLOAD, **extra})
    assert response.status_code == 200
    return response.json()


class TestCompareEndpoint:
    """Test POST /compare."""

    def test_ranked_results(self, client):
        data = _compare(client)
        assert data["stale"] is False
        assert data["session"]
        codes = [c["code"] for c in data["results"]]
        assert codes == ["REC1", "REC3", "REC2"]
        assert data["results"][0]["similarity"] == 100.0
        assert "embedding" not in data["results"][0]

    def test_keeps_given_session(self, client):
        assert _compare(client, session="abc")["session"] == "abc"

    def test_requires_fields(self, client):
        assert client.post("/compare", json={"name": "Digital strategi"}).status_code == 422

    def test_short_name_rejected(self, client):
        response = client.post("/compare", json={**PAYLOAD, "name": "Kort"})
        assert response.status_code == 400
        assert response.json()["field"] == "name"

    def test_rejected_request_not_tracked(self, client):
        """Test an invalid compare never registers its session."""
        before = len(api._tracker)
        client.post("/compare", json={**PAYLOAD, "name": "Kort", "session": "fresh"})
        assert len(api._tracker) == before
        assert client.post("/filter", json={"session": "fresh"}).status_code == 404

    def test_embedding_failure(self, toy_corpus, openai_client):
        embedder = FakeEmbedder(error=EmbeddingError("transport", "API request failed"))
        api.configure(CourseStore(toy_corpus), embedder, ExplanationGenerator(client=openai_client))
        response = TestClient(api.app).post("/compare", json=PAYLOAD)
        assert response.status_code == 502
        assert response.json()["kind"] == "transport"

    def test_empty_corpus(self, openai_client):
        api.configure(CourseStore([make_course("A", None)]), FakeEmbedder(),
                      ExplanationGenerator(client=openai_client))
        response = TestClient(api.app).post("/compare", json=PAYLOAD)
        assert response.status_code == 503
        assert response.json()["error"] == "EmptyCorpusError"

    def test_superseded_request_is_stale(self, toy_corpus, openai_client):
        """Test a compare overtaken mid-flight returns no results."""

        class SupersedingEmbedder(FakeEmbedder):
            def embed_input(self, item):
                api._tracker.begin("shared")
                return super().embed_input(item)

        api.configure(CourseStore(toy_corpus), SupersedingEmbedder(),
                      ExplanationGenerator(client=openai_client))
        data = _compare(TestClient(api.app), session="shared")
        assert data["stale"] is True
        assert data["results"] == []


class TestFilterEndpoints:
    """Test POST /filter and GET /filters/{session}."""

    def test_filter(self, client):
        session = _compare(client)["session"]
        response = client.post("/filter", json={
            "session": session,
            "filters": {"similarity_range": [50, 100], "level": {"Master": True}},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [c["code"] for c in data["results"]] == ["REC1", "REC3"]

    def test_empty_search_term_returns_everything(self, client):
        session = _compare(client)["session"]
        data = client.post("/filter", json={"session": session, "search_term": ""}).json()
        assert [c["code"] for c in data["results"]] == ["REC1", "REC3", "REC2"]

    def test_search_term(self, client):
        session = _compare(client)["session"]
        data = client.post("/filter", json={"session": session, "search_term": "rec2"}).json()
        assert [c["code"] for c in data["results"]] == ["REC2"]

    def test_unknown_session(self, client):
        assert client.post("/filter", json={"session": "nope"}).status_code == 404

    def test_filter_options(self, client):
        session = _compare(client)["session"]
        options = client.get(f"/filters/{session}").json()
        assert options["level"] == ["Bachelor", "Master"]
        assert options["credits"] == ["7.5", "15"]


class TestExplainEndpoint:
    """Test POST /explain."""

    def test_explain(self, client, openai_client):
        session = _compare(client)["session"]
        response = client.post("/explain", json={"session": session, "course_code": "REC3"})
        assert response.status_code == 200
        assert response.json()["explanation"].startswith("### KURSSAMMENLIGNING")

    def test_explanation_cached(self, client, openai_client):
        session = _compare(client)["session"]
        for _ in range(2):
            client.post("/explain", json={"session": session, "course_code": "REC3"})
        assert len(openai_client.calls) == 1

    def test_explanation_shows_in_filtered_rows(self, client):
        session = _compare(client)["session"]
        client.post("/explain", json={"session": session, "course_code": "REC3"})
        rows = client.post("/filter", json={"session": session}).json()["results"]
        explained = {c["code"]: c["explanation"] for c in rows}
        assert explained["REC3"]
        assert explained["REC1"] is None

    def test_committed_results_not_mutated(self, client):
        """Test explanations live in the cache, not on the stored results."""
        session = _compare(client)["session"]
        client.post("/explain", json={"session": session, "course_code": "REC3"})
        assert all(r.explanation is None for r in api._tracker.latest(session).results)

    def test_explanation_follows_query(self, client):
        """Test a new compare in the same session does not show the old explanation."""
        session = _compare(client)["session"]
        client.post("/explain", json={"session": session, "course_code": "REC3"})
        _compare(client, session=session, description="Et helt annet kurs om regnskap og revisjon.")
        rows = client.post("/filter", json={"session": session}).json()["results"]
        assert all(c["explanation"] is None for c in rows)

    def test_unknown_course(self, client):
        session = _compare(client)["session"]
        response = client.post("/explain", json={"session": session, "course_code": "NOPE"})
        assert response.status_code == 404


class TestSearchAndHealth:
    """Test POST /search and GET /health."""

    def test_search(self, client):
        response = client.post("/search", json={"q": "strategi"})
        assert response.status_code == 200
        assert response.json()["results"][0]["code"] == "REC1"

    def test_blank_search_rejected(self, client):
        assert client.post("/search", json={"q": "   "}).status_code == 400
        assert client.post("/search", json={"q": ""}).status_code == 422

    def test_health(self, client):
        data = client.get("/health").json()
        assert data == {"status": "ok", "courses": 3, "embedded": 3, "dim": 3}


class TestEnsureData:
    """Test building the corpus before serving."""

    def test_builds_under_data_dir(self, tmp_path):
        rows = [{"kurskode": "BED1", "kursnavn": "Strategi", "course_content": "Strategi"}]
        (tmp_path / "courses.json").write_text(json.dumps(rows), encoding="utf-8")
        settings = Settings(data_dir=tmp_path)

        api._ensure_data(settings, FakeEmbedder())
        assert (tmp_path / "metadata.json").exists()

        embedder = FakeEmbedder()
        api._ensure_data(settings, embedder)
        assert embedder.calls == []
