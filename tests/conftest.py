import asyncio
from datetime import datetime, timezone

import pytest

from vaultsearch.config import Config
from vaultsearch.health import HealthTracker
from vaultsearch.models import CorpusDocument, DocumentRef, normalize_extension
from vaultsearch.providers import (
    Corpus, EmbeddingOutcome, EmbeddingProvider, RerankItem, RerankOutcome,
    RerankProvider, TextGenProvider, VectorHit, VectorIndex,
)
from vaultsearch.readers import extract_tags


def run(coro):
    return asyncio.run(coro)


def ts(day: int) -> datetime:
    return datetime(2024, 1, day, tzinfo=timezone.utc)


class FakeCorpus(Corpus):
    """In-memory corpus: path -> content. Paths in `broken` fail to read."""

    def __init__(self, docs: dict[str, str] | None = None, modified: dict[str, datetime] | None = None):
        self.docs = dict(docs or {})
        self.modified = dict(modified or {})
        self.broken: set[str] = set()
        self.reads = 0

    def list_documents(self) -> list[DocumentRef]:
        refs = []
        for path, content in self.docs.items():
            when = self.modified.get(path, ts(1))
            refs.append(DocumentRef(
                path=path,
                extension=normalize_extension(path.rsplit(".", 1)[-1]),
                created_at=when,
                modified_at=when,
                size=len(content),
            ))
        return refs

    async def read(self, ref: DocumentRef) -> CorpusDocument:
        self.reads += 1
        if ref.path in self.broken:
            raise OSError(f"cannot read {ref.path}")
        content = self.docs[ref.path]
        return CorpusDocument(ref=ref, content=content, tags=extract_tags(content))


class FakeEmbedder(EmbeddingProvider):
    name = "fake-embed"

    def __init__(self, dim: int = 3):
        self.dim = dim
        self.calls = 0
        self.texts: list[str] = []

    async def embed_many(self, texts):
        self.calls += 1
        self.texts.extend(texts)
        return EmbeddingOutcome.from_vectors([[1.0] * self.dim for _ in texts], model="fake")


class FakeVectorIndex(VectorIndex):
    """Stores upserts; search returns `hits` when set, else every stored node at score 1.0."""

    def __init__(self, hits: list[VectorHit] | None = None):
        self.hits = hits
        self.nodes: dict[str, tuple] = {}
        self.searches: list[int] = []

    async def search(self, vector, k):
        self.searches.append(k)
        if self.hits is not None:
            return list(self.hits)[:k]
        return [VectorHit(id=i, score=1.0, payload=p) for i, (_, p) in list(self.nodes.items())[:k]]

    async def upsert(self, ids, vectors, payloads):
        for node_id, vector, payload in zip(ids, vectors, payloads):
            self.nodes[node_id] = (vector, payload)

    async def delete(self, ids):
        for node_id in ids:
            self.nodes.pop(node_id, None)

    async def ids(self):
        return set(self.nodes)

    async def count(self):
        return len(self.nodes)


class FakeReranker(RerankProvider):
    name = "fake-rerank"

    def __init__(self, scores: dict[int, float] | None = None, error: Exception | None = None):
        self.scores = scores or {}
        self.error = error
        self.calls: list[tuple] = []

    async def rerank(self, query, documents, top_k):
        self.calls.append((query, list(documents), top_k))
        if self.error:
            raise self.error
        items = [RerankItem(index=i, relevance_score=s) for i, s in self.scores.items()]
        items.sort(key=lambda it: it.relevance_score, reverse=True)
        return RerankOutcome(items=tuple(items[:top_k]), model="fake")


class FakeTextGen(TextGenProvider):
    """Replies via `respond(messages)`; tracks concurrent in-flight calls."""

    name = "fake-textgen"

    def __init__(self, respond=None, ready: bool = True):
        self.respond = respond or (lambda messages: "")
        self.ready = ready
        self.calls: list[list[dict]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def is_ready(self) -> bool:
        return self.ready

    async def generate(self, messages, max_tokens=None):
        self.calls.append(messages)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            reply = self.respond(messages)
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def tmp_docs(tmp_path):
    """A small knowledge base on disk."""
    docs = tmp_path / "docs"
    (docs / "finance").mkdir(parents=True)
    (docs / "notes").mkdir()
    (docs / "finance" / "invoices.md").write_text(
        "---\ntags: [finance, billing]\n---\n"
        "# Invoices\n\nInvoice payment is due within 30 days of receipt.\n"
    )
    (docs / "notes" / "meeting.md").write_text(
        "# Weekly meeting\n\nDiscussed the roadmap and hiring. #planning\n"
    )
    (docs / "notes" / "todo.txt").write_text("Send payment reminder to the landlord.\n")
    return docs


@pytest.fixture
def config(tmp_docs, tmp_path):
    """Keyword-only config pointing at the tmp docs."""
    return Config(
        docs_path=str(tmp_docs),
        vectorstore_path=str(tmp_path / "vectorstore"),
        state_path=str(tmp_path / "state" / "search_state.json"),
        config_file=str(tmp_path / "state" / "config.json"),
        embedding_provider="none",
        rerank_provider="none",
        textgen_provider="none",
        rerank_threshold=0.0,
    )


@pytest.fixture
def health():
    return HealthTracker()


@pytest.fixture
def clock():
    return FakeClock()
