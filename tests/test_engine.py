"""Tests for the SearchEngine orchestrator: cache, filters, sorting, history, saved searches."""
import pytest

from conftest import FakeClock, FakeCorpus, FakeEmbedder, FakeReranker, FakeVectorIndex, run, ts
from vaultsearch.engine import SavedSearchNotFound, SearchEngine, cache_key
from vaultsearch.health import HealthTracker
from vaultsearch.models import DateRange, SearchFilter, SearchOptions
from vaultsearch.providers import ConfigurationError, VectorHit
from vaultsearch.state import MemoryStateStore


def _keyword(query, **kw):
    return SearchOptions(query=query, search_type="keyword", **kw)


@pytest.fixture
def corpus():
    return FakeCorpus({
        "finance/invoices.md": "Invoice payment is due. #finance",
        "notes/alpha.md": "alpha alpha beta",
        "notes/beta.pdf": "alpha report",
    }, modified={"finance/invoices.md": ts(1), "notes/alpha.md": ts(10), "notes/beta.pdf": ts(20)})


@pytest.fixture
def engine(corpus, clock):
    return SearchEngine(corpus, clock=clock)


class TestCacheKey:
    def test_ignores_result_shaping_options(self):
        a = SearchOptions(query="x", max_results=5, sort_by="title")
        b = SearchOptions(query="x", max_results=50, sort_by="date")
        assert cache_key(a) == cache_key(b)

    def test_differs_by_search_type(self):
        assert cache_key(SearchOptions(query="x")) != cache_key(_keyword("x"))


class TestCache:
    def test_repeat_search_served_from_cache(self, engine, corpus):
        first = run(engine.search(_keyword("alpha")))
        reads = corpus.reads
        second = run(engine.search(_keyword("alpha")))
        assert second == first
        assert corpus.reads == reads

    def test_expired_entry_is_recomputed(self, engine, corpus, clock):
        run(engine.search(_keyword("alpha")))
        reads = corpus.reads
        clock.advance(301)
        run(engine.search(_keyword("alpha")))
        assert corpus.reads > reads

    def test_entry_live_just_before_ttl(self, engine, corpus, clock):
        run(engine.search(_keyword("alpha")))
        reads = corpus.reads
        clock.advance(299)
        run(engine.search(_keyword("alpha")))
        assert corpus.reads == reads

    def test_clear_cache(self, engine, corpus):
        run(engine.search(_keyword("alpha")))
        reads = corpus.reads
        engine.clear_cache()
        run(engine.search(_keyword("alpha")))
        assert corpus.reads > reads

    def test_cached_list_is_a_copy(self, engine):
        first = run(engine.search(_keyword("alpha")))
        first.clear()
        assert run(engine.search(_keyword("alpha")))

    def test_expired_entries_dropped_on_store(self, engine, clock):
        for i in range(20):
            run(engine.search(_keyword(f"alpha {i}")))
        assert len(engine._cache) == 20
        clock.advance(301)
        run(engine.search(_keyword("beta")))
        assert list(engine._cache) == [cache_key(_keyword("beta"))]


class TestKeywordScenario:
    def test_invoice_payment(self):
        corpus = FakeCorpus({"invoices/2024.md": "Invoice #42: payment received on March 3rd."})
        engine = SearchEngine(corpus, clock=FakeClock())
        results = run(engine.search(_keyword("invoice payment")))
        assert len(results) == 1
        r = results[0]
        assert r.id == "doc:invoices/2024.md"
        assert r.origin == "file"
        assert r.score == pytest.approx(1.0)
        assert "Invoice #42: payment received" in r.metadata.highlights[0]

    def test_no_match_gives_empty_list(self, engine):
        assert run(engine.search(_keyword("zebra"))) == []


class TestHybrid:
    def test_weighting(self):
        corpus = FakeCorpus({"a.md": "gamma", "b.md": "alpha"})
        index = FakeVectorIndex(hits=[
            VectorHit(id="n1", score=0.9, payload={"text": "alpha beta", "path": "a.md", "title": "a"}),
        ])
        engine = SearchEngine(corpus, FakeEmbedder(), index, clock=FakeClock())
        results = run(engine.search(SearchOptions(query="alpha")))
        assert [r.id for r in results] == ["doc:a.md", "doc:b.md"]
        assert results[0].final_score == pytest.approx(0.63)
        assert results[1].final_score == pytest.approx(0.3)

    def test_ai_enhanced_without_textgen_equals_hybrid(self, engine):
        hybrid = run(engine.search(SearchOptions(query="alpha")))
        enhanced = run(engine.search(SearchOptions(query="alpha", search_type="ai_enhanced")))
        assert enhanced == hybrid


class TestStrategyErrors:
    def test_semantic_without_embedder_raises(self, corpus):
        health = HealthTracker()
        engine = SearchEngine(corpus, clock=FakeClock(), health=health)
        with pytest.raises(ConfigurationError):
            run(engine.search(SearchOptions(query="alpha", search_type="semantic")))
        assert health.status["searches_failed"] == 1
        assert engine.get_search_history() == []

    def test_unreadable_document_skipped(self, corpus, engine):
        corpus.broken.add("notes/alpha.md")
        results = run(engine.search(_keyword("alpha")))
        assert [r.id for r in results] == ["doc:notes/beta.pdf"]


class TestRerank:
    def test_rerank_applied_and_threshold_excludes(self, corpus):
        reranker = FakeReranker(scores={0: 0.9, 1: 0.05})
        engine = SearchEngine(corpus, rerank_provider=reranker, clock=FakeClock())
        results = run(engine.search(_keyword("alpha", use_rerank=True, rerank_threshold=0.1)))
        assert len(reranker.calls) == 1
        assert [r.id for r in results] == ["doc:notes/alpha.md"]
        assert results[0].rerank_score == pytest.approx(0.9)

    def test_rerank_skipped_when_not_requested(self, corpus):
        reranker = FakeReranker(scores={0: 0.9})
        engine = SearchEngine(corpus, rerank_provider=reranker, clock=FakeClock())
        run(engine.search(_keyword("alpha")))
        assert reranker.calls == []


class TestFilters:
    def test_file_types(self, engine):
        results = run(engine.search(_keyword("alpha", file_types=(".MD",))))
        assert [r.id for r in results] == ["doc:notes/alpha.md"]

    def test_file_types_keeps_results_without_document(self):
        index = FakeVectorIndex(hits=[VectorHit(id="n1", score=0.8, payload={"text": "alpha"})])
        engine = SearchEngine(FakeCorpus(), FakeEmbedder(), index, clock=FakeClock())
        results = run(engine.search(SearchOptions(query="alpha", search_type="semantic", file_types=("md",))))
        assert [r.id for r in results] == ["node:n1"]

    def test_date_range(self, engine):
        results = run(engine.search(_keyword("alpha", date_range=DateRange(ts(5), ts(15)))))
        assert [r.id for r in results] == ["doc:notes/alpha.md"]

    def test_tags(self, engine):
        results = run(engine.search(_keyword("payment", tags=("finance",))))
        assert [r.id for r in results] == ["doc:finance/invoices.md"]
        assert run(engine.search(_keyword("alpha", tags=("finance",)))) == []

    def test_folders(self, engine):
        results = run(engine.search(_keyword("alpha", folders=("notes/",))))
        assert {r.id for r in results} == {"doc:notes/alpha.md", "doc:notes/beta.pdf"}
        assert run(engine.search(_keyword("alpha", folders=("finance/",)))) == []

    def test_max_results(self, engine):
        assert len(run(engine.search(_keyword("alpha", max_results=1)))) == 1


class TestSorting:
    @pytest.fixture
    def engine(self):
        corpus = FakeCorpus({
            "x/readme.md": "alpha alpha",
            "y/readme.md": "alpha",
            "z/about.md": "alpha",
        }, modified={"x/readme.md": ts(3), "y/readme.md": ts(1), "z/about.md": ts(2)})
        return SearchEngine(corpus, clock=FakeClock())

    def test_relevance_desc(self, engine):
        results = run(engine.search(_keyword("alpha")))
        assert results[0].id == "doc:x/readme.md"

    def test_title_asc_is_stable(self, engine):
        results = run(engine.search(_keyword("alpha", sort_by="title", sort_order="asc")))
        assert [r.id for r in results] == ["doc:z/about.md", "doc:x/readme.md", "doc:y/readme.md"]

    def test_title_desc_is_stable(self, engine):
        results = run(engine.search(_keyword("alpha", sort_by="title", sort_order="desc")))
        assert [r.id for r in results] == ["doc:x/readme.md", "doc:y/readme.md", "doc:z/about.md"]

    def test_date_asc(self, engine):
        results = run(engine.search(_keyword("alpha", sort_by="date", sort_order="asc")))
        assert [r.id for r in results] == ["doc:y/readme.md", "doc:z/about.md", "doc:x/readme.md"]


class TestHistory:
    def test_bounded_to_limit(self, engine):
        for i in range(150):
            run(engine.search(_keyword(f"q{i}")))
        history = engine.get_search_history()
        assert len(history) == 100
        assert history[0].query == "q50"
        assert history[-1].query == "q149"

    def test_cache_hit_not_recorded(self, engine):
        run(engine.search(_keyword("alpha")))
        run(engine.search(_keyword("alpha")))
        assert len(engine.get_search_history()) == 1

    def test_clear(self, engine):
        run(engine.search(_keyword("alpha")))
        engine.clear_search_history()
        assert engine.get_search_history() == []

    def test_persisted_across_engines(self, corpus):
        store = MemoryStateStore()
        run(SearchEngine(corpus, store=store, clock=FakeClock()).search(_keyword("alpha")))
        reloaded = SearchEngine(corpus, store=store, clock=FakeClock())
        assert [h.query for h in reloaded.get_search_history()] == ["alpha"]


class TestAnalytics:
    def test_counts(self, engine):
        run(engine.search(_keyword("alpha")))
        engine.clear_cache()
        run(engine.search(_keyword("alpha")))
        run(engine.search(SearchOptions(query="payment")))
        a = engine.get_search_analytics()
        assert a["total_searches"] == 3
        assert a["top_queries"][0] == {"query": "alpha", "count": 2}
        assert a["search_types"] == {"semantic": 0, "keyword": 2, "hybrid": 1, "ai_enhanced": 0}
        assert a["average_results"] == pytest.approx((2 + 2 + 1) / 3)

    def test_empty(self, engine):
        a = engine.get_search_analytics()
        assert a["total_searches"] == 0
        assert a["top_queries"] == []
        assert a["average_results"] == 0.0


class TestSavedSearches:
    def test_save_and_list(self, engine):
        saved = engine.save_search("Alpha", "alpha", _keyword("alpha"))
        assert saved.id.startswith("search_")
        assert [s.id for s in engine.get_saved_searches()] == [saved.id]

    def test_execute_updates_usage(self, engine):
        saved = engine.save_search("Alpha", "alpha", _keyword("alpha"))
        results = run(engine.execute_saved_search(saved.id))
        assert {r.id for r in results} == {"doc:notes/alpha.md", "doc:notes/beta.pdf"}
        assert engine.get_saved_search(saved.id).use_count == 1

    def test_most_recently_used_first(self, engine):
        first = engine.save_search("One", "alpha", _keyword("alpha"))
        second = engine.save_search("Two", "beta", _keyword("beta"))
        first.last_used = "2020-01-01T00:00:00+00:00"
        second.last_used = "2021-01-01T00:00:00+00:00"
        run(engine.execute_saved_search(first.id))
        assert [s.id for s in engine.get_saved_searches()] == [first.id, second.id]

    def test_filters_are_kept(self, engine):
        saved = engine.save_search(
            "Tagged", "alpha", _keyword("alpha"),
            [SearchFilter(name="finance only", type="tag", value="finance")],
        )
        assert engine.get_saved_search(saved.id).filters[0].value == "finance"

    def test_delete(self, engine):
        saved = engine.save_search("Alpha", "alpha", _keyword("alpha"))
        assert engine.delete_saved_search(saved.id) is True
        assert engine.delete_saved_search(saved.id) is False
        assert engine.get_saved_searches() == []

    def test_unknown_id(self, engine):
        with pytest.raises(SavedSearchNotFound):
            engine.get_saved_search("search_missing")
        with pytest.raises(SavedSearchNotFound):
            run(engine.execute_saved_search("search_missing"))

    def test_every_mutation_persists(self, corpus):
        store = MemoryStateStore()
        engine = SearchEngine(corpus, store=store, clock=FakeClock())
        saved = engine.save_search("Alpha", "alpha", _keyword("alpha"))
        assert store.saves == 1
        reloaded = SearchEngine(corpus, store=store, clock=FakeClock())
        assert reloaded.get_saved_search(saved.id).options == _keyword("alpha")


class TestHealth:
    def test_records_searches_and_cache_hits(self, corpus):
        health = HealthTracker()
        engine = SearchEngine(corpus, clock=FakeClock(), health=health)
        run(engine.search(_keyword("alpha")))
        run(engine.search(_keyword("alpha")))
        s = health.status
        assert s["searches_total"] == 2
        assert s["searches_cached"] == 1
        assert s["searches_by_type"]["keyword"] == 2
