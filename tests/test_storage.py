"""Tests for state persistence, file readers, the filesystem corpus and config loading."""
import json
from datetime import datetime, timezone

import pytest

from conftest import run
from vaultsearch.config import Config
from vaultsearch.corpus import FilesystemCorpus
from vaultsearch.engine import SearchEngine
from vaultsearch.models import DateRange, SavedSearch, SearchHistoryEntry, SearchOptions
from vaultsearch.providers import VaultsearchError
from vaultsearch.readers import extract_tags, extract_text, supported_extensions
from vaultsearch.state import JsonStateStore, SearchEngineState


class TestSearchOptions:
    def test_file_types_normalized(self):
        assert SearchOptions(query="x", file_types=[".PDF", "md"]).file_types == ("pdf", "md")

    def test_dict_roundtrip_with_date_range(self):
        options = SearchOptions(
            query="x", tags=["a"],
            date_range=DateRange(datetime(2024, 1, 1), datetime(2024, 2, 1, tzinfo=timezone.utc)),
        )
        assert SearchOptions.from_dict(options.to_dict()) == options

    def test_naive_dates_are_utc(self):
        dr = DateRange(datetime(2024, 1, 1), datetime(2024, 1, 31))
        assert dr.contains(datetime(2024, 1, 15, tzinfo=timezone.utc))
        assert not dr.contains(datetime(2024, 2, 1))


class TestJsonStateStore:
    def test_missing_file_is_empty(self, tmp_path):
        state = JsonStateStore(tmp_path / "nope.json").load()
        assert state.saved_searches == {} and state.history == []

    def test_roundtrip(self, tmp_path):
        store = JsonStateStore(tmp_path / "state" / "search.json")
        saved = SavedSearch(name="Budget", query="budget", options=SearchOptions(query="budget"))
        state = SearchEngineState(
            saved_searches={saved.id: saved},
            history=[SearchHistoryEntry(query="budget", timestamp="2024-01-01T00:00:00+00:00",
                                        result_count=3, search_type="keyword")],
        )
        store.save(state)
        loaded = store.load()
        assert loaded.saved_searches[saved.id].to_dict() == saved.to_dict()
        assert loaded.history == state.history

    def test_file_layout(self, tmp_path):
        path = tmp_path / "search.json"
        JsonStateStore(path).save(SearchEngineState())
        assert json.loads(path.read_text()) == {"saved_searches": [], "search_history": []}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "search.json"
        path.write_text("{not json")
        assert JsonStateStore(path).load().history == []


class TestReaders:
    def test_supported(self):
        assert {".md", ".txt", ".pdf", ".html", ".json", ".yaml", ".csv"} <= supported_extensions()

    def test_unsupported_returns_none(self, tmp_path):
        p = tmp_path / "image.png"
        p.write_bytes(b"\x89PNG")
        assert extract_text(p) is None

    def test_txt_is_body_only(self, tmp_path):
        p = tmp_path / "milk.txt"
        p.write_text("buy milk")
        assert extract_text(p) == "buy milk"

    def test_json_pretty_printed(self, tmp_path):
        p = tmp_path / "data.json"
        p.write_text('{"a": 1}')
        assert '"a": 1' in extract_text(p)
        assert extract_text(p).startswith("```json")

    def test_csv_as_table(self, tmp_path):
        p = tmp_path / "people.csv"
        p.write_text("name,role\nAda,engineer\nBob\n")
        text = extract_text(p)
        assert "| name | role |" in text
        assert "| Bob |  |" in text

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            extract_text(tmp_path / "gone.md")


class TestExtractTags:
    def test_frontmatter_list_and_inline(self):
        text = "---\ntags: [finance, q1]\n---\n# Budget\n\nSee #review and #finance\n"
        assert extract_tags(text) == ("finance", "q1", "review")

    def test_frontmatter_comma_string(self):
        assert extract_tags("---\ntags: a, b\n---\nbody") == ("a", "b")

    def test_headings_are_not_tags(self):
        assert extract_tags("# Title\n## Section\ntext") == ()

    def test_malformed_frontmatter_ignored(self):
        assert extract_tags("---\ntags: [unclosed\n---\nbody #ok") == ("ok",)


class TestFilesystemCorpus:
    def test_lists_relative_posix_paths(self, tmp_docs):
        refs = FilesystemCorpus(tmp_docs).list_documents()
        assert [r.path for r in refs] == ["finance/invoices.md", "notes/meeting.md", "notes/todo.txt"]
        assert refs[2].extension == "txt"
        assert refs[0].size > 0

    def test_extension_subset(self, tmp_docs):
        refs = FilesystemCorpus(tmp_docs, [".txt"]).list_documents()
        assert [r.path for r in refs] == ["notes/todo.txt"]

    def test_skips_nested_git_repos(self, tmp_docs):
        (tmp_docs / "vendor" / ".git").mkdir(parents=True)
        (tmp_docs / "vendor" / "README.md").write_text("# other project")
        paths = [r.path for r in FilesystemCorpus(tmp_docs).list_documents()]
        assert "vendor/README.md" not in paths

    def test_missing_root(self, tmp_path):
        with pytest.raises(VaultsearchError):
            FilesystemCorpus(tmp_path / "missing").list_documents()

    def test_read_extracts_tags(self, tmp_docs):
        corpus = FilesystemCorpus(tmp_docs)
        ref = corpus.list_documents()[0]
        doc = run(corpus.read(ref))
        assert doc.tags == ("finance", "billing")
        assert "Invoice payment" in doc.content

    def test_txt_file_name_not_scored(self, tmp_path):
        (tmp_path / "invoice.txt").write_text("payment due")
        engine = SearchEngine(FilesystemCorpus(tmp_path))
        assert run(engine.search(SearchOptions(query="invoice", search_type="keyword"))) == []
        (result,) = run(engine.search(SearchOptions(query="payment", search_type="keyword")))
        assert result.metadata.word_count == 2


class TestConfig:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("VAULTSEARCH_CACHE_TTL_SECONDS", "60")
        assert Config().cache_ttl_seconds == 60.0

    def test_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"history_limit": 7, "rerank_provider": "voyage", "unknown": 1}))
        monkeypatch.setenv("VAULTSEARCH_CONFIG_FILE", str(path))
        config = Config.load()
        assert config.history_limit == 7
        assert config.rerank_provider == "voyage"

    def test_unreadable_overrides_ignored(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text("{broken")
        monkeypatch.setenv("VAULTSEARCH_CONFIG_FILE", str(path))
        assert Config.load().history_limit == 100

    def test_save_then_load(self, tmp_path, monkeypatch):
        path = tmp_path / "nested" / "config.json"
        monkeypatch.setenv("VAULTSEARCH_CONFIG_FILE", str(path))
        config = Config.load()
        config.default_max_results = 25
        config.save()
        assert Config.load().default_max_results == 25

    def test_safe_dict_masks_keys(self):
        d = Config(voyage_api_key="pa-1234567890abcdef", openai_api_key="").to_safe_dict()
        assert d["voyage_api_key"] == "pa-12345..."
        assert d["openai_api_key"] == ""
