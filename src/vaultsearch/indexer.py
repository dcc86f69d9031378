# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Corpus -> heading chunks -> embeddings -> vector index (the memory graph).

Sync is diff-aware: a sha256 and the node ids per document are kept beside
the vector store, and only documents whose hash changed (or whose chunks
are missing from the index) are re-embedded. Documents that fail to read
keep their nodes until they can be read again.
Nodes of deleted documents are removed, unless the corpus came back empty
(e.g. a mount that is not there yet), in which case nothing is removed.

Node ids are content-based (sha256 of path + text) so they are stable
across re-syncs regardless of section ordering.
"""
import asyncio
import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Optional

from .models import CorpusDocument
from .providers import Corpus, EmbeddingProvider, VectorIndex

logger = logging.getLogger(__name__)

MIN_CHUNK_CHARS = 50
_HEADING_RE = re.compile(r"^(#{1,3})\s+(.*)")


def make_node_id(path: str, text: str) -> str:
    return hashlib.sha256(f"{path}\n{text}".encode()).hexdigest()[:16]


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode()).hexdigest()


def chunk_document(doc: CorpusDocument, max_chars: int = 2000) -> list[dict]:
    """Split at #, ## and ### headings, keeping the parent heading path.
    Sections longer than max_chars are cut into max_chars pieces."""
    chunks: list[dict] = []
    heading_stack: list[tuple[int, str]] = []
    heading = doc.ref.stem
    heading_path = ""
    lines: list[str] = []

    def flush():
        raw = "\n".join(lines).strip()
        if len(raw) <= MIN_CHUNK_CHARS:
            return
        pieces = [raw[i:i + max_chars] for i in range(0, len(raw), max_chars)] if max_chars > 0 else [raw]
        for n, piece in enumerate(pieces):
            text = f"[{heading_path}]\n\n{piece}" if heading_path else piece
            chunks.append({
                "id": make_node_id(doc.path, text),
                "text": text,
                "payload": {
                    "text": text,
                    "path": doc.path,
                    "title": doc.ref.stem,
                    "heading": heading if len(pieces) == 1 else f"{heading} (part {n + 1})",
                    "heading_path": heading_path,
                    "tags": list(doc.tags),
                    "created": doc.ref.created_at.isoformat(),
                    "modified": doc.ref.modified_at.isoformat(),
                },
            })

    for line in doc.content.split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            flush()
            level = len(match.group(1))
            title = match.group(2).strip()
            heading_stack = [(lvl, t) for lvl, t in heading_stack if lvl < level]
            heading_stack.append((level, title))
            heading = title
            heading_path = " > ".join(t for _, t in heading_stack)
            lines = [line]
        else:
            lines.append(line)
    flush()
    return chunks


class CorpusIndexer:
    def __init__(
        self,
        corpus: Corpus,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        hashes_path: Optional[str | Path] = None,
        chunk_max_chars: int = 2000,
    ):
        self.corpus = corpus
        self.embedder = embedder
        self.index = index
        self.hashes_path = Path(hashes_path) if hashes_path else None
        self.chunk_max_chars = chunk_max_chars
        self._files: dict[str, dict] = {}

    # ── File hash tracking ───────────────────────────
    # path -> {"hash": sha256 of the content, "nodes": [node ids]}

    def _load_files(self) -> dict[str, dict]:
        if self.hashes_path is None or not self.hashes_path.exists():
            return dict(self._files)
        try:
            raw = json.loads(self.hashes_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable hash cache %s: %s", self.hashes_path, e)
            return dict(self._files)
        # older caches stored the bare hash
        return {
            path: entry if isinstance(entry, dict) else {"hash": entry, "nodes": []}
            for path, entry in raw.items()
        }

    def _save_files(self, files: dict[str, dict]):
        self._files = dict(files)
        if self.hashes_path is None:
            return
        self.hashes_path.parent.mkdir(parents=True, exist_ok=True)
        self.hashes_path.write_text(json.dumps(files))

    # ── Sync ─────────────────────────────────────────

    async def sync(self, force: bool = False) -> dict:
        existing_ids = await self.index.ids()
        if not force and not existing_ids:
            force = True
        old_files = self._load_files()
        new_files: dict[str, dict] = {}

        all_chunks: dict[str, dict] = {}
        changed: dict[str, dict] = {}
        kept: set[str] = set()
        files = 0
        skipped = 0
        failed = 0

        for ref in await asyncio.to_thread(self.corpus.list_documents):
            previous = old_files.get(ref.path)
            try:
                doc = await self.corpus.read(ref)
            except Exception as e:
                logger.warning("Error processing %s: %s", ref.path, e)
                failed += 1
                # keep what is indexed until the file can be read again
                if previous is not None:
                    new_files[ref.path] = previous
                    kept.update(previous["nodes"])
                continue
            files += 1
            digest = content_hash(doc.content)
            chunks = chunk_document(doc, self.chunk_max_chars)
            new_files[ref.path] = {"hash": digest, "nodes": [c["id"] for c in chunks]}
            for chunk in chunks:
                all_chunks[chunk["id"]] = chunk

            unchanged = not force and previous is not None and previous["hash"] == digest
            missing = [c for c in chunks if c["id"] not in existing_ids]
            if unchanged and not missing:
                skipped += 1
                continue
            for chunk in (missing if unchanged else chunks):
                changed[chunk["id"]] = chunk

        upserts = list(changed.values())
        if upserts:
            outcome = await self.embedder.embed_many([c["text"] for c in upserts])
            await self.index.upsert(
                [c["id"] for c in upserts],
                outcome.vectors,
                [c["payload"] for c in upserts],
            )

        stale = existing_ids - set(all_chunks) - kept
        if stale and files > 0:
            await self.index.delete(sorted(stale))
        elif stale:
            logger.warning(
                "Safety: 0 documents in corpus but %d nodes indexed, skipping stale removal",
                len(existing_ids),
            )
            stale = set()

        self._save_files(new_files)
        result = {
            "status": "success",
            "files_indexed": files,
            "files_changed": files - skipped,
            "files_skipped": skipped,
            "files_failed": failed,
            "nodes_upserted": len(upserts),
            "nodes_total": len(all_chunks) + len(kept & existing_ids),
            "nodes_removed": len(stale),
        }
        logger.info(
            "Index: %d files (%d changed, %d skipped, %d failed) -> %d nodes upserted (%d stale removed)",
            files, files - skipped, skipped, failed, len(upserts), len(stale),
        )
        return result

    async def stats(self) -> dict:
        return {
            "total_nodes": await self.index.count(),
            "embedding_provider": self.embedder.name,
        }
