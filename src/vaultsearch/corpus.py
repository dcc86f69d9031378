# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Filesystem corpus: every supported document under a root directory.

Paths are reported relative to the root with forward slashes, so result
ids and folder filters behave the same on every platform. Subdirectories
that are their own git checkouts (other projects) are skipped.
"""
import asyncio
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from .models import CorpusDocument, DocumentRef, normalize_extension
from .providers import Corpus, VaultsearchError
from .readers import extract_tags, extract_text, supported_extensions


def _iter_files(root: Path, extensions: Iterable[str]):
    """Yield supported files under root, deduplicated, nested repos skipped."""
    nested_repos = {
        child for child in root.iterdir()
        if child.is_dir() and (child / ".git").exists()
    }
    seen: set[Path] = set()
    for ext in sorted(extensions):
        for p in root.rglob(f"*{ext}"):
            if not p.is_file() or any(p.is_relative_to(nr) for nr in nested_repos):
                continue
            if p not in seen:
                seen.add(p)
                yield p


class FilesystemCorpus(Corpus):
    def __init__(self, root: str | Path, extensions: Iterable[str] | None = None):
        self.root = Path(root)
        wanted = {f".{normalize_extension(e)}" for e in (extensions or supported_extensions())}
        self.extensions = wanted & supported_extensions()

    def list_documents(self) -> list[DocumentRef]:
        if not self.root.is_dir():
            raise VaultsearchError(f"Corpus root {self.root} does not exist")
        refs: list[DocumentRef] = []
        for path in sorted(_iter_files(self.root, self.extensions)):
            st = path.stat()
            refs.append(DocumentRef(
                path=path.relative_to(self.root).as_posix(),
                extension=normalize_extension(path.suffix),
                created_at=datetime.fromtimestamp(st.st_ctime, tz=timezone.utc),
                modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                size=st.st_size,
            ))
        return refs

    async def read(self, ref: DocumentRef) -> CorpusDocument:
        path = self.root / ref.path
        content = await asyncio.to_thread(extract_text, path)
        if content is None:
            raise VaultsearchError(f"No text could be extracted from {ref.path}")
        return CorpusDocument(ref=ref, content=content, tags=extract_tags(content))
