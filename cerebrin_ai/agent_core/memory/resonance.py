from __future__ import annotations

"""Resonance memory: the workspace's retained lessons.

The store is purely additive. There is no update or delete; a correction is a
newer entry on the same topic, and newer entries win ties when ranking.
"""

import math
import re
from typing import Optional, Sequence

from ..policy.risk import normalize_text
from ..repos.interfaces import ResonanceRepository
from ..schemas.domain import ResonanceEntry

_MIN_TERM_LENGTH = 3


def _terms(text: str, *, accents: bool = False) -> list[str]:
    # Stored text keeps its accents, so the store is searched with both forms.
    source = re.sub(r"\s+", " ", (text or "").casefold()) if accents else normalize_text(text)
    seen: list[str] = []
    for term in re.findall(r"\w+", source):
        if len(term) >= _MIN_TERM_LENGTH and term not in seen:
            seen.append(term)
    return seen


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


class ResonanceMemory:
    def __init__(self, *, entries: ResonanceRepository) -> None:
        self._entries = entries

    async def append(
        self,
        workspace_id: str,
        topic: str,
        content: str,
        *,
        agent_id: Optional[str] = None,
        embedding: Optional[Sequence[float]] = None,
    ) -> ResonanceEntry:
        entry = ResonanceEntry(
            workspace_id=workspace_id,
            agent_id=agent_id,
            topic=topic.strip()[:256],
            content=content,
            embedding=list(embedding) if embedding is not None else None,
        )
        await self._entries.append(entry)
        return entry

    async def query(self, workspace_id: str, topic: str, limit: int = 5) -> list[ResonanceEntry]:
        """
        Keyword query, most relevant first.

        Relevance is the number of query terms found, topic hits counting
        double; ties go to the newest entry.
        """
        terms = _terms(topic)
        if not terms:
            return []
        search_terms = terms + [t for t in _terms(topic, accents=True) if t not in terms]
        candidates = await self._entries.search(workspace_id, search_terms)

        def score(entry: ResonanceEntry) -> int:
            entry_topic = normalize_text(entry.topic)
            entry_content = normalize_text(entry.content)
            return sum(2 * (t in entry_topic) + (t in entry_content) for t in terms)

        scored = [(score(e), e) for e in candidates]
        scored = [pair for pair in scored if pair[0] > 0]
        scored.sort(key=lambda pair: (pair[0], pair[1].created_at), reverse=True)
        return [entry for _, entry in scored[:limit]]

    async def query_by_similarity(
        self,
        workspace_id: str,
        vector: Sequence[float],
        threshold: float = 0.7,
        limit: int = 5,
    ) -> list[ResonanceEntry]:
        """Entries whose embedding has cosine similarity >= ``threshold``, best first."""
        candidates = await self._entries.with_embeddings(workspace_id)
        scored = [(cosine_similarity(vector, e.embedding or []), e) for e in candidates]
        scored = [pair for pair in scored if pair[0] >= threshold]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in scored[:limit]]

    async def context_for(self, workspace_id: str, topic: str, limit: int = 3) -> Optional[str]:
        """Format the best matching lessons as prompt context, or None."""
        entries = await self.query(workspace_id, topic, limit=limit)
        if not entries:
            return None
        return "\n".join(f"- {e.topic}: {e.content}" for e in entries)
