"""
Semantic Memory
================
Append-only store of message content + embedding + provenance, with
nearest-neighbour search by cosine similarity.

Every query scans all records (O(n)). That is fine for conversation-scoped
memory; larger corpora need an ANN index behind the same append/query API.
"""

import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import numpy as np

from .errors import EmbeddingDimensionMismatch
from .models import MemoryMatch, MemoryMetadata, Phase

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[Sequence[float]]]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|). Mismatched lengths and zero vectors are errors."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise EmbeddingDimensionMismatch(va.size, vb.size)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        raise ValueError("Cosine similarity is undefined for a zero vector")
    return float(np.dot(va, vb) / (norm_a * norm_b))


@dataclass(frozen=True)
class MemoryRecord:
    """Immutable once stored."""
    id: str
    content: str
    embedding: tuple
    metadata: MemoryMetadata


class EmbeddingStore:
    """
    In-memory semantic memory.

    Usage:
        store = EmbeddingStore(dimension=1536)
        await store.append("text", embed_fn, MemoryMetadata(origin_provider="openai"))
        matches = await store.query("related text", embed_fn, threshold=0.8)
    """

    def __init__(self, dimension: Optional[int] = None):
        # None = fixed by the first stored vector
        self._dimension = dimension
        self._records: List[MemoryRecord] = []
        self._lock = threading.Lock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        return len(self._records)

    async def _embed(self, text: str, embed_fn: Optional[EmbedFn]) -> np.ndarray:
        if embed_fn is None:
            raise TypeError("An embedding function is required")
        vector = np.asarray(await embed_fn(text), dtype=float)
        if vector.ndim != 1 or vector.size == 0:
            raise ValueError(f"Embedding must be a non-empty 1-D vector, got shape {vector.shape}")
        # A stored zero vector would poison every later query.
        if not np.linalg.norm(vector):
            raise ValueError("Cosine similarity is undefined for a zero vector")
        return vector

    def _check_dimension(self, size: int) -> None:
        if self._dimension is None:
            self._dimension = size
        elif size != self._dimension:
            raise EmbeddingDimensionMismatch(self._dimension, size)

    async def append(
        self, content: str, embed_fn: EmbedFn, metadata: Optional[MemoryMetadata] = None
    ) -> MemoryRecord:
        """Embed ``content`` once and store it."""
        vector = await self._embed(content, embed_fn)
        record = MemoryRecord(
            id=str(uuid.uuid4()),
            content=content,
            embedding=tuple(vector.tolist()),
            metadata=metadata or MemoryMetadata(),
        )
        with self._lock:
            self._check_dimension(vector.size)
            self._records.append(record)
        logger.debug(
            f"Stored memory {record.id[:8]} from {record.metadata.origin_provider} "
            f"in phase {record.metadata.phase.value}"
        )
        return record

    async def query(
        self,
        text: str,
        embed_fn: EmbedFn,
        threshold: float = 0.8,
        limit: int = 5,
    ) -> List[MemoryMatch]:
        """Records with similarity >= threshold, best first, at most ``limit``."""
        with self._lock:
            records = list(self._records)
        if not records:
            return []

        query_vec = await self._embed(text, embed_fn)
        if query_vec.size != self._dimension:
            raise EmbeddingDimensionMismatch(self._dimension, query_vec.size)

        matrix = np.asarray([r.embedding for r in records], dtype=float)
        norms = np.linalg.norm(matrix, axis=1)
        query_norm = np.linalg.norm(query_vec)
        if query_norm == 0 or not np.all(norms):
            raise ValueError("Cosine similarity is undefined for a zero vector")
        scores = matrix @ query_vec / (norms * query_norm)

        order = np.argsort(-scores, kind="stable")
        matches: List[MemoryMatch] = []
        for idx in order:
            score = float(scores[idx])
            if score < threshold or len(matches) >= limit:
                break
            record = records[idx]
            matches.append(MemoryMatch(
                record_id=record.id,
                content=record.content,
                similarity=round(score, 6),
                metadata=record.metadata,
            ))
        logger.info(f"🧠 Found {len(matches)} memories above {threshold} for query")
        return matches

    # ── Inspection ─────────────────────────────────────────────────

    def by_phase(self, phase: Phase) -> List[MemoryRecord]:
        phase = Phase(phase)
        with self._lock:
            return [r for r in self._records if r.metadata.phase == phase]

    def recent(self, count: int = 10) -> List[MemoryRecord]:
        with self._lock:
            return self._records[-count:] if count > 0 else []

    def clear(self) -> None:
        """Drop every record (reset/test path). Keeps a configured dimension."""
        with self._lock:
            self._records.clear()
        logger.info("🧹 Cleared all memories")

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            records = list(self._records)
        phases = Counter(r.metadata.phase.value for r in records)
        return {
            "total_memories": len(records),
            "dimension": self._dimension,
            "phase_distribution": {p.value: phases.get(p.value, 0) for p in Phase},
            "latest_breath_count": records[-1].metadata.breath_count if records else 0,
        }
