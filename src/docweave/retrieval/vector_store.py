"""FAISS vector store with per-vector metadata and filtered queries."""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import faiss
import numpy as np
import structlog

from docweave.config import get_settings

logger = structlog.get_logger()

INDEX_FILENAME = "chunks.faiss"
METADATA_FILENAME = "chunks.json"


@dataclass
class VectorRecord:
    """A vector to store under a string key."""

    key: str
    vector: np.ndarray
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    """A nearest-neighbor hit. ``distance`` is cosine distance in [0, 2]."""

    key: str
    distance: float
    metadata: dict[str, Any]


class FaissVectorStore:
    """
    Vector store over a FAISS inner-product index.

    Vectors are L2-normalized on insert so inner product equals cosine
    similarity. String keys map to int64 FAISS ids, and metadata is kept
    beside the index for filtering. When a directory is given, every write
    is persisted there.
    """

    def __init__(self, persist_dir: Path | str | None = None, dimension: int | None = None):
        self.persist_dir = Path(persist_dir) if persist_dir else None
        self.dimension = dimension
        self._index: faiss.IndexIDMap2 | None = None
        self._ids_by_key: dict[str, int] = {}
        self._records: dict[int, dict[str, Any]] = {}  # faiss id -> {"key", "metadata"}
        self._next_id = 0
        self._lock = threading.Lock()

        if self.persist_dir and (self.persist_dir / INDEX_FILENAME).exists():
            self.load()

    def upsert(self, records: list[VectorRecord]) -> int:
        """Insert or replace vectors by key. Returns the number written."""
        if not records:
            return 0

        vectors = np.vstack([np.asarray(r.vector, dtype="float32").reshape(1, -1) for r in records])
        faiss.normalize_L2(vectors)

        with self._lock:
            self._ensure_index(vectors.shape[1])
            self._remove_ids([self._ids_by_key[r.key] for r in records if r.key in self._ids_by_key])

            ids = np.arange(self._next_id, self._next_id + len(records), dtype="int64")
            self._next_id += len(records)
            self._index.add_with_ids(vectors, ids)
            for faiss_id, record in zip(ids.tolist(), records):
                self._ids_by_key[record.key] = faiss_id
                self._records[faiss_id] = {"key": record.key, "metadata": dict(record.metadata)}

            self._persist()
        return len(records)

    def delete(self, where: dict[str, Any]) -> int:
        """Remove every vector whose metadata matches all given fields."""
        with self._lock:
            ids = [fid for fid, rec in self._records.items() if _matches(rec["metadata"], where)]
            self._remove_ids(ids)
            if ids:
                self._persist()
        return len(ids)

    def query(
        self,
        vector: np.ndarray,
        top_k: int,
        where: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """
        Nearest neighbors of a vector, optionally restricted by metadata.

        Args:
            vector: Query embedding
            top_k: Maximum number of matches
            where: Metadata fields that must all match

        Returns:
            Matches ordered by ascending distance
        """
        with self._lock:
            if self._index is None or self._index.ntotal == 0 or top_k <= 0:
                return []

            query = np.asarray(vector, dtype="float32").reshape(1, -1)
            faiss.normalize_L2(query)

            # Flat index: scan everything when filtering so filtered hits are not cut off
            k = self._index.ntotal if where else min(top_k, self._index.ntotal)
            similarities, ids = self._index.search(query, k)

            matches = []
            for similarity, faiss_id in zip(similarities[0], ids[0]):
                record = self._records.get(int(faiss_id))
                if faiss_id < 0 or record is None:
                    continue
                if where and not _matches(record["metadata"], where):
                    continue
                matches.append(
                    VectorMatch(
                        key=record["key"],
                        distance=float(1.0 - similarity),
                        metadata=record["metadata"],
                    )
                )
                if len(matches) >= top_k:
                    break
            return matches

    @property
    def count(self) -> int:
        return len(self._records)

    def save(self) -> None:
        """Write the index and metadata to the persist directory."""
        if self.persist_dir is None or self._index is None:
            return
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(self.persist_dir / INDEX_FILENAME))
        (self.persist_dir / METADATA_FILENAME).write_text(json.dumps({
            "dimension": self.dimension,
            "next_id": self._next_id,
            "records": {str(fid): rec for fid, rec in self._records.items()},
        }))

    def load(self) -> None:
        """Read the index and metadata from the persist directory."""
        index_path = self.persist_dir / INDEX_FILENAME
        metadata_path = self.persist_dir / METADATA_FILENAME
        if not index_path.exists() or not metadata_path.exists():
            raise FileNotFoundError("Index files not found")

        self._index = faiss.read_index(str(index_path))
        data = json.loads(metadata_path.read_text())
        self.dimension = data["dimension"]
        self._next_id = data["next_id"]
        self._records = {int(fid): rec for fid, rec in data["records"].items()}
        self._ids_by_key = {rec["key"]: fid for fid, rec in self._records.items()}
        logger.info("vector_store_loaded", path=str(self.persist_dir), vectors=len(self._records))

    def _ensure_index(self, dimension: int) -> None:
        if self._index is None:
            self.dimension = self.dimension or dimension
            self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))
        if dimension != self.dimension:
            raise ValueError(f"Vector dimension {dimension} does not match index dimension {self.dimension}")

    def _remove_ids(self, ids: list[int]) -> None:
        if not ids or self._index is None:
            return
        self._index.remove_ids(np.array(ids, dtype="int64"))
        for faiss_id in ids:
            record = self._records.pop(faiss_id, None)
            if record is not None:
                self._ids_by_key.pop(record["key"], None)

    def _persist(self) -> None:
        if self.persist_dir is not None:
            self.save()


def _matches(metadata: dict[str, Any], where: dict[str, Any]) -> bool:
    return all(metadata.get(key) == value for key, value in where.items())


# Singleton instance
_store: FaissVectorStore | None = None


def get_vector_store() -> FaissVectorStore:
    """Get the singleton vector store, persisted under the index directory."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = FaissVectorStore(settings.index_dir / "vectors", dimension=settings.embedding_dimensions)
    return _store
