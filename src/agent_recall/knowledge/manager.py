"""
RAG Knowledge Manager

Ingests long-form knowledge (files and direct strings), chunks and
embeds it, and retrieves it by semantic similarity with lexical
reranking. Vector and relational writes are awaited here so that a
query right after ingestion sees the new vectors.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

import aiofiles

from agent_recall.config import RAGConfig
from agent_recall.database.base import DatabaseAdapter
from agent_recall.errors import DuplicateSkipped, PartialBatchFailure
from agent_recall.identity import chunk_id, chunk_pattern, to_stable_id
from agent_recall.knowledge.chunking import split_chunks
from agent_recall.knowledge.preprocess import TextNormalizer
from agent_recall.knowledge.rerank import rerank_results
from agent_recall.llm.client import LLMClient
from agent_recall.memory.manager import RuntimeContext
from agent_recall.models.character import KnowledgeSource
from agent_recall.models.knowledge import KnowledgeContent, KnowledgeMetadata, RAGKnowledgeItem
from agent_recall.vector.base import VectorRecord, VectorStore, hash_input

logger = logging.getLogger("agent_recall.knowledge")

KNOWLEDGE_TYPE = "knowledge"
FILE_EXTENSIONS = ("md", "txt", "pdf")

PdfReader = Callable[[Path], Awaitable[str]]


@dataclass
class KnowledgeLoadReport:
    """Outcome of a batch knowledge load."""
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.failed)


class RAGKnowledgeManager:
    """
    Knowledge store for one agent.

    Every vector lives in the agent's namespace tagged type="knowledge".
    Parents are stored with is_main=True; chunks with is_chunk=True and
    original_id/chunk_index linking them to the parent.
    """

    def __init__(
        self,
        runtime: RuntimeContext,
        vector_store: VectorStore,
        database: DatabaseAdapter,
        embedder: LLMClient,
        config: Optional[RAGConfig] = None,
        pdf_reader: Optional[PdfReader] = None,
        character_name: str = "",
    ):
        self.runtime = runtime
        self.vector_store = vector_store
        self.database = database
        self.embedder = embedder
        self.config = config or RAGConfig()
        self.pdf_reader = pdf_reader
        self.character_name = character_name
        self.normalizer = TextNormalizer()

    @property
    def namespace(self) -> str:
        return str(self.runtime.agent_id)

    def preprocess(self, text: str) -> str:
        return self.normalizer.normalize(text)

    # ========== Retrieval ==========

    async def get_knowledge(
        self,
        query: str,
        conversation_context: Optional[str] = None,
        limit: Optional[int] = None,
        agent_id: Optional[UUID] = None,
    ) -> List[RAGKnowledgeItem]:
        """
        Knowledge relevant to a query, best first.

        Never returns an item scoring below the match threshold. Retrieval
        errors are logged and yield an empty list.
        """
        if not query:
            return []

        limit = limit or self.config.match_count
        threshold = self.config.match_threshold

        try:
            processed_query = self.preprocess(query)
            search_text = processed_query
            if conversation_context:
                search_text = f"{self.preprocess(conversation_context)} {processed_query}"

            embedding = await self.embedder.generate_embedding(search_text)
            results = await self.search_knowledge(
                agent_id or self.runtime.agent_id,
                embedding,
                match_count=limit * 2,
            )

            candidates = [r for r in results if (r.score or 0.0) >= threshold]
            candidates = self._dedupe_by_hash(candidates)

            reranked = rerank_results(
                candidates,
                processed_query,
                has_context=bool(conversation_context),
            )

            final = [
                self._truncate(item)
                for item in reranked
                if item.score >= threshold
            ]
            return final[:limit]
        except Exception as e:
            logger.error(f"[RAG Search Error] {e}", exc_info=True)
            return []

    def _dedupe_by_hash(self, items: List[RAGKnowledgeItem]) -> List[RAGKnowledgeItem]:
        """Keep the highest-scored item per content hash, preserving first-seen order."""
        best: Dict[str, RAGKnowledgeItem] = {}
        for item in items:
            key = hash_input(item.content.text)
            current = best.get(key)
            if current is None or (item.score or 0.0) > (current.score or 0.0):
                best[key] = item
        return list(best.values())

    def _truncate(self, item: RAGKnowledgeItem) -> RAGKnowledgeItem:
        """Bound the size of whole documents handed to generation."""
        text = item.content.text
        if not item.content.metadata.is_main or len(text) <= self.config.chunk_size:
            return item
        metadata = item.content.metadata.model_copy(
            update={"truncated": True, "original_length": len(text)}
        )
        content = KnowledgeContent(text=text[: self.config.chunk_size], metadata=metadata)
        return item.model_copy(update={"content": content})

    async def search_knowledge(
        self,
        agent_id: UUID,
        embedding: List[float],
        match_count: Optional[int] = None,
    ) -> List[RAGKnowledgeItem]:
        """Vector query followed by relational hydration; scores come from the index."""
        matches = await self.vector_store.search(
            str(agent_id),
            embedding,
            top_k=match_count or self.config.match_count,
            type_tag=KNOWLEDGE_TYPE,
        )
        logger.debug(f"Vector search returned {len(matches)} knowledge match(es)")
        if not matches:
            return []

        items = await self.database.get_knowledge_by_ids([m.id for m in matches], agent_id)
        by_id = {item.id: item for item in items}

        hydrated = []
        for match in matches:
            item = by_id.get(match.id)
            if item is None:
                logger.debug(f"Knowledge {match.id} has a vector but no relational row")
                continue
            hydrated.append(item.model_copy(update={"score": match.score}))
        return hydrated

    async def get_knowledge_by_id(
        self,
        knowledge_id: str,
        agent_id: Optional[UUID] = None,
    ) -> List[RAGKnowledgeItem]:
        return await self.database.get_knowledge_by_ids(
            [knowledge_id], agent_id or self.runtime.agent_id
        )

    # ========== Ingestion ==========

    async def create_knowledge(
        self,
        item: RAGKnowledgeItem,
        source: str = "",
        is_unique: bool = True,
    ) -> None:
        """
        Chunk, embed and persist a knowledge item.

        Empty text is ignored. With is_unique, content already indexed
        under the same hash is skipped.
        """
        if not item.content.text:
            logger.warning("Empty content in knowledge item")
            return

        if is_unique:
            existing = await self.vector_store.find_by_hash(
                self.namespace,
                KNOWLEDGE_TYPE,
                hash_input(item.content.text),
                self.embedder.get_embedding_dimension(),
            )
            if existing is not None:
                reason = DuplicateSkipped(f"Knowledge {item.id} content already indexed as {existing.id}")
                logger.info(f"Skipping: {reason}")
                return

        try:
            processed = self.preprocess(item.content.text)
            await self.chunk_embed_and_persist(processed, item, source)
        except Exception as e:
            logger.error(f"Error processing knowledge {item.id}: {e}")
            raise

    async def chunk_embed_and_persist(
        self,
        processed_content: str,
        item: RAGKnowledgeItem,
        source: str = "",
    ) -> int:
        """
        Persist the parent and its chunks to both stores.

        Returns:
            Number of chunks written
        """
        chunks = split_chunks(
            processed_content,
            self.config.chunk_size,
            self.config.chunk_overlap,
        )
        embeddings = await self.embedder.batch_generate_embeddings([processed_content, *chunks])

        results = await asyncio.gather(
            self._persist_vectors(item, embeddings, source, chunks),
            self._persist_relational(item, chunks),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, Exception)]
        if failures:
            await self._discard_partial(item.id)
            raise failures[0]
        logger.debug(f"Persisted knowledge {item.id} with {len(chunks)} chunk(s)")
        return len(chunks)

    async def _discard_partial(self, knowledge_id: str) -> None:
        """Drop whatever half of an ingest landed so the next load retries it."""
        results = await asyncio.gather(
            self.database.remove_knowledge(knowledge_id),
            self.database.remove_knowledge(chunk_pattern(knowledge_id)),
            self.vector_store.remove_by_id(self.namespace, knowledge_id),
            self.vector_store.remove_by_filter(self.namespace, {"original_id": knowledge_id}),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Rollback of knowledge {knowledge_id} incomplete: {result}")

    async def _persist_vectors(
        self,
        item: RAGKnowledgeItem,
        embeddings: List[List[float]],
        source: str,
        chunks: List[str],
    ) -> None:
        base = item.content.metadata.model_dump(exclude_none=True)
        base.pop("input_hash", None)
        if "type" in base:
            base["knowledge_type"] = base.pop("type")
        base.update({
            "type": KNOWLEDGE_TYPE,
            "created_at": int(time.time() * 1000),
            "source": source or "",
        })

        records = [
            VectorRecord(
                id=item.id,
                values=embeddings[0],
                metadata={**base, "is_main": True, "input_hash": hash_input(item.content.text)},
            )
        ]
        for index, chunk in enumerate(chunks):
            records.append(
                VectorRecord(
                    id=chunk_id(item.id, index),
                    values=embeddings[index + 1],
                    metadata={
                        **base,
                        "is_chunk": True,
                        "is_main": False,
                        "original_id": item.id,
                        "chunk_index": index,
                        "input_hash": hash_input(chunk),
                    },
                )
            )
        await self.vector_store.upsert(self.namespace, records)

    async def _persist_relational(self, item: RAGKnowledgeItem, chunks: List[str]) -> None:
        now = int(time.time() * 1000)
        agent_id = str(self.runtime.agent_id)
        metadata = item.content.metadata

        parent = RAGKnowledgeItem(
            id=item.id,
            agent_id=agent_id,
            content=KnowledgeContent(
                text=item.content.text,
                metadata=metadata.model_copy(
                    update={"is_main": True, "input_hash": hash_input(item.content.text)}
                ),
            ),
            created_at=now,
        )
        writes = [self.database.create_knowledge(parent)]
        for index, chunk in enumerate(chunks):
            writes.append(
                self.database.create_knowledge(
                    RAGKnowledgeItem(
                        id=chunk_id(item.id, index),
                        agent_id=agent_id,
                        content=KnowledgeContent(
                            text=chunk,
                            metadata=metadata.model_copy(
                                update={
                                    "is_main": False,
                                    "is_chunk": True,
                                    "original_id": item.id,
                                    "chunk_index": index,
                                    "input_hash": hash_input(chunk),
                                }
                            ),
                        ),
                        created_at=now,
                    )
                )
            )
        results = await asyncio.gather(*writes, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result

    async def process_file(
        self,
        path: str,
        content: str,
        type: str,
        is_shared: bool = False,
    ) -> int:
        """
        Ingest the content of a knowledge file, keyed by its relative path.

        Returns:
            Number of chunks written
        """
        start_time = time.time()
        size_kb = len(content.encode("utf-8")) / 1024
        logger.info(f"[File Progress] Starting {path} ({size_kb:.2f} KB)")

        item = RAGKnowledgeItem(
            id=str(to_stable_id(path)),
            agent_id=str(self.runtime.agent_id),
            content=KnowledgeContent(
                text=content,
                metadata=KnowledgeMetadata(source=path, type=type, is_shared=is_shared),
            ),
        )

        try:
            chunk_count = await self.chunk_embed_and_persist(self.preprocess(content), item, "file")
        except Exception as e:
            logger.error(f"Error processing file {path}: {e}")
            raise

        logger.info(f"[Complete] Processed {path} in {time.time() - start_time:.2f}s")
        return chunk_count

    async def process_character_knowledge(
        self,
        items: List[Union[str, KnowledgeSource, dict]],
    ) -> KnowledgeLoadReport:
        """
        Load a character's knowledge list.

        File entries (md/txt/pdf) are read from the knowledge root; unchanged
        files are skipped and changed ones are replaced with all their chunks.
        Other strings are direct knowledge. A failing item is logged and
        counted; the remaining items are still processed.
        """
        report = KnowledgeLoadReport()

        for entry in items:
            if not entry:
                continue

            if isinstance(entry, dict):
                entry = KnowledgeSource(**entry)
            if isinstance(entry, KnowledgeSource):
                content_item, is_shared = entry.path, entry.shared
            else:
                content_item, is_shared = entry, False

            try:
                extension = content_item.rsplit(".", 1)[-1].lower() if "." in content_item else ""
                if extension in FILE_EXTENSIONS:
                    await self._load_file_entry(content_item, extension, is_shared, report)
                else:
                    await self._load_direct_entry(content_item, report)
            except Exception as e:
                report.failed.append(content_item)
                logger.error(f"Error processing knowledge item {content_item[:100]}: {e}")

        if report.has_errors:
            failure = PartialBatchFailure(report.failed)
            logger.warning(
                f"{failure}, continuing with available knowledge for {self.character_name or self.namespace}"
            )
        return report

    async def _load_file_entry(
        self,
        relative_path: str,
        extension: str,
        is_shared: bool,
        report: KnowledgeLoadReport,
    ) -> None:
        knowledge_id = str(to_stable_id(relative_path))
        file_path = Path(self.config.knowledge_root) / relative_path
        logger.info(f"Attempting to read file from: {file_path}")

        existing = await self.get_knowledge_by_id(knowledge_id)
        content = await self._read_file(file_path, extension)
        if not content:
            report.failed.append(relative_path)
            logger.error(f"Knowledge file {relative_path} is empty or unreadable")
            return

        if existing:
            if existing[0].content.text == content:
                reason = DuplicateSkipped(f"File {relative_path} unchanged")
                logger.info(f"Skipping: {reason}")
                report.skipped.append(relative_path)
                return
            logger.info(f"File {relative_path} changed, replacing stored knowledge")
            await self.remove_knowledge(knowledge_id)
            await self.remove_knowledge(chunk_pattern(knowledge_id))

        await self.process_file(relative_path, content, extension, is_shared)
        report.processed.append(relative_path)

    async def _read_file(self, file_path: Path, extension: str) -> Optional[str]:
        if extension == "pdf":
            if self.pdf_reader is None:
                logger.error(f"No PDF reader configured, cannot load {file_path}")
                return None
            return await self.pdf_reader(file_path)

        async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
            return await f.read()

    async def _load_direct_entry(self, text: str, report: KnowledgeLoadReport) -> None:
        knowledge_id = str(to_stable_id(text))
        logger.info(f"Processing direct knowledge for {self.character_name} - {text[:100]}")

        existing = await self.get_knowledge_by_id(knowledge_id)
        if existing:
            reason = DuplicateSkipped(f"Direct knowledge {knowledge_id} already exists")
            logger.info(f"Skipping: {reason}")
            report.skipped.append(text)
            return

        await self.create_knowledge(
            RAGKnowledgeItem(
                id=knowledge_id,
                agent_id=str(self.runtime.agent_id),
                content=KnowledgeContent(text=text, metadata=KnowledgeMetadata(type="direct")),
            )
        )
        report.processed.append(text)

    # ========== Removal ==========

    async def remove_knowledge(self, knowledge_id: str) -> None:
        """
        Remove an item, its chunk vectors and its relational rows.

        A "{id}-chunk-*" pattern removes only the chunks.
        """
        if knowledge_id.endswith("-chunk-*"):
            parent_id = knowledge_id[: -len("-chunk-*")]
            vector_ops = [
                self.vector_store.remove_by_filter(self.namespace, {"original_id": parent_id}),
            ]
        else:
            vector_ops = [
                self.vector_store.remove_by_id(self.namespace, knowledge_id),
                self.vector_store.remove_by_filter(self.namespace, {"original_id": knowledge_id}),
            ]

        results = await asyncio.gather(
            self.database.remove_knowledge(knowledge_id),
            *vector_ops,
            return_exceptions=True,
        )
        relational_result, vector_results = results[0], results[1:]
        for result in vector_results:
            if isinstance(result, Exception):
                logger.warning(f"Vector deletion failed for knowledge {knowledge_id}: {result}")
        if isinstance(relational_result, Exception):
            raise relational_result

    async def clear_knowledge(self, shared: bool = False) -> None:
        """Remove every knowledge item of the agent (and shared items if asked)."""
        vector_filter = {"type": KNOWLEDGE_TYPE}
        if not shared:
            vector_filter["is_shared"] = False
        vector_result, relational_result = await asyncio.gather(
            self.vector_store.remove_by_filter(self.namespace, vector_filter),
            self.database.clear_knowledge(self.runtime.agent_id, shared),
            return_exceptions=True,
        )
        if isinstance(vector_result, Exception):
            logger.warning(f"Vector deletion failed while clearing knowledge: {vector_result}")
        if isinstance(relational_result, Exception):
            raise relational_result
