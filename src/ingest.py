"""Document ingestion and diary entries.

An uploaded document becomes one ``file`` memory holding the original
payload plus one embedded text memory per chunk of extracted text. Each
chunk is summarized, categorized and tagged by the model first.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import anthropic
import pypdf
from pypdf.errors import PdfReadError

from src.errors import StreamError, ValidationError
from src.llm.client import complete_text
from src.memory.models import MemoryType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.memory.embeddings import EmbeddingClient
    from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

VALID_CATEGORIES = ("diary", "work", "personal", "fact", "conversation", "general")

GENERIC_TAGS = frozenset({
    "content", "information", "text", "section", "chunk", "data", "file",
    "document", "page", "part", "item", "entry", "record", "detail",
    "uploaded", "file-content", "general", "basic", "standard", "common",
})
FILE_TAGS = ("uploaded", "file-content")
MIN_TAG_LENGTH = 4
FALLBACK_TAG = "document-content"

TEXT_EXTENSIONS = (
    ".txt", ".md", ".markdown", ".json", ".csv", ".log", ".xml", ".html", ".htm",
    ".css", ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
    ".sh", ".yaml", ".yml",
)

DIARY_CATEGORY = "diary"
DEFAULT_DIARY_TAGS = ("manual",)

# -- Extraction --------------------------------------------------------------


def decode_base64(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "data is not valid base64"
        raise ValidationError(msg) from exc


def _pdf_text(raw: bytes) -> str:
    try:
        reader = pypdf.PdfReader(io.BytesIO(raw))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as exc:
        msg = f"Could not read PDF: {exc}"
        raise ValidationError(msg) from exc
    return "\n".join(pages).strip()


def _decode_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def extract_text(name: str, data: str, mime_type: str) -> str | None:
    """Pull plain text out of a base64 file, or None for unsupported types.

    Raises:
        ValidationError: undecodable payload or unreadable PDF.
    """
    lowered = name.lower()
    if mime_type == "application/pdf" or lowered.endswith(".pdf"):
        return _pdf_text(decode_base64(data))
    if (
        mime_type.startswith("text/")
        or mime_type == "application/json"
        or lowered.endswith(TEXT_EXTENSIONS)
    ):
        return _decode_text(decode_base64(data))
    return None


def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Split *text* into overlapping chunks.

    A chunk ends at the last paragraph break, else the last sentence break,
    found past the middle of the window; otherwise it is cut at *size*.
    """
    if overlap >= size:
        msg = "overlap must be smaller than size"
        raise ValueError(msg)
    if not text or not text.strip():
        return []

    chunks: list[str] = []
    length = len(text)
    start = 0
    while start < length:
        end = start + size
        if end < length:
            midpoint = start + size * 0.5
            paragraph_end = text.rfind("\n\n", 0, end + 2)
            sentence_end = text.rfind(". ", 0, end + 2)
            if paragraph_end > midpoint:
                end = paragraph_end + 2
            elif sentence_end > midpoint:
                end = sentence_end + 2

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= length:
            break
        start = max(end - overlap, start + 1)
    return chunks


# -- Chunk processing --------------------------------------------------------

CHUNK_SYSTEM_PROMPT = """\
You are an intelligent content processor specializing in extracting meaningful, \
searchable tags from documents. Your task is to:
1. Create a concise, informative summary (2-4 sentences)
2. Generate highly specific, actionable tags that enable precise retrieval

**TAG GENERATION RULES (CRITICAL)**:
- Tags must be SEARCHABLE and ACTIONABLE - think "what would someone search for?"
- Extract CONCRETE ENTITIES: job titles, company names, technologies, tools, skills, \
certifications, degrees, institutions
- Use SPECIFIC terms, not generic ones (prefer "data-scientist" over "professional")
- Tags should be lowercase, hyphenated (e.g., "business-intelligence")
- Generate 5-10 tags per chunk - prioritize specificity over quantity
- AVOID generic tags like "content", "information", "section"

Return ONLY a JSON object with "summary", "category" and "tags" fields."""

CHUNK_PROMPT = """\
Analyze this text chunk from "{file_name}" (chunk {number} of {total}):

{chunk}

Extract:
1. A concise 2-4 sentence summary capturing the key information
2. The category, one of:
  - "diary" for personal logs, daily entries, reflections
  - "work" for professional content, work-related tasks, business information
  - "personal" for personal information, relationships, hobbies, interests
  - "fact" for factual information, knowledge, data
  - "conversation" for dialogue, chat logs, Q&A
  - "general" if it doesn't fit any specific category
3. 5-10 specific, searchable tags (entities, technologies, skills, concepts)

Return ONLY a valid JSON object (no markdown, no code blocks):
{{"summary": "...", "category": "...", "tags": ["specific-tag-1", "specific-tag-2"]}}"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_HASHTAG = re.compile(r"#[\w-]+")
_WORD = re.compile(r"\b\w{4,}\b")


@dataclass
class ProcessedChunk:
    summary: str
    category: str = "general"
    tags: list[str] = field(default_factory=list)


def clean_tags(tags: list[object]) -> list[str]:
    """Lowercase, drop short/numeric/generic tags and duplicates (order kept)."""
    cleaned: list[str] = []
    for raw in tags:
        tag = str(raw).lower().strip()
        if len(tag) < MIN_TAG_LENGTH or tag.isdigit() or tag in GENERIC_TAGS:
            continue
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def parse_chunk_response(text: str) -> ProcessedChunk:
    """Read the model's JSON reply, falling back to hashtags and summary words."""
    parsed = None
    match = _JSON_OBJECT.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None

    if isinstance(parsed, dict):
        summary = str(parsed.get("summary") or text)
        category = str(parsed.get("category") or "").lower()
        if category not in VALID_CATEGORIES:
            category = "general"
        raw_tags = parsed.get("tags")
        tags = raw_tags if isinstance(raw_tags, list) else []
    else:
        summary = text
        category = "general"
        tags = [t[1:] for t in _HASHTAG.findall(text)]

    cleaned = clean_tags(tags)
    if not cleaned:
        words = [w for w in _WORD.findall(summary.lower()) if w not in GENERIC_TAGS]
        cleaned = list(dict.fromkeys(words))[:5] or [FALLBACK_TAG]
    return ProcessedChunk(summary=summary.strip(), category=category, tags=cleaned)


async def process_chunk(
    chunk: str,
    file_name: str = "document",
    chunk_index: int = 0,
    total_chunks: int = 1,
) -> ProcessedChunk:
    """Summarize, categorize and tag one chunk with the model.

    Raises:
        StreamError: the model request failed.
    """
    prompt = CHUNK_PROMPT.format(
        file_name=file_name, number=chunk_index + 1, total=total_chunks, chunk=chunk
    )
    try:
        reply = await complete_text(
            [{"role": "user", "content": prompt}],
            system=CHUNK_SYSTEM_PROMPT,
            max_tokens=1024,
        )
    except anthropic.APIError as exc:
        msg = f"Chunk processing failed: {exc}"
        raise StreamError(msg) from exc
    return parse_chunk_response(reply)


# -- Documents ---------------------------------------------------------------


@dataclass
class IngestResult:
    file_memory_id: int
    chunk_memory_ids: list[int] = field(default_factory=list)
    chunks: int = 0

    def to_wire(self) -> dict[str, object]:
        return {
            "fileMemoryId": self.file_memory_id,
            "chunkMemoryIds": self.chunk_memory_ids,
            "chunks": self.chunks,
        }


def chunk_content(file_name: str, index: int, total: int, summary: str, chunk: str) -> str:
    return (
        f'From "{file_name}" (section {index + 1}/{total}):\n\n'
        f"Summary: {summary}\n\n--- Full Content ---\n\n{chunk}"
    )


async def ingest_document(
    store: MemoryStore,
    embeddings: EmbeddingClient,
    user_id: str | None,
    name: str,
    mime_type: str,
    data: str,
    *,
    process: Callable[[str, str, int, int], Awaitable[ProcessedChunk]] = process_chunk,
) -> IngestResult:
    """Store a document and its processed text chunks as memories."""
    memory_type = MemoryType.from_mime(mime_type)
    file_embedding = await embeddings.try_embed(f"File: {name} ({mime_type})")
    file_id = await store.create(
        user_id,
        content=f"Uploaded file: {name}",
        category="general",
        tags=["uploaded", "file", str(memory_type)],
        type=memory_type,
        media_data=data,
        media_mime_type=mime_type,
        media_name=name,
        embedding=file_embedding,
    )
    result = IngestResult(file_memory_id=file_id)

    try:
        text = extract_text(name, data, mime_type)
    except ValidationError as exc:
        logger.warning("No text extracted from %s: %s", name, exc)
        return result
    chunks = chunk_text(text or "")
    result.chunks = len(chunks)

    for index, chunk in enumerate(chunks):
        try:
            processed = await process(chunk, name, index, len(chunks))
        except StreamError as exc:
            logger.warning("Chunk %d of %s not processed: %s", index + 1, name, exc)
            processed = ProcessedChunk(
                summary=chunk,
                category="general",
                tags=[*FILE_TAGS, f"chunk-{index + 1}"],
            )

        tags = [*FILE_TAGS, *(t for t in processed.tags if t not in FILE_TAGS)]
        embedding = await embeddings.try_embed(chunk)
        memory_id = await store.create(
            user_id,
            content=chunk_content(name, index, len(chunks), processed.summary, chunk),
            category=processed.category,
            tags=tags,
            type=MemoryType.TEXT,
            media_name=f"{name} (section {index + 1})",
            embedding=embedding,
        )
        result.chunk_memory_ids.append(memory_id)

    logger.info("Ingested %s: %d chunk(s)", name, len(chunks))
    return result


async def save_diary_entry(
    store: MemoryStore,
    embeddings: EmbeddingClient,
    user_id: str | None,
    text: str,
    tags: list[str] | None = None,
) -> int:
    """Save a diary entry with an embedding when one is available."""
    embedding = await embeddings.try_embed(text)
    return await store.create(
        user_id,
        content=text,
        category=DIARY_CATEGORY,
        tags=list(tags) if tags else list(DEFAULT_DIARY_TAGS),
        type=MemoryType.TEXT,
        embedding=embedding,
    )
