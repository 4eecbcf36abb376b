"""Pre-turn memory retrieval for personal questions.

When a message looks personal ("What do I do for work?"), the assembler
expands it with related terms, runs a hybrid search and formats the top
hits into a delimited block that is prepended to the user prompt. It
never fails a turn: any error yields an empty block.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol

from src.config import settings
from src.memory.retrieval import hybrid_search, sanitize

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.memory.embeddings import EmbeddingClient
    from src.memory.models import MemoryRecord, SanitizedMemory
    from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "=== RELEVANT MEMORIES FROM DATABASE ==="
CONTEXT_FOOTER = (
    "=== END OF MEMORIES ===\n"
    "Use these memories to answer. Call search_memory if they are not enough."
)

# -- Classification ----------------------------------------------------------

PRONOUN_PATTERN = re.compile(r"\b(i|me|my|we|our|myself)\b", re.IGNORECASE)

QUESTION_PATTERNS = (
    # identity
    re.compile(r"\bwho am\b|\bwhat(?:'s| is) (?:the user's|your user's) name\b", re.IGNORECASE),
    # work
    re.compile(r"\b(?:job|work|career|profession|occupation|employer)\b.*\?", re.IGNORECASE),
    # location
    re.compile(r"\bwhere\b.*\b(?:live|from|based|stay)\b", re.IGNORECASE),
    # recollection
    re.compile(r"\b(?:remember|recall|remind|last time|previously)\b", re.IGNORECASE),
)


class PersonalQuestionClassifier(Protocol):
    def is_personal(self, message: str) -> bool: ...


class RegexClassifier:
    """First-person pronouns or identity/work/location/recollection questions."""

    def is_personal(self, message: str) -> bool:
        if PRONOUN_PATTERN.search(message):
            return True
        return any(p.search(message) for p in QUESTION_PATTERNS)


# -- Query expansion ---------------------------------------------------------

SYNONYM_CLUSTERS: tuple[tuple[str, ...], ...] = (
    ("work", "job", "profession", "career", "occupation", "company", "employer", "role"),
    ("like", "likes", "love", "preference", "preferences", "favorite", "favorites", "interests"),
    ("live", "home", "location", "city", "address", "based"),
    ("name", "called", "identity"),
    ("family", "wife", "husband", "partner", "kids", "children", "parents"),
    ("hobby", "hobbies", "pastime", "interests"),
    ("movie", "movies", "film", "films", "cinema"),
    ("project", "projects", "building", "working"),
)

# "What do I do?" is a question about work.
_WHAT_DO_I_DO = re.compile(r"\bwhat do (?:i|we) do\b", re.IGNORECASE)

_NON_WORD = re.compile(r"[^\w\s-]")

STOPWORDS = frozenset({
    "a", "about", "am", "an", "and", "any", "are", "can", "did", "do", "does", "for",
    "how", "i", "is", "me", "my", "of", "on", "our", "tell", "that", "the", "to",
    "we", "what", "when", "where", "which", "who", "with", "you", "your",
})


def normalize(message: str) -> str:
    """Lowercase and strip punctuation so tokens match stored text."""
    return " ".join(_NON_WORD.sub(" ", message.lower()).split())


def expand_query(message: str) -> str:
    """Append the members of every synonym cluster the message touches."""
    words = [w for w in normalize(message).split() if w not in STOPWORDS]
    seen = set(words)
    clusters = [c for c in SYNONYM_CLUSTERS if seen.intersection(c)]
    if _WHAT_DO_I_DO.search(message):
        clusters.insert(0, SYNONYM_CLUSTERS[0])

    extra: list[str] = []
    for cluster in clusters:
        for word in cluster:
            if word not in seen:
                seen.add(word)
                extra.append(word)
    return " ".join(words + extra)


# -- Formatting --------------------------------------------------------------


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def format_context(memories: list[SanitizedMemory], snippet_chars: int) -> str:
    """Header, numbered memories, footer. Empty input gives an empty string."""
    if not memories:
        return ""
    lines = [CONTEXT_HEADER]
    for n, memory in enumerate(memories, start=1):
        line = f"{n}. [{memory.category}, {memory.timestamp.date().isoformat()}] "
        line += _truncate(memory.content, snippet_chars)
        if memory.tags:
            line += f" (tags: {', '.join(memory.tags)})"
        lines.append(line)
    lines.append(CONTEXT_FOOTER)
    return "\n".join(lines)


class ContextAssembler:
    """Builds the ``[CONTEXT FROM MEMORY DATABASE]`` block for a message."""

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingClient,
        classifier: PersonalQuestionClassifier | None = None,
        max_results: int | None = None,
        snippet_chars: int | None = None,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.classifier = classifier or RegexClassifier()
        self.max_results = max_results or settings.context_max_results
        self.snippet_chars = snippet_chars or settings.context_snippet_chars

    async def assemble(
        self,
        user_id: str | None,
        message: str,
        observer: Callable[[list[MemoryRecord]], object] | None = None,
    ) -> str:
        """Return the context block for *message*, or "" when nothing applies.

        *observer* receives the unsanitized records that made it into the block.
        """
        if not user_id or not message.strip():
            return ""
        if not self.classifier.is_personal(message):
            return ""

        try:
            query = expand_query(message)
            if not query:
                return ""
            records = await hybrid_search(self.store, self.embeddings, user_id, query)
            top = records[: self.max_results]
            block = format_context(sanitize(top), self.snippet_chars)
        except Exception:
            logger.exception("Context retrieval failed; continuing without memories")
            return ""

        if top and observer is not None:
            try:
                observer(top)
            except Exception:
                logger.exception("Context observer failed")
        logger.info("Context block: %d memories for %r", len(top), message[:80])
        return block
