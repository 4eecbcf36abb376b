"""Memory tools the model can call: ``save_memory`` and ``search_memory``.

Both need an authenticated user; the registry refuses them otherwise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from src.errors import AuthenticationRequired, ToolExecutionError
from src.memory.models import MemoryType
from src.memory.retrieval import MAX_LLM_CONTEXT, hybrid_search, sanitize
from src.tools.base import ToolParams, ToolResult
from src.tools.registry import registry

if TYPE_CHECKING:
    from src.tools.base import TurnContext

# -- save_memory -------------------------------------------------------------


class SaveMemoryParams(ToolParams):
    content: str = Field(min_length=1, description="The content to remember.")
    category: str = Field(
        min_length=1,
        description=(
            'Category: "diary" (for personal logs), "work", "personal", "fact", "people".'
        ),
    )
    tags: list[str] = Field(default_factory=list, description="Keywords for retrieval.")


@registry.tool(
    name="save_memory",
    description=(
        "Saves a piece of information, fact, note, or diary entry into the "
        "user's persistent database."
    ),
    params_model=SaveMemoryParams,
    requires_user=True,
)
async def save_memory(
    content: str, category: str, tags: list[str], turn: TurnContext
) -> ToolResult:
    embedding = await turn.embeddings.try_embed(content)

    memory_type = MemoryType.TEXT
    media_data = media_mime_type = media_name = None
    if turn.attachments:
        first = turn.attachments[0]
        media_data = first.data
        media_mime_type = first.mime_type
        media_name = first.name
        memory_type = MemoryType.from_mime(first.mime_type)

    try:
        memory_id = await turn.memory_store.create(
            turn.user_id,
            content=content,
            category=category,
            tags=tags,
            type=memory_type,
            media_data=media_data,
            media_mime_type=media_mime_type,
            media_name=media_name,
            embedding=embedding,
        )
    except AuthenticationRequired:
        raise
    except Exception as exc:
        msg = f"Could not save memory: {exc}"
        raise ToolExecutionError(msg) from exc
    status = (
        "Memory saved with vector embedding."
        if embedding
        else "Memory saved (embedding unavailable)."
    )
    return ToolResult(data={"success": True, "memoryId": memory_id, "status": status})


# -- search_memory -----------------------------------------------------------


class SearchMemoryParams(ToolParams):
    query: str = Field(min_length=1, description="The search query.")


@registry.tool(
    name="search_memory",
    description="Searches the user's long-term memory database.",
    params_model=SearchMemoryParams,
    requires_user=True,
)
async def search_memory(query: str, turn: TurnContext) -> ToolResult:
    combined = await hybrid_search(turn.memory_store, turn.embeddings, turn.user_id, query)
    top = combined[:MAX_LLM_CONTEXT]
    return ToolResult(
        data={
            "found": len(combined),
            "results": [m.to_wire() for m in sanitize(top)],
        },
        display={
            "found": len(combined),
            "results": [m.to_wire() for m in top],
        },
    )
