"""
Prompt builder for the agent conversation.

Consumes:
- The latest user message
- Recent stored history (oldest first)
- Optional snippets from the context-enrichment service

Produces:
- Chat Completions `messages` lists for replies, summaries and keyword extraction.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from edge_agent.models.domain import ConversationMessage

# {"role": "system"|"user"|"assistant", "content": "..."}
ChatMessage = Dict[str, str]

SYSTEM_PROMPT = (
    "You are a helpful AI assistant with access to an external context service "
    "for enhanced contextual understanding.\n"
    "Provide clear, accurate, and helpful responses. Keep your answers concise but comprehensive."
)

SUMMARY_PROMPT = (
    "Provide a concise summary of the following conversation.\n"
    "Focus on key topics, decisions, and important information discussed."
)

KEYWORDS_PROMPT = (
    "Extract the most important keywords and phrases from the given text.\n"
    "Return them as a comma-separated list. Focus on nouns, important concepts, and key topics."
)


def build_system_prompt(context: Optional[str] = None) -> str:
    """Base instructions, with retrieved context appended when there is any."""
    if not context:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\nRelevant context for this conversation:\n{context}"


def build_chat_messages(
    latest_user_message: str,
    history: Sequence[ConversationMessage],
    context: Optional[str] = None,
) -> List[ChatMessage]:
    """
    Builds the full message list: system prompt, prior turns, then the new message.
    The history must be ordered oldest to newest.
    """
    messages: List[ChatMessage] = [{"role": "system", "content": build_system_prompt(context)}]
    for item in history:
        content = item.content.strip()
        if not content:
            continue
        messages.append({"role": "user" if item.role == "user" else "assistant", "content": content})
    messages.append({"role": "user", "content": latest_user_message})
    return messages


def build_summary_messages(history: Sequence[ConversationMessage]) -> List[ChatMessage]:
    transcript = "\n".join(f"{m.role}: {m.content}" for m in history)
    return [
        {"role": "system", "content": SUMMARY_PROMPT},
        {"role": "user", "content": f"Please summarize this conversation:\n\n{transcript}"},
    ]


def build_keywords_messages(text: str) -> List[ChatMessage]:
    return [
        {"role": "system", "content": KEYWORDS_PROMPT},
        {"role": "user", "content": f"Extract keywords from this text: {text}"},
    ]
