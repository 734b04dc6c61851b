"""
AI assistant replies for chat sessions.

The language model sits behind a one-method capability, complete(prompt),
so tests can swap in a deterministic fake. A failing model never fails the
request: the user gets a stored apology message instead.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from conversations import ConversationStore
from errors import DependencyUnavailable
from schemas import Principal

logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, I'm having trouble connecting to my knowledge base. Please try again later."
HISTORY_WINDOW = 10

ROLE_PROMPTS = {
    "admin": "You are an AI assistant helping a property management system administrator. "
             "Provide concise, helpful responses about property management and system features.",
    "seller": "You are an AI assistant helping a property seller. "
              "Provide concise, helpful responses about property listings and sales strategies.",
    "customer": "You are an AI assistant helping a property customer. "
                "Provide concise, helpful responses about property features and purchasing processes.",
}
DEFAULT_PROMPT = ("You are an AI assistant for a property management system. "
                  "Provide concise, helpful responses about properties and system features.")


class Completion(Protocol):
    def complete(self, prompt: str) -> str: ...


class GeminiCompletion:
    def __init__(self, api_key: Optional[str], model: str = "gemini-2.0-flash"):
        self.llm = ChatGoogleGenerativeAI(model=model, google_api_key=api_key) if api_key else None

    def complete(self, prompt: str) -> str:
        if self.llm is None:
            raise DependencyUnavailable("Chat completion is not configured")
        response = self.llm.invoke([HumanMessage(content=prompt)])
        content = response.content
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
        return content


def build_prompt(role: str, history: List[Dict[str, Any]], text: str) -> str:
    """Role instructions, the last few things the user said, then the new message."""
    previous = [m["text"] for m in history if not m.get("from_bot")][-HISTORY_WINDOW:]
    return f"{ROLE_PROMPTS.get(role, DEFAULT_PROMPT)}\n\nPrevious Conversation:\n" + "\n".join(previous) + f"\n\nUser: {text}"


class ChatAssistant:
    def __init__(self, store: ConversationStore, completion: Completion):
        self.store = store
        self.completion = completion

    def reply(self, actor: Principal, session_id: str, text: str) -> Dict[str, Any]:
        """Store the user's message, ask the model, store and return its answer."""
        chat = self.store.get_session(actor, session_id)
        prompt = build_prompt(chat["role"], chat.get("messages", []), text)
        sent = self.store.append_message(actor, session_id, text, from_bot=False)

        try:
            answer = (self.completion.complete(prompt) or "").strip() or APOLOGY
        except Exception as e:
            logger.warning("Assistant unavailable for session %s: %s", session_id, e)
            answer = APOLOGY

        reply = self.store.append_message(actor, session_id, answer, from_bot=True)
        return {"session_id": session_id, "message": sent, "reply": reply}
