"""Chat message types shared by the prompt builders."""

from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

PASSAGE_SEPARATOR = "\n\n------------------------------\n\n"


class ChatMessage(BaseModel):
    """Single conversation turn sent to the model."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str

    def to_openai(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def build_conversation(messages: Iterable[Optional[ChatMessage]]) -> List[ChatMessage]:
    """Drop missing and empty turns, keeping order."""
    return [m for m in messages if m is not None and m.content]


def join_passages(texts: Iterable[str]) -> str:
    return PASSAGE_SEPARATOR.join(texts)


def to_openai(conversation: Iterable[ChatMessage]) -> List[Dict[str, str]]:
    return [m.to_openai() for m in conversation]


def render(conversation: Iterable[ChatMessage]) -> str:
    """Plain-text transcript for the job log."""
    return "\n\n".join(f"[{m.role}]\n{m.content}" for m in conversation)
