from .conversation import ChatMessage, PASSAGE_SEPARATOR, render, to_openai
from .follow_up import build_follow_up_conversation
from .equality_goals import build_equality_goals_conversation
from . import equality_goals

__all__ = [
    "ChatMessage",
    "PASSAGE_SEPARATOR",
    "render",
    "to_openai",
    "build_follow_up_conversation",
    "build_equality_goals_conversation",
    "equality_goals",
]
