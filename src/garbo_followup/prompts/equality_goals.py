"""Auxiliary extraction of equality, diversity and inclusion goals."""

from typing import List, Sequence

from ..schemas.extraction import EqualityGoals
from .conversation import ChatMessage, build_conversation, join_passages

schema = EqualityGoals

SYSTEM_PROMPT = (
    "You are an expert in corporate equality goals and diversity initiatives. "
    "Extract data relevant to these topics from the provided PDF context."
)

# Also used verbatim as the retrieval query for this extraction.
prompt = """
Extract the company's equality, diversity, and inclusion goals, including gender equality, diversity initiatives, and social responsibility goals. Add this information as a field named equalityGoals. Focus on targets related to gender balance, diversity quotas, and any programs promoting inclusion.

Prioritize the list and only include the most important goals. If the list is long, only include up to ten primary goals that relate directly to equality and diversity initiatives.

If a year is mentioned as a target date, include it. If no target is specified, set the year to null.

** LANGUAGE: WRITE IN SWEDISH. If text is in english, translate to Swedish **

Example - Output should be in JSON format and follow the structure below without markdown:
{
  "equalityGoals": [
    {
      "description": "Öka andelen kvinnliga chefer till 40%",
      "year": "2025",
      "targetPercentage": 40,
      "baseYear": "2023"
    },
    {
      "description": "Etablera mångfaldsprogram inom tekniska avdelningar",
      "year": "2026",
      "targetPercentage": null,
      "baseYear": null
    }
  ]
}
"""


def build_equality_goals_conversation(passages: Sequence[str]) -> List[ChatMessage]:
    """Single-turn conversation over passages retrieved for ``prompt``."""
    return build_conversation([
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(
            role="user",
            content="Equality goals extracted from PDF:\n" + join_passages(passages),
        ),
    ])
