"""Primary follow-up conversation: refine a previous extraction."""

from typing import List, Sequence

from .conversation import ChatMessage, build_conversation, join_passages

SYSTEM_PROMPT = (
    "You are an expert in CSRD and will provide accurate data from a PDF "
    "with company CSRD reporting. Be concise and accurate."
)

INSTRUCTIONS_TEMPLATE = """This is the result of a previous prompt:


```json
{previous_extraction}
```

## Please add diffs to the prompt based on the instructions:
{prompt}

## Output:
For example, if you want to add a new field called "industry" the response should look like this (only reply with valid json):
{{
  "industry": {{...}}
}}
"""


def build_follow_up_conversation(
    passages: Sequence[str],
    previous_extraction: str,
    prompt: str,
    previous_answer: str = "",
    trace: Sequence[str] = (),
) -> List[ChatMessage]:
    """
    Build the refinement conversation for one attempt.

    The retry turns (the rejected answer, then the accumulated validation
    errors) are only added when ``trace`` is non-empty.

    Args:
        passages: Retrieved passage texts, most relevant first
        previous_extraction: Prior extraction result as JSON text, shown verbatim
        prompt: Refinement instruction from the caller
        previous_answer: Last answer the model gave for this job
        trace: Validation errors collected so far, oldest first

    Returns:
        Ordered chat messages; identical inputs give an identical conversation
    """
    messages = [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(
            role="user",
            content="Results from PDF: \n" + join_passages(passages),
        ),
        ChatMessage(
            role="user",
            content=INSTRUCTIONS_TEMPLATE.format(
                previous_extraction=previous_extraction,
                prompt=prompt,
            ),
        ),
    ]

    if trace:
        messages.append(ChatMessage(role="assistant", content=previous_answer))
        messages.append(ChatMessage(role="user", content="\n".join(trace)))

    return build_conversation(messages)
