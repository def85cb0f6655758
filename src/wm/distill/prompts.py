"""Prompt templates for extraction, categorization and compression.

Each generation call gets a fixed system prompt that explains the marker
protocol, plus a user message carrying the material to work on.
"""

from __future__ import annotations

EXTRACTION_SYSTEM_PROMPT = """\
You are extracting tacit knowledge from an AI coding session transcript.

Tacit knowledge is wisdom about HOW to work effectively in this project, not
WHAT was done. Look for:
- Preferences the user revealed through corrections or choices
- Constraints that were discovered through friction
- Decisions together with their rationale (the WHY, not only the WHAT)
- Approaches that were tried and rejected, and the reason
- Quality standards implied by feedback

RESPONSE FORMAT:

If the transcript contains tacit knowledge worth keeping, respond:
HAS_KNOWLEDGE: YES

followed by one bullet per insight:
- Insight
- Insight

Each insight must make sense without the transcript and be useful to a
future session working on this project.

If there is nothing worth keeping, respond:
HAS_KNOWLEDGE: NO

Most sessions contain little or no tacit knowledge. Answering NO is normal.
"""

EXTRACTION_MESSAGE_TEMPLATE = """\
TRANSCRIPT:
{transcript}

OUTPUT:"""

CATEGORIZATION_SYSTEM_PROMPT = """\
You are sorting extracted tacit knowledge into two categories.

GUARDRAILS are hard constraints that must never be violated:
- Prohibitions and mandatory orderings ("never do X", "always do Y before Z")
- Rules whose violation risks data loss, security problems or broken builds
- Project requirements that are not negotiable

METIS is practical wisdom about how to work well here:
- The user's preferences and habits
- Approaches that work in this codebase
- Background on why things are the way they are
- Soft guidance that admits exceptions

RESPONSE FORMAT:

GUARDRAILS:
- Item
- Item

METIS:
- Item
- Item

Rules:
1. Every item is self-contained and actionable.
2. Keep the original meaning; clarify wording when needed.
3. When an item could fit both, safety-critical items are guardrails.
4. A section may be empty.
5. Merge duplicates without losing distinct nuances.
"""

CATEGORIZATION_MESSAGE_TEMPLATE = """\
Categorize these extracted insights:

{extractions}

OUTPUT:"""

COMPRESSION_SYSTEM_PROMPT = """\
You are compressing accumulated tacit knowledge into a shorter form.

What must survive:
- The rationale behind decisions
- Rejected approaches and why they were rejected
- Constraints discovered through friction
- Preferences revealed by corrections

How to compress:
1. Merge related items into broader principles.
2. Replace lists of specific instances with the general pattern.
3. Drop items that were superseded or are too specific to reuse.
4. Keep hard constraints and repeatedly corrected preferences verbatim in spirit.
5. Group related items and remove redundant phrasing.

A new session months from now should get the essential wisdom in fewer words.

RESPONSE FORMAT:

If meaningful compression was possible, respond:
WAS_COMPRESSED: YES

<compressed markdown content>

If the content is already concise, respond:
WAS_COMPRESSED: NO
"""

COMPRESSION_MESSAGE_TEMPLATE = """\
CURRENT STATE TO COMPRESS:

{content}

OUTPUT:"""


def build_extraction_message(transcript: str) -> str:
    """Build the Pass 1 user message for one session window."""
    return EXTRACTION_MESSAGE_TEMPLATE.format(transcript=transcript)


def build_categorization_message(extractions: str) -> str:
    """Build the Pass 2 user message from the whole raw ledger."""
    return CATEGORIZATION_MESSAGE_TEMPLATE.format(extractions=extractions.strip())


def build_compression_message(content: str) -> str:
    return COMPRESSION_MESSAGE_TEMPLATE.format(content=content.strip())


def format_knowledge_file(title: str, items: list[str]) -> str:
    """Render a curated file: ``# Title`` then one ``- item`` per line.

    An empty category still yields the heading.
    """
    lines = [f"# {title}", ""]
    lines.extend(f"- {item}" for item in items)
    return "\n".join(lines).rstrip() + "\n"
