"""wm: working memory for AI coding sessions.

Distills tacit knowledge (rationale, constraints, preferences) from the
host assistant's session transcripts into two curated files, and injects
them back as context on every new prompt.

    ~/.claude/projects/<project-id>/<session>.jsonl   (read-only input)
                │  wm distill
                ▼
    <project>/.wm/distill/raw_extractions.md → guardrails.md, metis.md
                │  wm hook compile
                ▼
    additionalContext for the next turn
"""

__version__ = "0.3.0"
