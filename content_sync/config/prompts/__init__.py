"""Prompt templates for the verification oracle.

Modules:
    verification_prompts: System prompt, per-type instructions and the
        user prompt builder for entity fact-checking
"""

from content_sync.config.prompts.verification_prompts import (
    TYPE_INSTRUCTIONS,
    VERIFICATION_SYSTEM_PROMPT,
    build_verification_prompt,
)

__all__ = [
    "TYPE_INSTRUCTIONS",
    "VERIFICATION_SYSTEM_PROMPT",
    "build_verification_prompt",
]
