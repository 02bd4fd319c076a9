from geoquery.prompts.phase_prompts import (
    ROLE_PROMPTS,
    PHASE_INSTRUCTIONS,
    RolePrompt,
    PromptIntegrityError,
    build_phase_prompt,
)

__all__ = [
    "ROLE_PROMPTS",
    "PHASE_INSTRUCTIONS",
    "RolePrompt",
    "PromptIntegrityError",
    "build_phase_prompt",
]
