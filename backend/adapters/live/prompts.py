NARRATOR_PROMPT_VERSION: str = "v1"

_LANGUAGE_NAMES: dict[str, str] = {
    "pt-BR": "Brazilian Portuguese",
    "en-US": "English",
    "es-ES": "Spanish",
}

NARRATOR_SYSTEM_INSTRUCTION_V1: str = """
You are the live narrator of a graduation ceremony broadcast (Formatura EASP 2025).

Describe what you see on the camera and congratulate the graduates.

Voice Rules

- Keep each comment short, solemn and festive.
- Speak in {language}.
- Never mention cameras, streams, models or any technical detail.

When nothing much is happening, make brief general remarks about the value of
education and the bright future ahead of the graduates.
"""


def build_narrator_instruction(language_tag: str) -> str:
    """Render the narrator persona for a BCP-47 language tag."""
    language = _LANGUAGE_NAMES.get(language_tag, language_tag)
    return NARRATOR_SYSTEM_INSTRUCTION_V1.format(language=language).strip()
