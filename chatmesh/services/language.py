# =============================================================================
# Language Utilities — Detect the User's Language, Keep Replies In It
# =============================================================================
#
# Users write in English or Spanish (and occasionally other languages).
# Agents that answer in free text detect the input language with a cheap
# LLM call and add an enforcement block to their prompt so the reply
# comes back in the same language.
#
# Detection never raises: any provider error falls back to the default
# language, because a wrong-language reply is better than no reply.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from chatmesh.services.llm import LLMProvider, complete_prompt

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "English"
NONSENSE = "Nonsense"


@dataclass
class LanguageContext:
    language: str
    instructions: str


async def detect_language(
    text: str,
    llm: LLMProvider,
    default: str = DEFAULT_LANGUAGE,
    detect_nonsense: bool = True,
) -> str:
    """
    Ask the LLM which language `text` is written in.

    Returns a language name such as "English" or "Spanish". When
    detect_nonsense is True, random keyboard mashing comes back as
    "Nonsense"; otherwise it is reported as the default language.
    """
    if detect_nonsense:
        nonsense_rule = (
            'If the text is nonsensical or a mix of random characters, '
            f'respond with "{NONSENSE}".'
        )
    else:
        nonsense_rule = (
            'If the text is nonsensical or a mix of random characters, '
            f'respond with "{default}".'
        )

    prompt = (
        f"Detect the language of this text. {nonsense_rule} Otherwise, "
        'respond with only the language name (e.g., "Spanish", "English", '
        f'"French"). If you cannot determine the language, answer "{default}".'
        f'\n\nText: "{text}"'
    )

    try:
        detected = (await complete_prompt(llm, prompt, temperature=0)).strip()
    except Exception as e:
        logger.warning("Language detection failed: %s", e)
        return default

    detected = detected.strip(' ."\'')
    if not detected:
        return default
    if detected.lower() == NONSENSE.lower() and not detect_nonsense:
        return default
    return detected


def get_language_enforcement_instructions(language: str, strict: bool = True) -> str:
    """Prompt block instructing the model to answer only in `language`."""
    if strict:
        return (
            f"CRITICAL LANGUAGE INSTRUCTION: You MUST reply ONLY in {language}. "
            f"Do NOT use English unless {language} is English. Do not translate, "
            f"do not explain, do not add text in any other language.\n\n"
            f"REPEAT: YOU MUST USE {language} ONLY."
        )
    return (
        f"IMPORTANT: Please respond in {language}. The user's message is in "
        f"{language}, so your response should be in the same language."
    )


async def get_language_context(
    text: str,
    llm: LLMProvider,
    strict: bool = True,
) -> LanguageContext:
    """Detect the language of `text` and build the matching instructions."""
    language = await detect_language(text, llm)
    if language == NONSENSE:
        # Nonsense input still gets a reply; default to English for it.
        return LanguageContext(
            language=NONSENSE,
            instructions=get_language_enforcement_instructions(
                DEFAULT_LANGUAGE, strict=False,
            ),
        )
    return LanguageContext(
        language=language,
        instructions=get_language_enforcement_instructions(language, strict=strict),
    )
