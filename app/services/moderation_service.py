"""
Comment moderation

Two checks run on every comment body:
- a blocked-terms match (always on)
- the OpenAI moderation endpoint, when OPENAI_API_KEY is set

An OpenAI outage degrades to the blocked-terms result rather than failing
the comment.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_TERMS = frozenset({
    "asshole",
    "bastard",
    "bitch",
    "cunt",
    "fuck",
    "fucking",
    "motherfucker",
    "shit",
})

WORD_PATTERN = re.compile(r"[a-z0-9']+")


@dataclass
class ModerationResult:
    flagged: bool
    flags: List[str] = field(default_factory=list)
    profanity_detected: bool = False
    test_mode: bool = False


def parse_blocked_terms(raw: str) -> frozenset:
    return frozenset(term.strip().lower() for term in raw.split(",") if term.strip())


class ModerationService:

    def __init__(self, client: Optional[AsyncOpenAI] = None, blocked_terms: Optional[Iterable[str]] = None):
        self._client = client
        if blocked_terms is None:
            blocked_terms = DEFAULT_BLOCKED_TERMS | parse_blocked_terms(settings.MODERATION_BLOCKED_TERMS)
        self.blocked_terms = frozenset(term.lower() for term in blocked_terms)

    @property
    def test_mode(self) -> bool:
        """True when only the blocked-terms check runs."""
        return self._client is None and not settings.OPENAI_API_KEY

    def _get_client(self) -> Optional[AsyncOpenAI]:
        if self._client is None and settings.OPENAI_API_KEY:
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    def has_profanity(self, text: str) -> bool:
        return any(word in self.blocked_terms for word in WORD_PATTERN.findall(text.lower()))

    async def moderate(self, text: str) -> ModerationResult:
        flags = []
        profanity = self.has_profanity(text)
        if profanity:
            flags.append("profanity")

        client = self._get_client()
        if client is not None:
            try:
                response = await client.moderations.create(
                    model=settings.OPENAI_MODERATION_MODEL,
                    input=text,
                )
                result = response.results[0]
                if result.flagged:
                    categories = result.categories.model_dump(by_alias=True)
                    flags.extend(name for name, hit in categories.items() if hit)
            except OpenAIError as e:
                logger.error(f"OpenAI moderation failed, using blocked terms only: {e}")

        return ModerationResult(
            flagged=bool(flags),
            flags=flags,
            profanity_detected=profanity,
            test_mode=client is None,
        )
