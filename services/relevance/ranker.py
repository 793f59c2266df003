"""
Slide relevance ranking for free-text questions.

The primary ranking asks a text generation provider to score the slides;
when that fails (or returns something unparseable) a keyword heuristic
takes over. Results are always sorted by score, then by slide ordinal.
"""

import json
import re
from typing import Any

from services.providers.router import ProviderRouter
from shared.enums import Capability
from shared.errors import ProvidersExhaustedError, ProviderUnavailableError
from shared.models import RelevantSlide, SlideSummary
from shared.utils import Cache, generate_hash, setup_logging

logger = setup_logging("relevance-ranker")

TITLE_WEIGHT = 3
BODY_WEIGHT = 2
MIN_TOKEN_LENGTH = 4

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TOKEN_TRIM = re.compile(r"^[^\w]+|[^\w]+$")

RANKING_PROMPT = """User question: "{query}"

Available slides context:
{slides}

Based on the user's question, which slides are most relevant?
Provide a ranked list with explanations.

Format as JSON:
{{
  "relevantSlides": [
    {{
      "slideNumber": 1,
      "relevanceScore": 0.9,
      "reason": "This slide directly addresses the user's question about..."
    }}
  ]
}}"""


def query_tokens(query: str) -> list[str]:
    """Lower-cased query words longer than three characters, punctuation trimmed."""
    tokens = []
    for word in query.lower().split():
        token = _TOKEN_TRIM.sub("", word)
        if len(token) >= MIN_TOKEN_LENGTH and token not in tokens:
            tokens.append(token)
    return tokens


def _sort_and_cap(results: list[RelevantSlide], max_results: int) -> list[RelevantSlide]:
    results.sort(key=lambda item: (-item.score, item.slide_ordinal))
    return results[:max_results]


class SlideRelevanceRanker:
    """Ranks slides by relevance to a question."""

    def __init__(
        self,
        router: ProviderRouter | None = None,
        use_ai_ranking: bool = True,
        max_results: int = 3,
        cache: Cache | None = None,
        cache_ttl_seconds: float = 600,
    ) -> None:
        self.router = router
        self.use_ai_ranking = use_ai_ranking
        self.max_results = max_results
        self.cache = cache or Cache(default_ttl=cache_ttl_seconds)
        self.cache_ttl_seconds = cache_ttl_seconds

    async def rank(self, query: str, slides: list[SlideSummary]) -> list[RelevantSlide]:
        numbered = [(slide.ordinal or index, slide) for index, slide in enumerate(slides, start=1)]
        if not query.strip() or not numbered:
            return []

        if self.use_ai_ranking and self.router is not None and self.router.has_capability(Capability.TEXT_GEN):
            cache_key = self._cache_key(query, numbered)
            cached = self.cache.get(cache_key)
            if cached is not None:
                return list(cached)

            ranked = await self._rank_with_ai(query, numbered)
            if ranked is not None:
                self.cache.cleanup_expired()
                self.cache.set(cache_key, ranked, self.cache_ttl_seconds)
                return list(ranked)

        return self.keyword_rank(query, numbered)

    def keyword_rank(self, query: str, numbered: list[tuple[int, SlideSummary]]) -> list[RelevantSlide]:
        """Score slides by keyword hits: title hits weigh more than body hits."""
        tokens = query_tokens(query)
        if not tokens:
            return []

        max_raw = (TITLE_WEIGHT + BODY_WEIGHT) * len(tokens)
        results: list[RelevantSlide] = []
        for ordinal, slide in numbered:
            title = slide.title.lower()
            body = slide.searchable_text.lower()
            raw = 0
            matched: list[str] = []
            for token in tokens:
                hit = False
                if token in title:
                    raw += TITLE_WEIGHT
                    hit = True
                if token in body:
                    raw += BODY_WEIGHT
                    hit = True
                if hit:
                    matched.append(token)
            if raw <= 0:
                continue
            results.append(
                RelevantSlide(
                    slide_ordinal=ordinal,
                    score=round(raw / max_raw, 4),
                    title=slide.title or f"Slide {ordinal}",
                    reason=f"Mentions {', '.join(matched)}",
                )
            )
        return _sort_and_cap(results, self.max_results)

    async def _rank_with_ai(self, query: str, numbered: list[tuple[int, SlideSummary]]) -> list[RelevantSlide] | None:
        prompt = RANKING_PROMPT.format(query=query, slides=self._describe_slides(numbered))
        try:
            result = await self.router.generate(
                Capability.TEXT_GEN,
                prompt,
                {"max_tokens": 400, "temperature": 0.2},
            )
        except (ProvidersExhaustedError, ProviderUnavailableError) as e:
            logger.warning(f"AI ranking unavailable, using keyword search: {e.message}")
            return None

        try:
            return self.parse_ranking(result.text, numbered)
        except ValueError as e:
            logger.warning(f"AI ranking from {result.provider_id} unparseable, using keyword search: {e}")
            return None

    def parse_ranking(self, raw: str, numbered: list[tuple[int, SlideSummary]]) -> list[RelevantSlide]:
        """Parse the provider's JSON ranking, dropping unknown slides and clamping scores."""
        payload = self._load_json(raw)
        entries = payload.get("relevantSlides") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            raise ValueError("missing relevantSlides list")

        by_ordinal = {ordinal: slide for ordinal, slide in numbered}
        best: dict[int, RelevantSlide] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                ordinal = int(entry.get("slideNumber"))
                score = float(entry.get("relevanceScore", 0))
            except (TypeError, ValueError):
                continue
            slide = by_ordinal.get(ordinal)
            if slide is None:
                continue
            score = max(0.0, min(1.0, score))
            if score <= 0:
                continue
            if ordinal in best and best[ordinal].score >= score:
                continue
            best[ordinal] = RelevantSlide(
                slide_ordinal=ordinal,
                score=score,
                title=slide.title or f"Slide {ordinal}",
                reason=str(entry.get("reason") or "") or None,
            )
        return _sort_and_cap(list(best.values()), self.max_results)

    @staticmethod
    def _load_json(raw: str) -> Any:
        text = _CODE_FENCE.sub("", raw.strip())
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            start, end = text.find("{"), text.rfind("}")
            if start == -1 or end <= start:
                raise ValueError("no JSON object in response") from None
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError as exc:
                raise ValueError(f"invalid JSON: {exc.msg}") from exc

    @staticmethod
    def _describe_slides(numbered: list[tuple[int, SlideSummary]]) -> str:
        lines = []
        for ordinal, slide in numbered:
            summary = slide.summary or slide.searchable_text
            lines.append(f"Slide {ordinal}: {slide.title or 'Untitled'}\n{summary[:400]}")
        return "\n\n".join(lines)

    @staticmethod
    def _cache_key(query: str, numbered: list[tuple[int, SlideSummary]]) -> str:
        digest = generate_hash(
            json.dumps([[ordinal, slide.title, slide.searchable_text] for ordinal, slide in numbered])
        )
        return f"relevance:{generate_hash(query.strip().lower())}:{digest}"
