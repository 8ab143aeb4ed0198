"""
Enrich Node - Uses a chat model to categorise and summarise articles.

This node:
1. Takes the unique candidates of this run
2. Asks the model for each one:
   - Category (one of CATEGORIES)
   - Summary (1-2 sentences)
3. Falls back to "Uncategorized" plus the raw text when the model fails
4. Returns EnrichedArticles ready for persistence

LangGraph Integration:
- Input: PipelineState with unique_candidates
- Output: {"enriched_articles": [...], "enrichment_errors": int, "ai_processed": int}

Rate Limiting:
- asyncio.Semaphore caps in-flight model calls (enrich_concurrency)
- Every call runs under the enrichment CallPolicy (timeout + retries on
  malformed structured output)

Providers:
- anthropic: ChatAnthropic (default)
- openrouter: ChatOpenAI pointed at the OpenRouter endpoint
"""

import asyncio

import structlog
from langchain_anthropic import ChatAnthropic
from langchain_core.exceptions import OutputParserException
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, ValidationError

from pulse_worker.config import Settings
from pulse_worker.graph.state import PipelineState
from pulse_worker.identity import slugify
from pulse_worker.models import CATEGORIES, FALLBACK_CATEGORY, CandidateArticle, Category, EnrichedArticle
from pulse_worker.policy import CallPolicy

logger = structlog.get_logger()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

FALLBACK_SUMMARY_LENGTH = 200

# Exceptions that mean "the model answered, but not in the schema"
MALFORMED_OUTPUT_ERRORS = (ValidationError, OutputParserException)


# === Pydantic Schema for the model's structured output ===


class ArticleEnrichment(BaseModel):
    """Schema for the model's structured output."""

    category: Category = Field(description=f"Exactly one category from this list: {CATEGORIES}")
    summary: str = Field(
        min_length=1,
        description="A neutral 1-2 sentence summary of the story for a Kenyan news audience.",
    )


# === Prompt Template ===

ENRICH_PROMPT = """You are a professional Kenyan news editor.
Classify the following article and summarise it.

TITLE: {title}
CONTENT:
{content}

Guidelines:
- For category: use exactly one value from {categories}
- For summary: 1-2 plain sentences, no headings, no bullet points
- Do not invent facts that are not in the title or content
"""


def build_chat_model(settings: Settings) -> Runnable | None:
    """
    Create the structured-output chat model from settings.

    Returns:
        A runnable producing ArticleEnrichment, or None when the selected
        provider has no API key (enrichment then always uses the fallback)
    """
    provider = settings.ai_provider.lower()

    if provider == "openrouter":
        if not settings.openrouter_api_key:
            logger.warning("OpenRouter selected but OPENROUTER_API_KEY is not set; enrichment disabled")
            return None
        llm = ChatOpenAI(
            model=settings.openrouter_model,
            api_key=settings.openrouter_api_key.get_secret_value(),
            base_url=OPENROUTER_BASE_URL,
            max_tokens=512,
            temperature=0.3,
        )
        return llm.with_structured_output(ArticleEnrichment)

    if provider != "anthropic":
        raise ValueError(f"Unknown AI provider: {settings.ai_provider}")

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set; enrichment disabled")
        return None

    llm = ChatAnthropic(
        model=settings.ai_model,
        api_key=settings.anthropic_api_key.get_secret_value(),
        max_tokens=512,
    )
    return llm.with_structured_output(ArticleEnrichment)


def fallback_summary(candidate: CandidateArticle) -> str:
    """The raw summary, or the title cut to 200 characters if there is none."""
    raw = (candidate.get("summary_raw") or "").strip()
    if raw:
        return raw
    return candidate["title"][:FALLBACK_SUMMARY_LENGTH]


def to_enriched_article(candidate: CandidateArticle, result: ArticleEnrichment | None) -> EnrichedArticle:
    if result is None:
        category, summary = FALLBACK_CATEGORY, fallback_summary(candidate)
    else:
        category, summary = result.category, result.summary.strip()

    return EnrichedArticle(
        title=candidate["title"],
        link=candidate["link"],
        published_at=candidate["published_at"],
        summary_raw=candidate["summary_raw"],
        content=candidate.get("content"),
        image_url=candidate.get("image_url"),
        source_kind=candidate["source_kind"],
        source_id=candidate["source_id"],
        identity=candidate["identity"],
        category=category,
        ai_summary=summary,
        slug=slugify(candidate["title"]),
        enriched=result is not None,
    )


async def enrich_article(
    candidate: CandidateArticle,
    llm: Runnable,
    policy: CallPolicy,
) -> EnrichedArticle:
    """
    Enrich a single candidate. Never raises.

    A failed call yields the fallback article with enriched=False.
    """
    log = logger.bind(identity=candidate["identity"], title=candidate["title"][:80])

    prompt = ENRICH_PROMPT.format(
        title=candidate["title"],
        content=candidate.get("summary_raw") or "(no content, use the title)",
        categories=", ".join(CATEGORIES),
    )

    outcome = await policy.call_or_fallback(lambda: llm.ainvoke(prompt), fallback=None)

    if not outcome.ok:
        log.error(
            "Enrichment failed, using fallback",
            error=str(outcome.error)[:200],
            error_type=type(outcome.error).__name__,
        )
        return to_enriched_article(candidate, None)

    log.debug("Enrichment complete", category=outcome.value.category)
    return to_enriched_article(candidate, outcome.value)


async def enrich_candidates(
    candidates: list[CandidateArticle],
    llm: Runnable | None,
    policy: CallPolicy,
    max_concurrent: int = 3,
) -> tuple[list[EnrichedArticle], int]:
    """
    Enrich all candidates with bounded concurrency.

    Returns:
        Tuple of (enriched articles in input order, failure count)
    """
    if llm is None:
        logger.info("No chat model configured, using raw text for all articles", count=len(candidates))
        return [to_enriched_article(candidate, None) for candidate in candidates], 0

    semaphore = asyncio.Semaphore(max_concurrent)

    async def enrich_with_semaphore(candidate: CandidateArticle) -> EnrichedArticle:
        async with semaphore:
            return await enrich_article(candidate, llm, policy)

    enriched = list(await asyncio.gather(*(enrich_with_semaphore(c) for c in candidates)))
    failed = sum(1 for article in enriched if not article["enriched"])
    return enriched, failed


def create_enrich_node(llm: Runnable | None, policy: CallPolicy, max_concurrent: int = 3):
    """
    Factory function to create the enrich node.

    Usage:
        # In orchestrator.py
        builder.add_node("enrich", create_enrich_node(llm, policy, max_concurrent=3))

    Args:
        llm: Structured-output chat model from build_chat_model(), or None
        policy: Timeout and retry policy per model call
        max_concurrent: Max concurrent model calls
    """

    async def enrich(state: PipelineState) -> dict:
        candidates = state.get("unique_candidates", [])

        logger.info("Starting enrichment", article_count=len(candidates))

        if not candidates:
            return {"enriched_articles": [], "enrichment_errors": 0, "ai_processed": 0}

        enriched, failed = await enrich_candidates(candidates, llm, policy, max_concurrent=max_concurrent)
        ai_processed = sum(1 for article in enriched if article["enriched"])

        logger.info(
            "Enrichment complete",
            input_count=len(candidates),
            ai_processed=ai_processed,
            failed=failed,
        )

        return {"enriched_articles": enriched, "enrichment_errors": failed, "ai_processed": ai_processed}

    return enrich
