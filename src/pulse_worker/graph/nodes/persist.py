"""
Persist Node - Saves enriched articles to storage, one at a time.

For each article:
1. If the slug is already taken, append a short identity suffix
2. Insert the article (the store ignores rows whose slug or canonical
   URL already exist)

Outcomes:
- INSERTED -> saved
- ALREADY_EXISTS or PersistenceConflict -> skipped
- Anything else (network, permission, bad payload, timeout) -> error; the
  article is dropped for this run and will be retried next run because
  its identity does not enter the horizon

LangGraph Integration:
- Input: PipelineState with enriched_articles
- Output: {"persist_result": PersistResult}
"""

from enum import StrEnum

import structlog

from pulse_worker.db.articles import ArticleStore, InsertResult
from pulse_worker.errors import PersistenceConflict
from pulse_worker.graph.state import PipelineState
from pulse_worker.identity import disambiguate_slug
from pulse_worker.models import EnrichedArticle, PersistResult
from pulse_worker.policy import CallPolicy

logger = structlog.get_logger()


class PersistOutcome(StrEnum):
    SAVED = "saved"
    SKIPPED = "skipped"
    FAILED = "failed"


async def persist_article(article: EnrichedArticle, store: ArticleStore, policy: CallPolicy) -> PersistOutcome:
    """Persist one article. Never raises."""
    log = logger.bind(identity=article["identity"], slug=article["slug"])

    try:
        if await policy.call(lambda: store.exists(article["slug"])):
            slug = disambiguate_slug(article["slug"], article["identity"])
            log.debug("Slug taken, disambiguating", new_slug=slug)
            article = {**article, "slug": slug}

        result = await policy.call(lambda: store.insert(article))

    except PersistenceConflict as e:
        log.info("Article already stored", error=str(e)[:200])
        return PersistOutcome.SKIPPED
    except Exception as e:
        log.error("Failed to persist article", error=str(e)[:200], error_type=type(e).__name__)
        return PersistOutcome.FAILED

    if result == InsertResult.ALREADY_EXISTS:
        log.debug("Article already stored")
        return PersistOutcome.SKIPPED

    return PersistOutcome.SAVED


async def persist_articles(
    articles: list[EnrichedArticle],
    store: ArticleStore,
    policy: CallPolicy,
) -> PersistResult:
    result = PersistResult(saved=0, skipped=0, errors=0, settled_identities=[])

    for article in articles:
        outcome = await persist_article(article, store, policy)
        if outcome == PersistOutcome.SAVED:
            result["saved"] += 1
        elif outcome == PersistOutcome.SKIPPED:
            result["skipped"] += 1
        else:
            result["errors"] += 1
            continue
        result["settled_identities"].append(article["identity"])

    return result


def create_persist_node(store: ArticleStore, policy: CallPolicy):
    async def persist(state: PipelineState) -> dict:
        articles = state.get("enriched_articles", [])

        logger.info("Starting persistence", article_count=len(articles))

        result = await persist_articles(articles, store, policy)

        logger.info(
            "Persistence complete",
            saved=result["saved"],
            skipped=result["skipped"],
            errors=result["errors"],
        )
        return {"persist_result": result}

    return persist
