"""
Aggregator - Fans out to every configured source concurrently.

Each source is drained under its own timeout. A failing or slow source is
recorded as a SourceError and never cancels or delays the others; the
run proceeds with whatever did respond.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta

import httpx
import structlog

from pulse_worker.config import Settings
from pulse_worker.errors import SourceError, SourceErrorKind
from pulse_worker.models import CandidateArticle
from pulse_worker.policy import CallPolicy
from pulse_worker.sources.base import SourceClient
from pulse_worker.sources.rss import RssFeedClient
from pulse_worker.sources.search_api import GNewsClient

logger = structlog.get_logger()


@dataclass
class AggregateResult:
    candidates: list[CandidateArticle] = field(default_factory=list)
    errors: list[SourceError] = field(default_factory=list)
    counts_by_kind: dict[str, int] = field(default_factory=dict)


async def drain(client: SourceClient) -> list[CandidateArticle]:
    return [candidate async for candidate in client.fetch()]


async def collect_source(
    client: SourceClient,
    policy: CallPolicy,
) -> tuple[list[CandidateArticle], SourceError | None]:
    """
    Drain one source under the policy timeout.

    Returns:
        Tuple of (candidates, error) - error is None on success
    """
    log = logger.bind(source_id=client.source_id, source_kind=client.kind.value)

    try:
        candidates = await policy.call(lambda: drain(client))
    except SourceError as e:
        log.error("Source failed", error_kind=e.kind.value, error=e.message)
        return [], e
    except TimeoutError:
        log.error("Source timed out", timeout=policy.timeout)
        return [], SourceError(SourceErrorKind.TIMEOUT, client.source_id, f"no response within {policy.timeout}s")
    except Exception as e:
        log.exception("Unexpected error collecting source")
        return [], SourceError(SourceErrorKind.PARSE_ERROR, client.source_id, f"{type(e).__name__}: {e}")

    return candidates, None


async def aggregate_sources(clients: list[SourceClient], policy: CallPolicy) -> AggregateResult:
    """Collect from all clients concurrently and merge the results."""
    result = AggregateResult(counts_by_kind={client.kind.value: 0 for client in clients})

    outcomes = await asyncio.gather(*(collect_source(client, policy) for client in clients))

    for client, (candidates, error) in zip(clients, outcomes):
        result.candidates.extend(candidates)
        result.counts_by_kind[client.kind.value] += len(candidates)
        if error is not None:
            result.errors.append(error)

    logger.info(
        "Aggregation complete",
        source_count=len(clients),
        total_candidates=len(result.candidates),
        total_errors=len(result.errors),
        counts_by_kind=result.counts_by_kind,
    )
    return result


def build_source_clients(settings: Settings, http_client: httpx.AsyncClient) -> list[SourceClient]:
    """Instantiate one client per configured feed plus the search API client."""
    max_age = timedelta(hours=settings.max_article_age_hours)
    clients: list[SourceClient] = [
        RssFeedClient(feed, http_client, max_age=max_age) for feed in settings.rss_feeds
    ]
    clients.append(
        GNewsClient(
            api_key=settings.gnews_api_key.get_secret_value() if settings.gnews_api_key else None,
            client=http_client,
            query=settings.gnews_query,
            country=settings.gnews_country,
            max_results=settings.gnews_max_results,
        )
    )
    return clients
