"""Mailbox statistics and search routes."""

from __future__ import annotations

import json
import logging
from enum import Enum

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from inbox_health.aggregator import Aggregator, MailboxSearch
from inbox_health.api.deps import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/emails", tags=["emails"])


class HealthMode(str, Enum):
    FIRST_MATCH = "first_match"
    FULL = "full"


@router.get("/list")
def list_emails(services: Services = Depends(get_services)):
    """Email addresses of all non-admin users."""
    credentials = services.credentials.list_credentials(exclude_tag=services.settings.admin_tag)
    return {"emails": [c.email for c in credentials]}


@router.get("/health")
def email_health(
    email: str | None = None,
    mode: HealthMode = HealthMode.FIRST_MATCH,
    services: Services = Depends(get_services),
):
    """Check whether mail from ``email`` lands in users' spam folders.

    ``first_match`` stops at the first user with a match and returns only
    ``{"health"}``. ``full`` checks every user and returns the summary.
    """
    if not email:
        return JSONResponse({"error": "Email parameter is required"}, status_code=400)

    cache_key = f"health:{mode.value}:{email.strip().lower()}"
    cached = services.cache.get(cache_key)
    if cached is not None:
        return json.loads(cached)

    credentials = services.credentials.list_credentials(exclude_tag=services.settings.admin_tag)
    if not credentials:
        return JSONResponse({"error": "No users found"}, status_code=404)

    aggregator = Aggregator(
        services.executor(),
        stop_on_first_match=mode is HealthMode.FIRST_MATCH,
        max_results=services.settings.health_max_results,
    )
    summary = aggregator.check_health(credentials, email)
    logger.info(
        f"Health for {email}: {summary.status.value} "
        f"({summary.total_spam_count} spam across {summary.total_users} users)"
    )

    if mode is HealthMode.FIRST_MATCH:
        body = {"health": summary.status.value}
    else:
        body = summary.to_dict()

    if services.settings.health_cache_ttl > 0:
        services.cache.set(cache_key, json.dumps(body), ttl=services.settings.health_cache_ttl)
    return body


@router.get("/search")
def search_emails(q: str = "", services: Services = Depends(get_services)):
    """Messages from sender ``q`` across all mailboxes with an access token."""
    q = q.strip()
    if not q:
        return {"messages": []}

    credentials = services.credentials.list_credentials(require_access_token=True)
    search = MailboxSearch(services.executor(), max_results=services.settings.search_max_results)
    return {"messages": search.search(credentials, q)}
