"""The three Vinnova entities kept in sync, and how each is fetched."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from grant_sync.adapters.vinnova.client import (
    ANSOKNINGAR_ENDPOINT,
    FINANSIERADE_AKTIVITETER_ENDPOINT,
    UTLYSNINGAR_ENDPOINT,
)
from grant_sync.normalization import (
    normalize_activity,
    normalize_application,
    normalize_grant,
    validate_activity,
    validate_application,
    validate_grant,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from grant_sync.adapters.vinnova.client import VinnovaClient


@dataclass(frozen=True)
class EntitySpec:
    name: str
    table: str
    endpoint: str
    normalize_fn: Callable[[Any], dict[str, Any] | None]
    validate_fn: Callable[[Any], bool]


GRANTS = EntitySpec("grants", "grants", UTLYSNINGAR_ENDPOINT, normalize_grant, validate_grant)
APPLICATIONS = EntitySpec(
    "applications",
    "applications",
    ANSOKNINGAR_ENDPOINT,
    normalize_application,
    validate_application,
)
ACTIVITIES = EntitySpec(
    "activities",
    "activities",
    FINANSIERADE_AKTIVITETER_ENDPOINT,
    normalize_activity,
    validate_activity,
)

ENTITY_SPECS: dict[str, EntitySpec] = {
    spec.name: spec for spec in (GRANTS, APPLICATIONS, ACTIVITIES)
}


def make_fetcher(
    client: VinnovaClient, spec: EntitySpec, *, since_param: str = "updated_after"
) -> Callable[[str | None], Awaitable[list[Any]]]:
    """Build ``fetch_fn(since)`` that pages through the entity's endpoint."""

    async def _fetch(since: str | None) -> list[Any]:
        params = {since_param: since} if since else {}
        return await client.get_all_pages(spec.endpoint, params)

    return _fetch
