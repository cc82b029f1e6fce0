from typing import Any

import structlog

from claude_tokens.errors import OrganizationNotFound
from claude_tokens.fetcher import ClaudeFetcher

logger = structlog.get_logger()


def _first_membership_org(memberships: "Any") -> "str | None":
    if not isinstance(memberships, list) or not memberships:
        return None

    first = memberships[0]
    if not isinstance(first, dict):
        return None

    org = first.get("organization")
    if org is None:
        org = first.get("workspace")
    if not isinstance(org, dict):
        return None

    return _id_of(org, "uuid", "id")


def _id_of(obj: "Any", *keys: "str") -> "str | None":
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if value is not None and value != "":
            return str(value)
    return None


def extract_organization_id(data: "Any") -> "str | None":
    """
    pulls the organization identifier out of an account payload.

    The account endpoint has been seen returning memberships at
    the top level or nested under "account", and sometimes only a
    flat id. Locations are tried in that order, first hit wins.
    """
    if not isinstance(data, dict):
        return None

    account = data.get("account")
    candidates = (
        lambda: _first_membership_org(data.get("memberships")),
        lambda: _first_membership_org(
            account.get("memberships") if isinstance(account, dict) else None
        ),
        lambda: _id_of(data, "id"),
        lambda: _id_of(data, "organization_uuid"),
        lambda: _id_of(data.get("default_organization"), "uuid"),
    )
    for candidate in candidates:
        org_id = candidate()
        if org_id is not None:
            return org_id
    return None


async def resolve_organization(
    fetcher: "ClaudeFetcher",
    credential: "str | None",
) -> "str":
    """
    looks up the account behind credential and returns its
    organization id. Raises OrganizationNotFound when the payload
    carries none.
    """
    data = await fetcher.fetch(fetcher.account_url(), credential)
    org_id = extract_organization_id(data)
    if org_id is None:
        logger.warning(
            "organization_not_found",
            keys=sorted(data) if isinstance(data, dict) else None,
        )
        raise OrganizationNotFound()

    logger.info("organization_resolved", org_id=org_id)
    return org_id
