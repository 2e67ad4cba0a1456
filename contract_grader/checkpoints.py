"""Static checkpoint registry.

Every scored rule identifier lives here with its category, point weight and
auto-fail flag. The registry is built once at import time and exposed through
read-only views.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

STRUCTURE_CATEGORY = "structure"
CATEGORY_ORDER = ("security", "pagination", "http", "webhooks", "extensions", "naming")


class RuleId(StrEnum):
    """Closed set of scored rule identifiers."""

    SEC_ORG_HDR = "SEC-ORG-HDR"
    SEC_BRANCH_HDR = "SEC-BRANCH-HDR"
    SEC_OAUTH2 = "SEC-OAUTH2"
    SEC_APIKEY = "SEC-APIKEY"
    SEC_BEARER = "SEC-BEARER"
    PAG_KEYSET = "PAG-KEYSET"
    PAG_NO_OFFSET = "PAG-NO-OFFSET"
    PAG_SORT = "PAG-SORT"
    HTTP_SUCCESS_REQUIRED = "HTTP-SUCCESS-REQUIRED"
    HTTP_GET_BODY = "HTTP-GET-BODY"
    HTTP_POST_STATUS = "HTTP-POST-STATUS"
    HTTP_DELETE_STATUS = "HTTP-DELETE-STATUS"
    HTTP_404_MISSING = "HTTP-404-MISSING"
    HTTP_ERROR_SCHEMA = "HTTP-ERROR-SCHEMA"
    ERR_PROBLEMJSON = "ERR-PROBLEMJSON"
    HTTP_COLLECTION_SCHEMA = "HTTP-COLLECTION-SCHEMA"
    HTTP_RESOURCE_SCHEMA = "HTTP-RESOURCE-SCHEMA"
    HTTP_ETAG = "HTTP-ETAG"
    HTTP_304 = "HTTP-304"
    HTTP_RATE_LIMIT = "HTTP-RATE-LIMIT"
    HTTP_202_LOCATION = "HTTP-202-LOCATION"
    WEBHOOK_SIGNATURE = "WEBHOOK-SIGNATURE"
    WEBHOOK_EVENT_TYPE = "WEBHOOK-EVENT-TYPE"
    WEBHOOK_ASYNC = "WEBHOOK-ASYNC"
    EXT_NAMESPACE = "EXT-NAMESPACE"
    EXT_DEPRECATION = "EXT-DEPRECATION"
    EXT_EXCESSIVE = "EXT-EXCESSIVE"
    EXT_UNKNOWN = "EXT-UNKNOWN"
    NAME_NAMESPACE = "NAME-NAMESPACE"


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """A named, weighted compliance rule."""

    id: RuleId
    category: str
    weight: int
    auto_fail: bool
    description: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "category": self.category,
            "weight": self.weight,
            "auto_fail": self.auto_fail,
            "description": self.description,
        }


def _cp(
    rule_id: RuleId,
    category: str,
    weight: int,
    description: str,
    *,
    auto_fail: bool = False,
) -> Checkpoint:
    return Checkpoint(
        id=rule_id,
        category=category,
        weight=weight,
        auto_fail=auto_fail,
        description=description,
    )


CHECKPOINTS: tuple[Checkpoint, ...] = (
    _cp(
        RuleId.SEC_ORG_HDR,
        "security",
        8,
        "Every operation references the organization-scoping header parameter.",
        auto_fail=True,
    ),
    _cp(
        RuleId.SEC_BRANCH_HDR,
        "security",
        5,
        "Every operation references the branch/location-scoping header parameter.",
    ),
    _cp(RuleId.SEC_OAUTH2, "security", 6, "An OAuth2 security scheme is declared."),
    _cp(RuleId.SEC_APIKEY, "security", 3, "API-key security schemes are header-located."),
    _cp(RuleId.SEC_BEARER, "security", 3, "Bearer security schemes declare type http."),
    _cp(
        RuleId.PAG_KEYSET,
        "pagination",
        8,
        "List endpoints reference AfterKey, BeforeKey and Limit parameters.",
        auto_fail=True,
    ),
    _cp(
        RuleId.PAG_NO_OFFSET,
        "pagination",
        5,
        "List endpoints never accept offset or page-number parameters.",
        auto_fail=True,
    ),
    _cp(RuleId.PAG_SORT, "pagination", 2, "List endpoints reference the Sort parameter."),
    _cp(
        RuleId.HTTP_SUCCESS_REQUIRED,
        "http",
        5,
        "Every operation declares at least one 2xx response.",
        auto_fail=True,
    ),
    _cp(RuleId.HTTP_GET_BODY, "http", 3, "GET operations do not declare a request body."),
    _cp(RuleId.HTTP_POST_STATUS, "http", 3, "Creating POST operations return 201, not bare 200."),
    _cp(RuleId.HTTP_DELETE_STATUS, "http", 3, "DELETE operations return 204 or 202."),
    _cp(RuleId.HTTP_404_MISSING, "http", 2, "Resource-identified GET operations declare 404."),
    _cp(RuleId.HTTP_ERROR_SCHEMA, "http", 2, "4xx/5xx responses declare a content schema."),
    _cp(
        RuleId.ERR_PROBLEMJSON,
        "http",
        3,
        "Error responses use the application/problem+json media type.",
    ),
    _cp(RuleId.HTTP_COLLECTION_SCHEMA, "http", 1, "Collection paths return array schemas."),
    _cp(RuleId.HTTP_RESOURCE_SCHEMA, "http", 1, "Singular-resource paths return object schemas."),
    _cp(RuleId.HTTP_ETAG, "http", 2, "Cacheable 2xx responses declare an ETag header."),
    _cp(RuleId.HTTP_304, "http", 2, "GET operations declare 304 for conditional requests."),
    _cp(
        RuleId.HTTP_RATE_LIMIT,
        "http",
        2,
        "Success and 429 responses declare the X-RateLimit-* headers.",
    ),
    _cp(
        RuleId.HTTP_202_LOCATION,
        "http",
        1,
        "202 Accepted responses declare a Location header for the job status.",
    ),
    _cp(
        RuleId.WEBHOOK_SIGNATURE,
        "webhooks",
        6,
        "Webhook definitions carry a signature-verification header.",
    ),
    _cp(
        RuleId.WEBHOOK_EVENT_TYPE,
        "webhooks",
        2,
        "Webhook definitions carry an event-type header.",
    ),
    _cp(
        RuleId.WEBHOOK_ASYNC,
        "webhooks",
        2,
        "Webhook definitions declare an asynchronous acceptance (202) response.",
    ),
    _cp(
        RuleId.EXT_NAMESPACE,
        "extensions",
        2,
        "Vendor extensions use the organization namespace.",
    ),
    _cp(
        RuleId.EXT_DEPRECATION,
        "extensions",
        2,
        "Deprecation-marker extensions are used where applicable.",
    ),
    _cp(RuleId.EXT_EXCESSIVE, "extensions", 4, "Vendor extension volume stays within bounds."),
    _cp(RuleId.EXT_UNKNOWN, "extensions", 2, "Unrecognized vendor extensions stay rare."),
    _cp(
        RuleId.NAME_NAMESPACE,
        "naming",
        10,
        "Every path lives under the versioned API prefix.",
        auto_fail=True,
    ),
)

_BY_ID: MappingProxyType[str, Checkpoint] = MappingProxyType(
    {str(item.id): item for item in CHECKPOINTS}
)


def _build_category_maxima() -> MappingProxyType[str, int]:
    totals: dict[str, int] = {category: 0 for category in CATEGORY_ORDER}
    for item in CHECKPOINTS:
        totals[item.category] = totals.get(item.category, 0) + item.weight
    return MappingProxyType(totals)


_CATEGORY_MAXIMA = _build_category_maxima()


def get_checkpoint(rule_id: str) -> Checkpoint | None:
    """Return the checkpoint for ``rule_id`` or ``None`` for ad-hoc identifiers."""
    return _BY_ID.get(str(rule_id))


def is_registered(rule_id: str) -> bool:
    return str(rule_id) in _BY_ID


def list_checkpoints() -> list[Checkpoint]:
    return list(CHECKPOINTS)


def category_max(category: str) -> int:
    """Maximum points a category can contribute, derived from checkpoint weights."""
    return _CATEGORY_MAXIMA.get(category, 0)


def category_maxima() -> MappingProxyType[str, int]:
    return _CATEGORY_MAXIMA
