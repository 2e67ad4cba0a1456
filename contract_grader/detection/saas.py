"""Multi-tenant SaaS overlay detector."""

from __future__ import annotations

import re
from collections.abc import Callable

from contract_grader.detection.base import (
    MULTI_TENANT_SAAS,
    TENANT_HEADERS,
    Pattern,
    PatternDetector,
    all_header_names,
    all_scopes,
    clip,
    has_tenant_header,
    operations,
    search_paths,
)
from contract_grader.document import ApiDocument, collect_text

_SCOPE_PREFIXES = ("admin:", "write:", "read:", "delete:", "manage:", "view:", "edit:", "owner:")
_ADMIN = re.compile(r"/admin(/|$)", re.IGNORECASE)
_BILLING = re.compile(r"billing|subscription|invoice|plans?(/|$)|usage", re.IGNORECASE)
_AUDIT = re.compile(r"audit|activity", re.IGNORECASE)
_USERS = re.compile(r"/(users|members|roles|invitations|teams)(/|$)", re.IGNORECASE)
_API_KEYS = re.compile(r"api-?keys|/tokens(/|$)", re.IGNORECASE)
_WEBHOOKS = re.compile(r"webhook", re.IGNORECASE)
_SSO = re.compile(r"\b(sso|saml|oidc|openid)\b")
_RATE_HEADERS = ("ratelimit", "rate-limit", "retry-after")


def _tenant_headers(document: ApiDocument) -> str | None:
    found = sorted(all_header_names(document) & TENANT_HEADERS)
    if found:
        return f"tenant headers {', '.join(found)}"
    if any(has_tenant_header(document, operation) for operation in operations(document)):
        return "tenant header parameter references"
    return None


def _paths(
    pattern: re.Pattern[str], label: str, minimum: int = 1
) -> Callable[[ApiDocument], str | None]:
    def probe(document: ApiDocument) -> str | None:
        found = search_paths(document, pattern)
        return f"{label} {clip(found)}" if len(found) >= minimum else None

    return probe


def _rbac_scopes(document: ApiDocument) -> str | None:
    scoped = sorted(scope for scope in all_scopes(document) if scope.startswith(_SCOPE_PREFIXES))
    return f"role scopes {clip(scoped)}" if scoped else None


def _api_keys(document: ApiDocument) -> str | None:
    found = search_paths(document, _API_KEYS)
    if found:
        return f"key management {clip(found)}"
    schemes = document.components.security_schemes.values()
    if any(scheme.type == "apiKey" for scheme in schemes):
        return "api-key security scheme"
    return None


def _webhooks(document: ApiDocument) -> str | None:
    if search_paths(document, _WEBHOOKS) or any(True for _ in document.callback_operations()):
        return "webhook subscriptions"
    return None


def _rate_limiting(document: ApiDocument) -> str | None:
    for operation in operations(document):
        for response in operation.responses:
            for header in response.header_names:
                if any(marker in header.lower() for marker in _RATE_HEADERS):
                    return f"{operation.label} returns {header}"
    return None


def _sso(document: ApiDocument) -> str | None:
    match = _SSO.search(collect_text(document.raw))
    return f"single sign-on ({match.group(1)})" if match else None


def _data_isolation(document: ApiDocument) -> str | None:
    ops = operations(document)
    covered = sum(1 for operation in ops if has_tenant_header(document, operation))
    ratio = covered / len(ops)
    return f"{ratio:.0%} of operations carry a tenant header" if ratio > 0.7 else None


DETECTOR = PatternDetector(
    profile=MULTI_TENANT_SAAS,
    patterns=(
        Pattern("multi_tenant_headers", 1.0, _tenant_headers),
        Pattern("admin_endpoints", 0.85, _paths(_ADMIN, "admin endpoints")),
        Pattern("rbac_scopes", 0.9, _rbac_scopes),
        Pattern("subscription_billing", 0.8, _paths(_BILLING, "billing endpoints")),
        Pattern("audit_logging", 0.75, _paths(_AUDIT, "audit endpoints")),
        Pattern("user_management", 0.7, _paths(_USERS, "user management", minimum=2)),
        Pattern("api_keys", 0.65, _api_keys),
        Pattern("webhooks", 0.6, _webhooks),
        Pattern("rate_limiting", 0.7, _rate_limiting),
        Pattern("sso", 0.65, _sso),
        Pattern("data_isolation", 0.8, _data_isolation),
    ),
)
