"""Tenant-scoping headers and security scheme hygiene."""

from __future__ import annotations

from contract_grader.checkpoints import RuleId
from contract_grader.document import ApiDocument, SecurityScheme, pointer
from contract_grader.rules.base import CategoryTally, RuleResult

ORG_HEADER_PARAM = "OrganizationHeader"
BRANCH_HEADER_PARAM = "BranchHeader"


class TenancyEvaluator:
    """Require tenant header references on every operation and sane security schemes."""

    evaluator_id = "tenancy"
    category = "security"

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        for operation in document.operations():
            if not operation.has_parameter_ref(ORG_HEADER_PARAM):
                tally.violation(
                    RuleId.SEC_ORG_HDR,
                    f"{operation.label} does not reference the {ORG_HEADER_PARAM} parameter.",
                    operation.parameters_pointer,
                )
                tally.auto_fail(
                    f"SEC-ORG-HDR: {operation.path} ({operation.method.upper()}) "
                    "is missing the organization header"
                )
            if not operation.has_parameter_ref(BRANCH_HEADER_PARAM):
                tally.violation(
                    RuleId.SEC_BRANCH_HDR,
                    f"{operation.label} does not reference the {BRANCH_HEADER_PARAM} parameter.",
                    operation.parameters_pointer,
                )

        schemes = document.components.security_schemes
        if not any(_is_oauth2(name, scheme) for name, scheme in schemes.items()):
            tally.violation(
                RuleId.SEC_OAUTH2,
                "No OAuth2 security scheme is declared.",
                pointer("components", "securitySchemes"),
            )

        for name, scheme in schemes.items():
            location = pointer("components", "securitySchemes", name)
            if scheme.type == "apiKey" and scheme.location != "header":
                tally.violation(
                    RuleId.SEC_APIKEY,
                    f"API-key scheme '{name}' must be sent in a header, not {scheme.location!r}.",
                    location,
                )
            if _claims_bearer(name, scheme) and not _is_http_bearer(scheme):
                tally.violation(
                    RuleId.SEC_BEARER,
                    f"Bearer scheme '{name}' must declare type 'http' with scheme 'bearer'.",
                    location,
                )
        return tally.result()


def _is_oauth2(name: str, scheme: SecurityScheme) -> bool:
    return scheme.type == "oauth2" or name == "OAuth2"


def _claims_bearer(name: str, scheme: SecurityScheme) -> bool:
    return "bearer" in name.lower() or (scheme.scheme or "").lower() == "bearer"


def _is_http_bearer(scheme: SecurityScheme) -> bool:
    return scheme.type == "http" and (scheme.scheme or "").lower() == "bearer"
