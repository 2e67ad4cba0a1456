"""HTTP method and status-code semantics."""

from __future__ import annotations

from contract_grader.checkpoints import RuleId
from contract_grader.document import ApiDocument, Operation, Response
from contract_grader.rules.base import CategoryTally, RuleResult

PROBLEM_JSON = "application/problem+json"
CACHEABLE_METHODS = ("get", "head")
ETAG_HEADER = "ETag"
LOCATION_HEADER = "Location"
RATE_LIMIT_HEADERS = ("X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")
RATE_LIMITED_STATUSES = frozenset({"200", "201", "202", "204", "429"})


def _missing_headers(response: Response, wanted: tuple[str, ...]) -> list[str]:
    present = {name.lower() for name in response.header_names}
    return [name for name in wanted if name.lower() not in present]


class HttpSemanticsEvaluator:
    """Check verbs, status codes and response shapes against resource conventions."""

    evaluator_id = "http_semantics"
    category = "http"

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        for operation in document.operations():
            self._check_statuses(operation, tally)
            self._check_error_responses(document, operation, tally)
            self._check_headers(document, operation, tally)
            if operation.method == "get":
                self._check_get(document, operation, tally)
        return tally.result()

    def _check_statuses(self, operation: Operation, tally: CategoryTally) -> None:
        statuses = set(operation.status_codes())
        has_success = any(response.is_success for response in operation.responses)
        if not has_success:
            tally.violation(
                RuleId.HTTP_SUCCESS_REQUIRED,
                f"{operation.label} declares no 2xx response.",
                f"{operation.pointer}/responses",
            )
            tally.auto_fail(
                f"HTTP-SUCCESS-REQUIRED: {operation.path} ({operation.method.upper()}) "
                "declares no 2xx response"
            )

        if operation.method == "post" and "200" in statuses and "201" not in statuses:
            tally.violation(
                RuleId.HTTP_POST_STATUS,
                f"{operation.label} returns 200; resource creation should return 201.",
                f"{operation.pointer}/responses/200",
            )

        if operation.method == "delete" and has_success and not statuses & {"202", "204"}:
            tally.violation(
                RuleId.HTTP_DELETE_STATUS,
                f"{operation.label} should return 204 or 202.",
                f"{operation.pointer}/responses",
            )

    def _check_error_responses(
        self,
        document: ApiDocument,
        operation: Operation,
        tally: CategoryTally,
    ) -> None:
        for response in operation.responses:
            if not response.is_error:
                continue
            resolved = document.resolve_response(response)
            if resolved.ref is not None:
                # external reference, shape unknown
                continue
            if not resolved.content:
                tally.violation(
                    RuleId.HTTP_ERROR_SCHEMA,
                    f"{operation.label} response {response.status} declares no content schema.",
                    response.pointer,
                )
            elif not any(media.name == PROBLEM_JSON for media in resolved.content):
                tally.violation(
                    RuleId.ERR_PROBLEMJSON,
                    f"{operation.label} response {response.status} should use {PROBLEM_JSON}.",
                    f"{response.pointer}/content",
                )

    def _check_headers(
        self,
        document: ApiDocument,
        operation: Operation,
        tally: CategoryTally,
    ) -> None:
        for response in operation.responses:
            resolved = document.resolve_response(response)
            if resolved.ref is not None:
                continue
            headers = f"{resolved.pointer}/headers"
            if operation.method in CACHEABLE_METHODS and response.is_success:
                if _missing_headers(resolved, (ETAG_HEADER,)):
                    tally.violation(
                        RuleId.HTTP_ETAG,
                        f"{operation.label} response {response.status} declares no ETag header.",
                        headers,
                    )
            if response.status in RATE_LIMITED_STATUSES:
                missing = _missing_headers(resolved, RATE_LIMIT_HEADERS)
                if missing:
                    names = ", ".join(missing)
                    tally.violation(
                        RuleId.HTTP_RATE_LIMIT,
                        f"{operation.label} response {response.status} is missing {names}.",
                        headers,
                    )
            if response.status == "202" and _missing_headers(resolved, (LOCATION_HEADER,)):
                tally.violation(
                    RuleId.HTTP_202_LOCATION,
                    f"{operation.label} returns 202 without a Location header for the job status.",
                    headers,
                    severity="error",
                )

    def _check_get(self, document: ApiDocument, operation: Operation, tally: CategoryTally) -> None:
        if operation.request_body is not None:
            tally.violation(
                RuleId.HTTP_GET_BODY,
                f"{operation.label} must not declare a request body.",
                f"{operation.pointer}/requestBody",
                severity="error",
            )

        if operation.response("304") is None:
            tally.violation(
                RuleId.HTTP_304,
                f"{operation.label} declares no 304 for conditional requests.",
                f"{operation.pointer}/responses",
            )

        identified = "{" in operation.path
        if identified and operation.response("404") is None:
            tally.violation(
                RuleId.HTTP_404_MISSING,
                f"{operation.label} addresses a single resource but declares no 404.",
                f"{operation.pointer}/responses",
            )

        ok = operation.response("200")
        if ok is None:
            return
        schema = document.resolve_schema(ok.first_schema())
        if schema is None or schema.type is None:
            return
        if not identified and operation.path.rstrip("/").endswith("s") and schema.type != "array":
            tally.violation(
                RuleId.HTTP_COLLECTION_SCHEMA,
                f"{operation.label} is a collection but returns a '{schema.type}' schema.",
                f"{ok.pointer}/content",
            )
        if operation.path.rstrip("/").endswith("}") and schema.type == "array":
            tally.violation(
                RuleId.HTTP_RESOURCE_SCHEMA,
                f"{operation.label} addresses a single resource but returns an array.",
                f"{ok.pointer}/content",
            )
