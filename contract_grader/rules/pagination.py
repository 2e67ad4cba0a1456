"""Key-set pagination discipline for list endpoints."""

from __future__ import annotations

import re

from contract_grader.checkpoints import RuleId
from contract_grader.document import ApiDocument, Operation
from contract_grader.rules.base import CategoryTally, RuleResult

KEYSET_PARAMS = ("AfterKey", "BeforeKey", "Limit")
SORT_PARAM = "Sort"
OFFSET_PARAM_NAMES = frozenset(
    {"offset", "page", "page_size", "pagesize", "pagenumber", "page_number", "per_page"}
)

_TRAILING_PLACEHOLDER = re.compile(r"\{[^}]+\}/?$")


def is_list_like(operation: Operation) -> bool:
    """A GET whose path does not end in a path-parameter placeholder."""
    return operation.method == "get" and not _TRAILING_PLACEHOLDER.search(operation.path)


class PaginationEvaluator:
    """Require key-set parameter references on list endpoints and forbid offset paging."""

    evaluator_id = "pagination"
    category = "pagination"

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        for operation in document.operations():
            if not is_list_like(operation):
                continue

            missing = [name for name in KEYSET_PARAMS if not operation.has_parameter_ref(name)]
            if missing:
                tally.violation(
                    RuleId.PAG_KEYSET,
                    f"{operation.label} is missing key-set parameter references: "
                    + ", ".join(missing)
                    + ".",
                    operation.parameters_pointer,
                )
                tally.auto_fail(
                    f"PAG-KEYSET: {operation.path} (GET) lacks key-set pagination parameters"
                )

            for parameter in operation.all_parameters():
                resolved = document.resolve_parameter(parameter)
                if resolved is None or resolved.name.lower() not in OFFSET_PARAM_NAMES:
                    continue
                if resolved.location not in {"query", ""}:
                    continue
                tally.violation(
                    RuleId.PAG_NO_OFFSET,
                    f"{operation.label} accepts offset/page parameter '{resolved.name}'.",
                    parameter.pointer,
                )
                tally.auto_fail(
                    f"PAG-NO-OFFSET: {operation.path} (GET) uses offset/page pagination"
                )

            if not operation.has_parameter_ref(SORT_PARAM):
                tally.violation(
                    RuleId.PAG_SORT,
                    f"{operation.label} does not reference the {SORT_PARAM} parameter.",
                    operation.parameters_pointer,
                )
        return tally.result()
