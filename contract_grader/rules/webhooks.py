"""Webhook security checks."""

from __future__ import annotations

from contract_grader.checkpoints import RuleId
from contract_grader.document import ApiDocument, Operation
from contract_grader.rules.base import CategoryTally, RuleResult

SIGNATURE_HEADERS = frozenset(
    {"x-webhook-signature", "x-hub-signature", "x-hub-signature-256", "x-signature"}
)
EVENT_HEADERS = frozenset({"x-event-type", "x-webhook-event", "x-github-event"})
WEBHOOK_PATH_MARKERS = ("/webhook", "/hook", "/callback")


def webhook_operations(document: ApiDocument) -> list[Operation]:
    """Callback operations plus operations on webhook-looking paths."""
    found = list(document.callback_operations())
    for operation in document.operations():
        lowered = operation.path.lower()
        if any(marker in lowered for marker in WEBHOOK_PATH_MARKERS):
            found.append(operation)
    return found


class WebhooksEvaluator:
    """Signed, typed and asynchronously acknowledged webhooks; neutral when none exist."""

    evaluator_id = "webhooks"
    category = "webhooks"

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        for operation in webhook_operations(document):
            headers = document.header_names(operation)
            if not headers & SIGNATURE_HEADERS:
                tally.violation(
                    RuleId.WEBHOOK_SIGNATURE,
                    f"Webhook {operation.label} has no signature-verification header.",
                    operation.parameters_pointer,
                    severity="error",
                )
            if not headers & EVENT_HEADERS:
                tally.violation(
                    RuleId.WEBHOOK_EVENT_TYPE,
                    f"Webhook {operation.label} has no event-type header.",
                    operation.parameters_pointer,
                )
            if operation.response("202") is None:
                tally.violation(
                    RuleId.WEBHOOK_ASYNC,
                    f"Webhook {operation.label} does not declare a 202 acceptance response.",
                    f"{operation.pointer}/responses",
                )
        return tally.result()
