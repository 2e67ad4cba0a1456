"""Contract builders shared by the test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

ITEMS = "/api/v2/items"
ITEM = "/api/v2/items/{itemId}"

_PROBLEM = {
    "content": {
        "application/problem+json": {"schema": {"$ref": "#/components/schemas/Problem"}}
    }
}


RATE_LIMIT_HEADERS = ("X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")


def param_ref(name: str) -> dict[str, str]:
    return {"$ref": f"#/components/parameters/{name}"}


def tenant_refs() -> list[dict[str, str]]:
    return [param_ref("OrganizationHeader"), param_ref("BranchHeader")]


def response_headers(*names: str) -> dict[str, dict[str, str]]:
    return {name: {"$ref": f"#/components/headers/{name}"} for name in names}


def rate_limit_headers() -> dict[str, dict[str, str]]:
    return response_headers(*RATE_LIMIT_HEADERS)


def cacheable_headers() -> dict[str, dict[str, str]]:
    return response_headers("ETag", *RATE_LIMIT_HEADERS)


def compliant_document() -> dict[str, Any]:
    """A small items API that satisfies every checkpoint."""
    return {
        "openapi": "3.0.3",
        "info": {"title": "Items API", "version": "1.0.0", "x-org-owner": "platform"},
        "paths": {
            ITEMS: {
                "get": {
                    "operationId": "listItems",
                    "x-deprecated": False,
                    "parameters": tenant_refs()
                    + [
                        param_ref("AfterKey"),
                        param_ref("BeforeKey"),
                        param_ref("Limit"),
                        param_ref("Sort"),
                    ],
                    "responses": {
                        "200": {
                            "description": "Items",
                            "headers": cacheable_headers(),
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "array",
                                        "items": {"$ref": "#/components/schemas/Item"},
                                    }
                                }
                            },
                        },
                        "304": {"description": "Not modified"},
                        "400": {"description": "Bad request", **_PROBLEM},
                    },
                },
                "post": {
                    "operationId": "createItem",
                    "parameters": tenant_refs(),
                    "requestBody": {
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/Item"}}
                        }
                    },
                    "responses": {
                        "201": {
                            "description": "Created",
                            "headers": rate_limit_headers(),
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Item"}
                                }
                            },
                        },
                        "400": {"description": "Bad request", **_PROBLEM},
                    },
                },
            },
            ITEM: {
                "get": {
                    "operationId": "getItem",
                    "parameters": tenant_refs() + [_item_id()],
                    "responses": {
                        "200": {
                            "description": "Item",
                            "headers": cacheable_headers(),
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Item"}
                                }
                            },
                        },
                        "304": {"description": "Not modified"},
                        "404": {"description": "Not found", **_PROBLEM},
                    },
                },
                "delete": {
                    "operationId": "deleteItem",
                    "parameters": tenant_refs() + [_item_id()],
                    "responses": {
                        "204": {"description": "Deleted", "headers": rate_limit_headers()},
                        "404": {"description": "Not found", **_PROBLEM},
                    },
                },
            },
        },
        "components": {
            "parameters": {
                "OrganizationHeader": _header("X-Organization-Id"),
                "BranchHeader": _header("X-Branch-Id"),
                "AfterKey": _query("after_key", "string"),
                "BeforeKey": _query("before_key", "string"),
                "Limit": _query("limit", "integer"),
                "Sort": _query("sort", "string"),
            },
            "headers": {
                "ETag": {"schema": {"type": "string"}},
                **{name: {"schema": {"type": "integer"}} for name in RATE_LIMIT_HEADERS},
            },
            "securitySchemes": {
                "OAuth2": {
                    "type": "oauth2",
                    "flows": {
                        "clientCredentials": {
                            "tokenUrl": "https://auth.example.com/oauth/token",
                            "scopes": {"read:items": "Read items"},
                        }
                    },
                }
            },
            "schemas": {
                "Item": {"type": "object", "properties": {"id": {"type": "string"}}},
                "Problem": {
                    "type": "object",
                    "properties": {"title": {"type": "string"}, "status": {"type": "integer"}},
                },
            },
        },
    }


def list_without_keyset() -> dict[str, Any]:
    """The compliant document with the list endpoint's key-set references removed."""
    document = compliant_document()
    document["paths"][ITEMS]["get"]["parameters"] = tenant_refs() + [param_ref("Sort")]
    return document


def without_org_header() -> dict[str, Any]:
    document = compliant_document()
    parameters = document["paths"][ITEMS]["get"]["parameters"]
    document["paths"][ITEMS]["get"]["parameters"] = [
        item for item in parameters if item != param_ref("OrganizationHeader")
    ]
    return document


def with_webhook() -> dict[str, Any]:
    """Adds an unsigned webhook receiver under the API prefix."""
    document = compliant_document()
    document["paths"]["/api/v2/webhooks/orders"] = {
        "post": {
            "operationId": "receiveOrderEvent",
            "parameters": tenant_refs(),
            "responses": {
                "200": {"description": "Received", "headers": rate_limit_headers()}
            },
        }
    }
    return document


def minimal_document() -> dict[str, Any]:
    return {"openapi": "3.0.3", "info": {"title": "Empty", "version": "1"}, "paths": {}}


def query_language_document() -> dict[str, Any]:
    return {
        "openapi": "3.0.3",
        "info": {
            "title": "Graph API",
            "version": "1",
            "description": "Supports mutation and subscription operations plus __schema lookups.",
        },
        "paths": {
            "/graphql": {
                "post": {
                    "operationId": "query",
                    "requestBody": {
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {
                                        "query": {"type": "string"},
                                        "variables": {"type": "object"},
                                        "operationName": {"type": "string"},
                                    },
                                }
                            }
                        }
                    },
                    "responses": {
                        "200": {
                            "description": "Result",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "object",
                                        "properties": {
                                            "data": {"type": "object"},
                                            "errors": {"type": "array"},
                                        },
                                    }
                                }
                            },
                        }
                    },
                }
            }
        },
    }


def to_yaml(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def write_contract(directory: Path, document: dict[str, Any], name: str = "openapi.yaml") -> Path:
    path = directory / name
    path.write_text(to_yaml(document), encoding="utf-8")
    return path


def _header(name: str) -> dict[str, Any]:
    return {"name": name, "in": "header", "required": True, "schema": {"type": "string"}}


def _query(name: str, kind: str) -> dict[str, Any]:
    return {"name": name, "in": "query", "schema": {"type": kind}}


def _item_id() -> dict[str, Any]:
    return {"name": "itemId", "in": "path", "required": True, "schema": {"type": "string"}}
