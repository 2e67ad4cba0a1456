"""Typed, read-only view over a parsed OpenAPI document.

``build_document`` accepts whatever the parser produced and never raises:
sections with unexpected shapes are treated as absent. Structural locations
are RFC 6901 JSON pointers into the raw tree.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
_MAX_SCHEMA_DEPTH = 8
_MAX_REF_HOPS = 16
NAME_MAPS = frozenset(
    {
        "callbacks",
        "encoding",
        "examples",
        "headers",
        "links",
        "mapping",
        "parameters",
        "properties",
        "requestBodies",
        "schemas",
        "scopes",
        "securitySchemes",
        "variables",
    }
)


def escape_token(token: object) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def unescape_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def pointer(*tokens: object) -> str:
    """Join raw tokens into a JSON pointer."""
    return "".join("/" + escape_token(token) for token in tokens)


def split_pointer(value: str) -> list[str]:
    """Split a JSON pointer into unescaped tokens."""
    if value == "":
        return []
    if not value.startswith("/"):
        raise ValueError(f"Invalid JSON pointer: {value!r}")
    return [unescape_token(part) for part in value[1:].split("/")]


def ref_name(ref: str) -> str:
    """Final segment of a ``$ref`` string."""
    return ref.rsplit("/", 1)[-1]


@dataclass(frozen=True, slots=True)
class Schema:
    type: str | None = None
    properties: tuple[str, ...] = ()
    items: Schema | None = None
    ref: str | None = None
    all_of: tuple[Schema, ...] = ()

    def property_names(self) -> set[str]:
        names = set(self.properties)
        for part in self.all_of:
            names.update(part.property_names())
        return names


@dataclass(frozen=True, slots=True)
class MediaType:
    name: str
    schema: Schema | None


@dataclass(frozen=True, slots=True)
class RequestBody:
    content: tuple[MediaType, ...] = ()
    ref: str | None = None


@dataclass(frozen=True, slots=True)
class Response:
    status: str
    pointer: str
    description: str = ""
    content: tuple[MediaType, ...] = ()
    header_names: tuple[str, ...] = ()
    ref: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status.startswith("2") or self.status.upper() == "2XX"

    @property
    def is_error(self) -> bool:
        return self.status[:1] in {"4", "5"}

    def first_schema(self) -> Schema | None:
        for item in self.content:
            if item.schema is not None:
                return item.schema
        return None


@dataclass(frozen=True, slots=True)
class ParameterRef:
    """A ``$ref`` to a parameter defined elsewhere."""

    ref: str
    pointer: str

    @property
    def name(self) -> str:
        return ref_name(self.ref)


@dataclass(frozen=True, slots=True)
class InlineParameter:
    name: str
    location: str
    pointer: str
    required: bool = False
    schema: Schema | None = None


Parameter = ParameterRef | InlineParameter


@dataclass(frozen=True, slots=True)
class SecurityScheme:
    name: str
    type: str | None
    location: str | None = None
    scheme: str | None = None
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Callback:
    name: str
    operations: tuple[Operation, ...] = ()


@dataclass(frozen=True, slots=True)
class Operation:
    path: str
    method: str
    pointer: str
    operation_id: str = ""
    summary: str = ""
    description: str = ""
    parameters: tuple[Parameter, ...] = ()
    path_parameters: tuple[Parameter, ...] = ()
    request_body: RequestBody | None = None
    responses: tuple[Response, ...] = ()
    security_scopes: tuple[str, ...] = ()
    callbacks: tuple[Callback, ...] = ()

    @property
    def label(self) -> str:
        return f"{self.method.upper()} {self.path}"

    @property
    def parameters_pointer(self) -> str:
        return f"{self.pointer}/parameters"

    def all_parameters(self) -> tuple[Parameter, ...]:
        return self.path_parameters + self.parameters

    def has_parameter_ref(self, name: str) -> bool:
        """True when a ``$ref`` parameter ending in ``name`` is declared."""
        return any(
            isinstance(item, ParameterRef) and item.name == name for item in self.all_parameters()
        )

    def response(self, status: str) -> Response | None:
        for item in self.responses:
            if item.status == status:
                return item
        return None

    def status_codes(self) -> tuple[str, ...]:
        return tuple(item.status for item in self.responses)


@dataclass(frozen=True, slots=True)
class PathItem:
    path: str
    pointer: str
    operations: tuple[Operation, ...] = ()
    parameters: tuple[Parameter, ...] = ()


@dataclass(frozen=True, slots=True)
class Components:
    schemas: Mapping[str, Schema] = field(default_factory=dict)
    parameters: Mapping[str, Parameter] = field(default_factory=dict)
    responses: Mapping[str, Response] = field(default_factory=dict)
    security_schemes: Mapping[str, SecurityScheme] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ApiDocument:
    """Typed document tree plus the raw mapping it was built from."""

    openapi: str | None = None
    title: str | None = None
    version: str | None = None
    paths: tuple[PathItem, ...] = ()
    components: Components = field(default_factory=Components)
    raw: Mapping[str, Any] = field(default_factory=dict)

    def operations(self) -> Iterator[Operation]:
        for path_item in self.paths:
            yield from path_item.operations

    def callback_operations(self) -> Iterator[Operation]:
        for operation in self.operations():
            for callback in operation.callbacks:
                yield from callback.operations

    def resolve_schema(self, schema: Schema | None) -> Schema | None:
        """Follow local ``#/components/schemas`` references."""
        current = schema
        hops = 0
        while current is not None and current.ref is not None:
            hops += 1
            if hops > _MAX_REF_HOPS or not current.ref.startswith("#/components/schemas/"):
                return None
            current = self.components.schemas.get(ref_name(current.ref))
        return current

    def resolve_parameter(self, parameter: Parameter) -> InlineParameter | None:
        current: Parameter | None = parameter
        hops = 0
        while isinstance(current, ParameterRef):
            hops += 1
            if hops > _MAX_REF_HOPS or not current.ref.startswith("#/components/parameters/"):
                return None
            current = self.components.parameters.get(current.name)
        return current

    def resolve_response(self, response: Response) -> Response:
        if response.ref is None or not response.ref.startswith("#/components/responses/"):
            return response
        target = self.components.responses.get(ref_name(response.ref))
        if target is None or target.ref is not None:
            return response
        return target

    def header_names(self, operation: Operation) -> set[str]:
        """Lower-cased names of header parameters, resolving references."""
        names: set[str] = set()
        for item in operation.all_parameters():
            resolved = self.resolve_parameter(item)
            if resolved is not None and resolved.location == "header":
                names.add(resolved.name.lower())
        return names

    def component_parameter_header_names(self) -> set[str]:
        names: set[str] = set()
        for item in self.components.parameters.values():
            if isinstance(item, InlineParameter) and item.location == "header":
                names.add(item.name.lower())
        return names


def build_document(raw: Any) -> ApiDocument:
    """Build an :class:`ApiDocument` from a parsed mapping."""
    root = _mapping(raw)
    info = _mapping(root.get("info"))
    components = _build_components(_mapping(root.get("components")))
    paths: list[PathItem] = []
    for path, path_raw in _mapping(root.get("paths")).items():
        paths.append(_build_path_item(path, _mapping(path_raw), pointer("paths", path)))

    return ApiDocument(
        openapi=_optional_str(root.get("openapi")),
        title=_optional_str(info.get("title")),
        version=_optional_str(info.get("version")),
        paths=tuple(paths),
        components=components,
        raw=root,
    )


def iter_extensions(raw: Any) -> Iterator[tuple[str, str]]:
    """Yield ``(key, pointer)`` for every ``x-`` key in the tree.

    Keys of user-named maps such as ``headers`` or ``properties`` are names,
    not extensions, and are skipped.
    """
    seen: set[int] = set()
    stack: list[tuple[Any, str, bool]] = [(raw, "", False)]
    while stack:
        node, location, named = stack.pop()
        if not isinstance(node, (dict, list)) or id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            items = [(str(key), value) for key, value in node.items()]
            for key, value in reversed(items):
                child = f"{location}/{escape_token(key)}"
                stack.append((value, child, not named and key in NAME_MAPS))
            if named:
                continue
            for key, _value in items:
                if key.startswith("x-"):
                    yield (key, f"{location}/{escape_token(key)}")
        else:
            for index in range(len(node) - 1, -1, -1):
                stack.append((node[index], f"{location}/{index}", False))


def collect_text(raw: Any) -> str:
    """Lower-cased keys and string scalars of the tree, space separated."""
    parts: list[str] = []
    seen: set[int] = set()
    stack: list[Any] = [raw]
    while stack:
        node = stack.pop()
        if isinstance(node, str):
            parts.append(node.lower())
            continue
        if not isinstance(node, (dict, list)) or id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            for key, value in node.items():
                parts.append(str(key).lower())
                stack.append(value)
        else:
            stack.extend(node)
    return " ".join(parts)


def iter_refs(raw: Any) -> Iterator[tuple[str, str]]:
    """Yield ``(ref, pointer)`` for every string ``$ref`` in the tree."""
    seen: set[int] = set()
    stack: list[tuple[Any, str]] = [(raw, "")]
    while stack:
        node, location = stack.pop()
        if not isinstance(node, (dict, list)) or id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str):
                yield (ref, f"{location}/$ref")
            items = [(str(key), value) for key, value in node.items()]
            for key, value in reversed(items):
                stack.append((value, f"{location}/{escape_token(key)}"))
        else:
            for index in range(len(node) - 1, -1, -1):
                stack.append((node[index], f"{location}/{index}"))


def resolve_pointer(raw: Any, value: str) -> Any:
    """Return the node at a JSON pointer; raises ``KeyError`` when absent."""
    node = raw
    for token in split_pointer(value):
        if isinstance(node, dict):
            if token in node:
                node = node[token]
            elif token.isdigit() and int(token) in node:
                node = node[int(token)]
            else:
                raise KeyError(value)
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            raise KeyError(value)
    return node


def _build_components(raw: dict[str, Any]) -> Components:
    schemas = {
        str(name): _build_schema(value, depth=0)
        for name, value in _mapping(raw.get("schemas")).items()
    }
    parameters: dict[str, Parameter] = {}
    for name, value in _mapping(raw.get("parameters")).items():
        built = _build_parameter(value, pointer("components", "parameters", name))
        if built is not None:
            parameters[str(name)] = built
    responses = {
        str(status): _build_response(
            str(status), _mapping(value), pointer("components", "responses", status)
        )
        for status, value in _mapping(raw.get("responses")).items()
    }
    security_schemes = {
        str(name): _build_security_scheme(str(name), _mapping(value))
        for name, value in _mapping(raw.get("securitySchemes")).items()
    }
    return Components(
        schemas=schemas,
        parameters=parameters,
        responses=responses,
        security_schemes=security_schemes,
    )


def _build_path_item(path: Any, raw: dict[str, Any], location: str) -> PathItem:
    path_text = str(path)
    shared = _build_parameter_list(raw.get("parameters"), f"{location}/parameters")
    operations: list[Operation] = []
    for method in HTTP_METHODS:
        op_raw = raw.get(method)
        if not isinstance(op_raw, dict):
            continue
        operations.append(
            _build_operation(path_text, method, op_raw, f"{location}/{method}", shared)
        )
    return PathItem(
        path=path_text,
        pointer=location,
        operations=tuple(operations),
        parameters=shared,
    )


def _build_operation(
    path: str,
    method: str,
    raw: dict[str, Any],
    location: str,
    shared: tuple[Parameter, ...],
) -> Operation:
    responses = tuple(
        _build_response(
            str(status), _mapping(value), f"{location}/responses/{escape_token(status)}"
        )
        for status, value in _mapping(raw.get("responses")).items()
    )
    callbacks: list[Callback] = []
    for name, callback_raw in _mapping(raw.get("callbacks")).items():
        callback_ops: list[Operation] = []
        for expression, item_raw in _mapping(callback_raw).items():
            item_location = f"{location}/callbacks/{escape_token(name)}/{escape_token(expression)}"
            callback_ops.extend(
                _build_path_item(expression, _mapping(item_raw), item_location).operations
            )
        callbacks.append(Callback(name=str(name), operations=tuple(callback_ops)))

    return Operation(
        path=path,
        method=method,
        pointer=location,
        operation_id=_optional_str(raw.get("operationId")) or "",
        summary=_optional_str(raw.get("summary")) or "",
        description=_optional_str(raw.get("description")) or "",
        parameters=_build_parameter_list(raw.get("parameters"), f"{location}/parameters"),
        path_parameters=shared,
        request_body=_build_request_body(raw.get("requestBody")),
        responses=responses,
        security_scopes=_security_scopes(raw.get("security")),
        callbacks=tuple(callbacks),
    )


def _build_parameter_list(raw: Any, location: str) -> tuple[Parameter, ...]:
    if not isinstance(raw, list):
        return ()
    built: list[Parameter] = []
    for index, item in enumerate(raw):
        parameter = _build_parameter(item, f"{location}/{index}")
        if parameter is not None:
            built.append(parameter)
    return tuple(built)


def _build_parameter(raw: Any, location: str) -> Parameter | None:
    if not isinstance(raw, dict):
        return None
    ref = raw.get("$ref")
    if isinstance(ref, str):
        return ParameterRef(ref=ref, pointer=location)
    name = raw.get("name")
    if not isinstance(name, str):
        return None
    return InlineParameter(
        name=name,
        location=str(raw.get("in", "")),
        pointer=location,
        required=raw.get("required") is True,
        schema=_build_schema(raw.get("schema"), depth=0) if "schema" in raw else None,
    )


def _build_request_body(raw: Any) -> RequestBody | None:
    if not isinstance(raw, dict):
        return None
    ref = raw.get("$ref")
    return RequestBody(
        content=_build_content(raw.get("content")),
        ref=ref if isinstance(ref, str) else None,
    )


def _build_response(status: str, raw: dict[str, Any], location: str) -> Response:
    ref = raw.get("$ref")
    return Response(
        status=status,
        pointer=location,
        description=_optional_str(raw.get("description")) or "",
        content=_build_content(raw.get("content")),
        header_names=tuple(str(name) for name in _mapping(raw.get("headers"))),
        ref=ref if isinstance(ref, str) else None,
    )


def _build_content(raw: Any) -> tuple[MediaType, ...]:
    media: list[MediaType] = []
    for name, value in _mapping(raw).items():
        value_map = _mapping(value)
        schema = _build_schema(value_map["schema"], depth=0) if "schema" in value_map else None
        media.append(MediaType(name=str(name), schema=schema))
    return tuple(media)


def _build_schema(raw: Any, *, depth: int) -> Schema:
    if not isinstance(raw, dict) or depth > _MAX_SCHEMA_DEPTH:
        return Schema()
    ref = raw.get("$ref")
    items = raw.get("items")
    all_of = raw.get("allOf")
    return Schema(
        type=_optional_str(raw.get("type")),
        properties=tuple(str(name) for name in _mapping(raw.get("properties"))),
        items=_build_schema(items, depth=depth + 1) if isinstance(items, dict) else None,
        ref=ref if isinstance(ref, str) else None,
        all_of=tuple(
            _build_schema(part, depth=depth + 1)
            for part in (all_of if isinstance(all_of, list) else [])
        ),
    )


def _build_security_scheme(name: str, raw: dict[str, Any]) -> SecurityScheme:
    scopes: list[str] = []
    for flow in _mapping(raw.get("flows")).values():
        scopes.extend(str(scope) for scope in _mapping(_mapping(flow).get("scopes")))
    return SecurityScheme(
        name=name,
        type=_optional_str(raw.get("type")),
        location=_optional_str(raw.get("in")),
        scheme=_optional_str(raw.get("scheme")),
        scopes=tuple(scopes),
    )


def _security_scopes(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    scopes: list[str] = []
    for requirement in raw:
        for values in _mapping(requirement).values():
            if isinstance(values, list):
                scopes.extend(str(value) for value in values)
    return tuple(scopes)


def _mapping(value: Any) -> dict[Any, Any]:
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)
