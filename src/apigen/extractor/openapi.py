"""OpenAPI / Swagger document extractor.

Reads OpenAPI 3.x and Swagger 2.0 documents (YAML or JSON, local file or
URL) into a Project. References are inlined first; when that fails the
document is bundled instead and whatever stays unresolved is carried as
`$ref` stubs.
"""

import re
from pathlib import Path
from typing import Any

from apigen.errors import RefResolutionError, SpecLoadError

from .base import (
    ApiInfo,
    Auth,
    AuthType,
    Endpoint,
    ExtractResult,
    HttpMethod,
    Parameter,
    ParameterLocation,
    Project,
    ProjectType,
    RequestBody,
    Response,
    Schema,
    SchemaType,
)
from .helpers import default_response, group_endpoints, reconcile_path_params
from .refs import Loader, bundle, dereference, is_url, load_document, resolve_pointer
from .source import BaseExtractor

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "options", "head")
PREFERRED_CONTENT_TYPE = "application/json"
DEFAULT_GROUP = "default"

_LOCATIONS = {loc.value: loc for loc in ParameterLocation}
_TYPES = {t.value: t for t in SchemaType}
_SERVER_VAR = re.compile(r"\{(\w+)\}")


class OpenApiExtractor(BaseExtractor):
    project_type = ProjectType.OPENAPI
    name = "openapi"

    def __init__(self, config=None, logger=None, loader: Loader = load_document):
        super().__init__(config, logger)
        self.loader = loader

    def extract(self, source: str | Path) -> ExtractResult:
        location = str(source) if is_url(str(source)) else str(Path(source).resolve())
        try:
            raw = self.loader(location)
        except SpecLoadError as e:
            return ExtractResult.failure([str(e)])
        if not isinstance(raw, dict) or not ("openapi" in raw or "swagger" in raw):
            return ExtractResult.failure([f"{source} is not an OpenAPI or Swagger document (no 'openapi'/'swagger' key)"])

        warnings = []
        try:
            document, origins = dereference(raw, location, self.loader)
        except (RefResolutionError, RecursionError) as e:
            self.logger.warning("dereference_failed", source=location, error=str(e))
            try:
                document, unresolved = bundle(raw, location, self.loader)
            except (SpecLoadError, RefResolutionError, RecursionError) as bundle_error:
                return ExtractResult.failure([
                    f"Failed to dereference OpenAPI document: {e}",
                    f"Failed to bundle OpenAPI document: {bundle_error}",
                ])
            origins = {}
            warnings.append(f"Could not fully dereference document ({e}); fell back to bundling")
            warnings.extend(f"Unresolved $ref: {ref}" for ref in unresolved)

        try:
            project = self._build_project(document, origins, location)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            return ExtractResult.failure([f"Failed to parse OpenAPI document: {e}"], warnings)

        self.logger.info("extracted", source=location, endpoints=project.endpoint_count)
        return ExtractResult.ok(project, files_processed=1, warnings=warnings)

    def _build_project(self, doc: dict, origins: dict[int, str], location: str) -> Project:
        converter = SchemaConverter(doc, origins)
        swagger2 = "swagger" in doc

        pairs = []
        for path, path_item in (doc.get("paths") or {}).items():
            if not isinstance(path_item, dict):
                continue
            shared = path_item.get("parameters") or []
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, dict):
                    continue
                endpoint = self._endpoint(doc, converter, path, method, operation, shared, path_item, swagger2)
                group = endpoint.tags[0] if endpoint.tags else DEFAULT_GROUP
                pairs.append((group, endpoint))

        declared = [(t["name"], t.get("description")) for t in doc.get("tags") or [] if isinstance(t, dict) and "name" in t]
        info = _info(doc)
        return self.create_project(
            info,
            group_endpoints(pairs, declared),
            location,
            auth=_auth(doc),
            base_url=_base_url(doc),
        )

    def _endpoint(self, doc, converter, path, method, operation, shared, path_item, swagger2) -> Endpoint:
        params, body_param, form_params = _merge_parameters(shared, operation.get("parameters") or [])
        parameters = [p for p in (_parameter(raw, converter) for raw in params) if p is not None]

        if swagger2:
            consumes = operation.get("consumes") or doc.get("consumes") or [PREFERRED_CONTENT_TYPE]
            request_body = _swagger2_body(body_param, form_params, consumes, converter)
            produces = operation.get("produces") or doc.get("produces") or [PREFERRED_CONTENT_TYPE]
            responses = _responses(operation.get("responses") or {}, converter, produces)
        else:
            request_body = _request_body(operation.get("requestBody"), converter)
            responses = _responses(operation.get("responses") or {}, converter)

        return Endpoint(
            method=HttpMethod(method.upper()),
            path=path,
            summary=operation.get("summary") or path_item.get("summary") or "",
            description=operation.get("description") or path_item.get("description"),
            operation_id=operation.get("operationId"),
            tags=[str(t) for t in operation.get("tags") or []],
            parameters=reconcile_path_params(path, parameters),
            request_body=request_body,
            responses=responses or [default_response(200)],
            deprecated=bool(operation.get("deprecated", False)),
        )


# -- schemas --------------------------------------------------------------


class SchemaConverter:
    """Converts (possibly cyclic) schema dicts into Schema models.

    A node met again while it is still being converted becomes a `$ref`
    stub; finished nodes are reused, so the resulting Schema graph is acyclic.
    """

    def __init__(self, document: dict, origins: dict[int, str] | None = None):
        self.document = document
        self.origins = origins or {}
        self._done: dict[int, Schema] = {}
        self._active: set[int] = set()

    def convert(self, node: Any) -> Schema:
        if not isinstance(node, dict):
            return Schema()
        ref = node.get("$ref")
        if isinstance(ref, str):
            if not ref.startswith("#"):
                return Schema(ref=ref)
            try:
                target = resolve_pointer(self.document, ref[1:], ref)
            except RefResolutionError:
                return Schema(ref=ref)
            if id(target) in self._active:
                return Schema(type=_schema_type(target), ref=ref)
            return self.convert(target)

        key = id(node)
        if key in self._done:
            return self._done[key]
        if key in self._active:
            return Schema(type=_schema_type(node), ref=self.origins.get(key, "#/circular"))
        self._active.add(key)
        try:
            schema = self._build(node)
        finally:
            self._active.discard(key)
        self._done[key] = schema
        return schema

    def _build(self, node: dict) -> Schema:
        type_, nullable = _type_and_nullable(node)
        if type_ is None and "properties" in node:
            type_ = SchemaType.OBJECT
        elif type_ is None and "items" in node:
            type_ = SchemaType.ARRAY

        additional = node.get("additionalProperties")
        if isinstance(additional, dict):
            additional = self.convert(additional)
        elif not isinstance(additional, bool):
            additional = None

        fmt = node.get("format")
        if node.get("type") == "file":
            fmt = "binary"

        return Schema(
            type=type_,
            format=fmt,
            description=node.get("description"),
            properties={k: self.convert(v) for k, v in node["properties"].items()} if isinstance(node.get("properties"), dict) else None,
            required=list(node["required"]) if isinstance(node.get("required"), list) else None,
            items=self.convert(node["items"]) if isinstance(node.get("items"), dict) else None,
            enum=list(node["enum"]) if isinstance(node.get("enum"), list) else None,
            example=node.get("example"),
            default=node.get("default"),
            minimum=node.get("minimum"),
            maximum=node.get("maximum"),
            min_length=node.get("minLength"),
            max_length=node.get("maxLength"),
            pattern=node.get("pattern"),
            nullable=nullable,
            additional_properties=additional,
            one_of=self._list(node.get("oneOf")),
            any_of=self._list(node.get("anyOf")),
            all_of=self._list(node.get("allOf")),
        )

    def _list(self, nodes: Any) -> list[Schema] | None:
        if not isinstance(nodes, list):
            return None
        return [self.convert(n) for n in nodes]


def _type_and_nullable(node: dict) -> tuple[SchemaType | None, bool]:
    raw = node.get("type")
    nullable = bool(node.get("nullable", False) or node.get("x-nullable", False))
    if isinstance(raw, list):  # OpenAPI 3.1: type: [string, "null"]
        nullable = nullable or "null" in raw
        raw = next((t for t in raw if t != "null"), "null")
    if raw == "file":
        return SchemaType.STRING, nullable
    return _TYPES.get(raw) if isinstance(raw, str) else None, nullable


def _schema_type(node: Any) -> SchemaType | None:
    return _type_and_nullable(node)[0] if isinstance(node, dict) else None


# -- parameters and bodies ------------------------------------------------


def _merge_parameters(shared: list, own: list) -> tuple[list[dict], dict | None, list[dict]]:
    """Union of path-level and operation-level parameters.

    Operation parameters override path-level ones with the same (name, in).
    Swagger 2.0 `in: body` and `in: formData` entries are split out.
    """
    merged: dict[tuple[str, str], dict] = {}
    for raw in list(shared) + list(own):
        if isinstance(raw, dict) and "name" in raw:
            merged[(raw["name"], raw.get("in", "query"))] = raw

    params, form = [], []
    body = None
    for (_, location), raw in merged.items():
        if location == "body":
            body = raw
        elif location == "formData":
            form.append(raw)
        else:
            params.append(raw)
    return params, body, form


def _parameter(raw: dict, converter: SchemaConverter) -> Parameter | None:
    location = _LOCATIONS.get(raw.get("in", "query"))
    if location is None:
        return None
    schema_node = raw.get("schema") if isinstance(raw.get("schema"), dict) else raw
    schema = converter.convert(schema_node)
    if schema.type is None and schema.ref is None:
        schema = Schema(type=SchemaType.STRING)
    return Parameter(
        name=str(raw["name"]),
        location=location,
        required=bool(raw.get("required", False)),
        schema=schema,
        description=raw.get("description"),
        example=_example(raw),
        default=schema.default,
        deprecated=bool(raw.get("deprecated", False)),
    )


def _example(node: dict) -> Any:
    if "example" in node:
        return node["example"]
    examples = node.get("examples")
    if isinstance(examples, dict):
        for value in examples.values():
            return value.get("value") if isinstance(value, dict) and "value" in value else value
    return None


def _pick_content(content: dict) -> tuple[str, dict] | None:
    if not isinstance(content, dict) or not content:
        return None
    if PREFERRED_CONTENT_TYPE in content:
        return PREFERRED_CONTENT_TYPE, content[PREFERRED_CONTENT_TYPE] or {}
    content_type = next(iter(content))
    return content_type, content[content_type] or {}


def _request_body(body: Any, converter: SchemaConverter) -> RequestBody | None:
    if not isinstance(body, dict):
        return None
    picked = _pick_content(body.get("content") or {})
    if picked is None:
        return None
    content_type, media = picked
    return RequestBody(
        required=bool(body.get("required", False)),
        content_type=content_type,
        schema=converter.convert(media.get("schema") or {"type": "object"}),
        description=body.get("description"),
        example=_example(media),
    )


def _swagger2_body(body_param: dict | None, form: list[dict], consumes: list[str], converter: SchemaConverter) -> RequestBody | None:
    if body_param is not None:
        content_type = PREFERRED_CONTENT_TYPE if PREFERRED_CONTENT_TYPE in consumes else consumes[0]
        return RequestBody(
            required=bool(body_param.get("required", False)),
            content_type=content_type,
            schema=converter.convert(body_param.get("schema") or {"type": "object"}),
            description=body_param.get("description"),
            example=_example(body_param),
        )
    if form:
        multipart = any(p.get("type") == "file" for p in form) or "multipart/form-data" in consumes
        properties = {p["name"]: converter.convert(p) for p in form}
        required = [p["name"] for p in form if p.get("required")]
        return RequestBody(
            required=bool(required),
            content_type="multipart/form-data" if multipart else "application/x-www-form-urlencoded",
            schema=Schema(type=SchemaType.OBJECT, properties=properties, required=required or None),
        )
    return None


def _status(code: Any) -> int:
    text = str(code)
    return int(text) if text.isdigit() else 200


def _responses(raw: dict, converter: SchemaConverter, produces: list[str] | None = None) -> list[Response]:
    responses = []
    for code, resp in raw.items():
        if not isinstance(resp, dict):
            continue
        content_type, schema, example = None, None, None
        if produces is None:
            picked = _pick_content(resp.get("content") or {})
            if picked is not None:
                content_type, media = picked
                schema = converter.convert(media["schema"]) if isinstance(media.get("schema"), dict) else None
                example = _example(media)
        elif isinstance(resp.get("schema"), dict):
            content_type = PREFERRED_CONTENT_TYPE if PREFERRED_CONTENT_TYPE in produces else produces[0]
            schema = converter.convert(resp["schema"])
            examples = resp.get("examples") or {}
            example = examples.get(content_type) if isinstance(examples, dict) else None

        headers = {
            name: converter.convert(h.get("schema", h))
            for name, h in (resp.get("headers") or {}).items()
            if isinstance(h, dict)
        }
        responses.append(Response(
            status_code=_status(code),
            description=resp.get("description") or "",
            content_type=content_type,
            schema=schema,
            example=example,
            headers=headers,
        ))
    return responses


# -- document-level -------------------------------------------------------


def _info(doc: dict) -> ApiInfo:
    info = doc.get("info") or {}
    servers = [s["url"] for s in doc.get("servers") or [] if isinstance(s, dict) and s.get("url")]
    return ApiInfo(
        title=str(info.get("title") or "API"),
        version=str(info.get("version") or "1.0.0"),
        description=info.get("description"),
        contact=_str_dict(info.get("contact")),
        license=_str_dict(info.get("license")),
        servers=servers,
    )


def _str_dict(value: Any) -> dict[str, str] | None:
    if not isinstance(value, dict):
        return None
    return {str(k): str(v) for k, v in value.items() if isinstance(v, (str, int, float))}


def _base_url(doc: dict) -> str | None:
    servers = doc.get("servers") or []
    if servers and isinstance(servers[0], dict) and servers[0].get("url"):
        server = servers[0]
        variables = server.get("variables") or {}

        def substitute(m: re.Match) -> str:
            var = variables.get(m.group(1)) or {}
            return str(var.get("default", m.group(0)))

        return _SERVER_VAR.sub(substitute, server["url"]).rstrip("/") or None
    if "swagger" in doc and doc.get("host"):
        scheme = (doc.get("schemes") or ["https"])[0]
        return f"{scheme}://{doc['host']}{doc.get('basePath', '')}".rstrip("/")
    return None


def _auth(doc: dict) -> Auth | None:
    """The first security scheme we know how to express, if any."""
    schemes = (doc.get("components") or {}).get("securitySchemes") or doc.get("securityDefinitions") or {}
    for name, scheme in schemes.items():
        if not isinstance(scheme, dict):
            continue
        kind = scheme.get("type")
        http_scheme = str(scheme.get("scheme", "")).lower()
        description = scheme.get("description")
        if kind == "http" and http_scheme == "bearer":
            return Auth(type=AuthType.BEARER, description=description)
        if kind == "apiKey":
            location = scheme.get("in", "header")
            return Auth(
                type=AuthType.API_KEY,
                key_name=scheme.get("name") or "X-API-Key",
                key_location=ParameterLocation.QUERY if location == "query" else ParameterLocation.HEADER,
                token_placeholder="{{apiKey}}",
                description=description,
            )
        if (kind == "http" and http_scheme == "basic") or kind == "basic":
            return Auth(type=AuthType.BASIC, token_placeholder="{{basicAuth}}", description=description)
        if kind == "oauth2":
            return Auth(type=AuthType.OAUTH2, scopes=_oauth_scopes(scheme), description=description)
    return None


def _oauth_scopes(scheme: dict) -> list[str]:
    scopes: list[str] = []
    flows = scheme.get("flows")
    if isinstance(flows, dict):
        for flow in flows.values():
            if isinstance(flow, dict):
                scopes.extend(s for s in (flow.get("scopes") or {}) if s not in scopes)
    elif isinstance(scheme.get("scopes"), dict):
        scopes.extend(scheme["scopes"])
    return scopes
