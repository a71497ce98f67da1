"""FastAPI source extractor.

Pass one collects APIRouter/FastAPI instances (with their prefixes and
tags), include_router mounts, imports and Pydantic models. Pass two reads
route decorators and the handler signatures below them.
"""

import re
from pathlib import Path

from .base import (
    Endpoint,
    HttpMethod,
    Parameter,
    ParameterLocation,
    ProjectType,
    RequestBody,
    Response,
    Schema,
    SchemaType,
)
from .helpers import (
    base_name,
    docstring_summary,
    extract_path_params,
    indented_block,
    join_paths,
    keyword_arg,
    positional_args,
    python_classes,
    python_imports,
    python_literal,
    python_project_name,
    read_balanced,
    reconcile_path_params,
    split_params,
    string_list,
    strip_placeholder_constraints,
    title_case,
    unquote,
)
from .source import (
    ModelField,
    ModelInfo,
    Registration,
    RouteInfo,
    RouterInfo,
    ScanContext,
    SourceExtractor,
    router_key,
)

PYTHON_TYPE_MAP: dict[str, SchemaType] = {
    "str": SchemaType.STRING,
    "int": SchemaType.INTEGER,
    "float": SchemaType.NUMBER,
    "Decimal": SchemaType.NUMBER,
    "bool": SchemaType.BOOLEAN,
    "dict": SchemaType.OBJECT,
    "Dict": SchemaType.OBJECT,
    "Any": SchemaType.OBJECT,
    "list": SchemaType.ARRAY,
    "List": SchemaType.ARRAY,
    "bytes": SchemaType.STRING,
    "UUID": SchemaType.STRING,
    "datetime": SchemaType.STRING,
    "date": SchemaType.STRING,
    "time": SchemaType.STRING,
    "EmailStr": SchemaType.STRING,
    "HttpUrl": SchemaType.STRING,
    "AnyUrl": SchemaType.STRING,
    "UploadFile": SchemaType.STRING,
}

PYTHON_FORMATS = {
    "UUID": "uuid",
    "datetime": "date-time",
    "date": "date",
    "time": "time",
    "EmailStr": "email",
    "HttpUrl": "uri",
    "AnyUrl": "uri",
    "bytes": "binary",
    "UploadFile": "binary",
}

MODEL_BASES = {"BaseModel", "SQLModel"}
IGNORED_TYPES = {"Request", "Response", "BackgroundTasks", "WebSocket", "Session", "AsyncSession", "HTTPConnection"}
IGNORED_NAMES = {"self", "cls", "request", "response", "db", "session", "background_tasks"}
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}

_VERBS = "get|post|put|delete|patch|options|head"
_ROUTER = re.compile(r"^\s*(\w+)\s*(?::\s*\w+\s*)?=\s*(?:fastapi\.)?(APIRouter|FastAPI)\s*(?=\()", re.M)
_INCLUDE = re.compile(r"\b(\w+)\.include_router\s*(?=\()")
_DECORATOR = re.compile(rf"@(\w+)\.({_VERBS}|api_route)\s*(?=\()")
_DEF = re.compile(r"(?:async\s+)?def\s+(\w+)\s*(?=\()")
_RETURNS = re.compile(r"^\s*->\s*(.+?)\s*:", re.S)
_STATUS = re.compile(r"(\d{3})")
_MARKER = re.compile(r"^(?:fastapi\.|params\.)?(Query|Path|Header|Cookie|Body|Form|File|Depends|Security)\s*\((.*)\)$", re.S)
_FIELD = re.compile(r"^(\w+)\s*:\s*(.+)$", re.S)


class FastApiExtractor(SourceExtractor):
    project_type = ProjectType.FASTAPI
    name = "fastapi"
    display_name = "FastAPI"
    extensions = (".py",)
    extra_ignored = ("migrations", "alembic")
    searched_patterns = ("@app.get(...)", "@router.post(...)", "@<router>.api_route(...)", "APIRouter(prefix=...)")
    type_map = PYTHON_TYPE_MAP

    # -- pass one ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        ctx.imports[path] = python_imports(text)
        for m in _ROUTER.finditer(text):
            args = read_balanced(text, m.end())
            args_text = args[0] if args else ""
            ctx.routers[router_key(path, m.group(1))] = RouterInfo(
                var=m.group(1),
                file=path,
                prefix=unquote(keyword_arg(args_text, "prefix")) or "",
                tags=string_list(keyword_arg(args_text, "tags")),
            )
        for m in _INCLUDE.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            positional = positional_args(args[0])
            target = positional[0] if positional else keyword_arg(args[0], "router")
            if target:
                ctx.registrations.append(Registration(
                    prefix=unquote(keyword_arg(args[0], "prefix")) or "",
                    view=target.strip(),
                    file=path,
                    router=m.group(1),
                ))
        for name, bases, body in python_classes(text):
            ctx.models[name] = ModelInfo(name=name, bases=[base_name(b) for b in bases], file=path, fields=_model_fields(body))

    def after_scan(self, ctx: ScanContext) -> None:
        # Only classes deriving (transitively) from BaseModel stay models.
        models = {name for name, m in ctx.models.items() if MODEL_BASES & set(m.bases)}
        changed = True
        while changed:
            changed = False
            for name, m in ctx.models.items():
                if name not in models and models & set(m.bases):
                    models.add(name)
                    changed = True
        for name in list(ctx.models):
            if name not in models:
                del ctx.models[name]

        for reg in ctx.registrations:
            child = self.resolve_router(reg.view, reg.file, ctx)
            if child is None:
                self.logger.debug("include_unresolved", router=reg.view, path=str(reg.file))
                continue
            info = ctx.routers[child]
            info.mount_prefix = reg.prefix
            parent = router_key(reg.file, reg.router or "")
            info.parent = parent if parent in ctx.routers and parent != child else None

    # -- pass two ----

    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        routes = []
        for m in _DECORATOR.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            args_text, after = args
            positional = positional_args(args_text)
            route_path = unquote(positional[0]) if positional else unquote(keyword_arg(args_text, "path"))
            if route_path is None:
                continue

            if m.group(2) == "api_route":
                methods = [v.upper() for v in string_list(keyword_arg(args_text, "methods"))] or ["GET"]
            else:
                methods = [m.group(2).upper()]

            handler = _DEF.search(text, after)
            if not handler:
                continue
            signature = read_balanced(text, handler.end())
            sig_text, sig_end = signature if signature else ("", handler.end())
            returns = _RETURNS.match(text, sig_end)
            body = indented_block(text, text.find(":", sig_end) if sig_end < len(text) else sig_end)

            router = ctx.routers.get(router_key(path, m.group(1)))
            prefix = self._full_prefix(router, ctx)
            tags = string_list(keyword_arg(args_text, "tags")) or self._router_tags(router, ctx)
            status = _STATUS.search(keyword_arg(args_text, "status_code") or "")
            response_type = keyword_arg(args_text, "response_model") or (returns.group(1) if returns else None)

            for method in methods:
                if method not in HttpMethod.__members__:
                    continue
                routes.append(RouteInfo(
                    method=HttpMethod(method),
                    path=join_paths(prefix, strip_placeholder_constraints(route_path)),
                    handler=handler.group(1),
                    file=path,
                    signature=sig_text,
                    body=body,
                    summary=unquote(keyword_arg(args_text, "summary")) or docstring_summary(body),
                    tags=tags,
                    deprecated=keyword_arg(args_text, "deprecated") == "True",
                    status_code=int(status.group(1)) if status else None,
                    response_type=response_type,
                ))
        return routes

    def _full_prefix(self, router: RouterInfo | None, ctx: ScanContext) -> str:
        parts: list[str] = []
        for r in self.router_chain(router, ctx):
            parts[:0] = [r.mount_prefix, r.prefix]
        return join_paths(*parts)

    def _router_tags(self, router: RouterInfo | None, ctx: ScanContext) -> list[str]:
        for r in self.router_chain(router, ctx):
            if r.tags:
                return r.tags
        return []

    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        placeholders = set(extract_path_params(route.path))
        params: list[Parameter] = []
        body_parts: dict[str, tuple[Schema, bool]] = {}
        form_fields: dict[str, tuple[Schema, bool]] = {}
        multipart = False

        for raw in split_params(route.signature):
            parsed = _parse_param(raw)
            if parsed is None:
                continue
            name, annotation, default = parsed
            type_name, marker, marker_args = _classify(annotation, default)
            if marker in ("Depends", "Security") or name in IGNORED_NAMES - placeholders:
                continue
            if base_name(type_name) in IGNORED_TYPES:
                continue

            required = _is_required(default, marker_args)
            alias = unquote(keyword_arg(marker_args, "alias")) if marker_args else None
            description = unquote(keyword_arg(marker_args, "description")) if marker_args else None
            schema = self.type_schema(type_name, ctx) if type_name else _schema_from_default(_marker_default(default, marker_args))

            if name in placeholders or marker == "Path":
                params.append(Parameter(name=name, location=ParameterLocation.PATH, schema=schema, description=description))
            elif marker == "Header":
                params.append(Parameter(
                    name=alias or name.replace("_", "-"),
                    location=ParameterLocation.HEADER,
                    required=required,
                    schema=schema,
                    description=description,
                ))
            elif marker == "Cookie":
                params.append(Parameter(name=alias or name, location=ParameterLocation.COOKIE, required=required, schema=schema, description=description))
            elif marker in ("Form", "File"):
                if marker == "File" or base_name(type_name) == "UploadFile":
                    multipart = True
                    schema = Schema(type=SchemaType.STRING, format="binary")
                form_fields[alias or name] = (schema, required)
            elif marker == "Body" or self._is_model_type(type_name, ctx):
                if route.method in BODY_METHODS:
                    body_parts[alias or name] = (schema, required)
            else:
                params.append(Parameter(
                    name=alias or name,
                    location=ParameterLocation.QUERY,
                    required=required,
                    schema=schema,
                    description=description,
                    default=python_literal(_marker_default(default, marker_args)),
                ))

        request_body = _request_body(body_parts, form_fields, multipart)
        return Endpoint(
            method=route.method,
            path=route.path,
            summary=route.summary or title_case(route.handler),
            operation_id=route.handler,
            tags=route.tags,
            parameters=reconcile_path_params(route.path, params),
            request_body=request_body,
            responses=self._responses(route, ctx, bool(params or placeholders or request_body)),
            deprecated=route.deprecated,
        )

    def _is_model_type(self, type_name: str, ctx: ScanContext) -> bool:
        inner = _unwrap(type_name)[0]
        m = re.match(r"^(?:list|List|Sequence|set|Set)\[(.+)\]$", inner)
        if m:
            inner = _unwrap(m.group(1))[0]
        return base_name(inner) in ctx.models

    def _responses(self, route: RouteInfo, ctx: ScanContext, has_input: bool) -> list[Response]:
        status = route.status_code or 200
        schema = None
        response_type = (route.response_type or "").strip()
        if response_type and status != 204 and base_name(_unwrap(response_type)[0]) not in IGNORED_TYPES | {"None"}:
            schema = self.type_schema(response_type, ctx)
        responses = [Response(
            status_code=status,
            description="Successful Response",
            content_type="application/json" if schema is not None else None,
            schema=schema,
        )]
        if has_input:
            responses.append(Response(status_code=422, description="Validation Error", content_type="application/json"))
        return responses

    def group_name(self, route: RouteInfo, ctx: ScanContext) -> str:
        stem = route.file.stem
        return "Default" if stem in ("main", "app", "__init__") else title_case(stem)

    def project_title(self, root: Path) -> str:
        return python_project_name(root) or super().project_title(root)

    # -- types ----

    def type_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        inner, nullable = _unwrap(type_name)
        schema = self._inner_schema(inner, ctx, seen)
        if nullable:
            schema.nullable = True
        return schema

    def _inner_schema(self, t: str, ctx: ScanContext, seen: frozenset[str]) -> Schema:
        m = re.match(r"^(?:typing\.)?(list|List|Sequence|set|Set|tuple|Tuple|frozenset)\[(.+)\]$", t)
        if m:
            item = split_params(m.group(2))[0]
            return Schema(type=SchemaType.ARRAY, items=self.type_schema(item, ctx, seen))
        m = re.match(r"^(?:typing\.)?(dict|Dict|Mapping)\[(.+)\]$", t)
        if m:
            parts = split_params(m.group(2))
            value = self.type_schema(parts[-1], ctx, seen) if len(parts) == 2 else True
            return Schema(type=SchemaType.OBJECT, additional_properties=value)
        m = re.match(r"^(?:typing\.)?Literal\[(.+)\]$", t)
        if m:
            values = [python_literal(v) for v in split_params(m.group(1))]
            kind = SchemaType.INTEGER if all(isinstance(v, int) for v in values) else SchemaType.STRING
            return Schema(type=kind, enum=values)
        name = base_name(t)
        if name in ctx.models:
            return self.model_schema(name, ctx, seen)
        if name in PYTHON_TYPE_MAP:
            return Schema(type=PYTHON_TYPE_MAP[name], format=PYTHON_FORMATS.get(name))
        return Schema(type=SchemaType.STRING)


def _model_fields(body: str) -> list[ModelField]:
    fields = []
    lines = [line for line in body.split("\n") if line.strip()]
    if not lines:
        return fields
    indent = len(lines[0]) - len(lines[0].lstrip())
    for line in lines:
        if len(line) - len(line.lstrip()) != indent:
            continue
        stripped = line.strip()
        if stripped.startswith(("#", "@", "def ", "async ", "class ", '"', "'")):
            continue
        parts = split_params(stripped, sep="=")
        m = _FIELD.match(parts[0]) if parts else None
        if not m or m.group(1) in ("model_config", "Config") or "ClassVar" in m.group(2):
            continue
        default = "=".join(parts[1:]).strip() or None
        type_name = m.group(2).split("#", 1)[0].strip()
        field_args = None
        if default and re.match(r"^(?:pydantic\.)?Field\s*\(", default):
            call = read_balanced(default, default.index("("))
            field_args = call[0] if call else ""
        required = default is None or (field_args is not None and _is_required(None, field_args))
        description = unquote(keyword_arg(field_args, "description")) if field_args else None
        fields.append(ModelField(name=m.group(1), type_name=type_name, required=required, default=default, description=description))
    return fields


def _parse_param(raw: str) -> tuple[str, str, str | None] | None:
    """`name: annotation = default` -> (name, annotation, default)."""
    if raw.startswith("*") or raw == "/":
        return None
    parts = split_params(raw, sep="=")
    head = parts[0]
    default = "=".join(parts[1:]).strip() or None
    name, _, annotation = head.partition(":")
    name = name.strip()
    if not name.isidentifier():
        return None
    return name, annotation.strip(), default


def _classify(annotation: str, default: str | None) -> tuple[str, str | None, str]:
    """(type name, FastAPI marker, marker arguments) for one parameter."""
    type_name = annotation
    marker, marker_args = None, ""
    m = re.match(r"^(?:typing\.)?Annotated\[(.+)\]$", annotation, re.S)
    if m:
        parts = split_params(m.group(1))
        type_name = parts[0]
        for meta in parts[1:]:
            mm = _MARKER.match(meta.strip())
            if mm:
                marker, marker_args = mm.group(1), mm.group(2)
                break
    if marker is None and default:
        mm = _MARKER.match(default.strip())
        if mm:
            marker, marker_args = mm.group(1), mm.group(2)
    return type_name.strip(), marker, marker_args


def _marker_default(default: str | None, marker_args: str) -> str | None:
    if marker_args:
        explicit = keyword_arg(marker_args, "default")
        if explicit is not None:
            return explicit
        positional = positional_args(marker_args)
        return positional[0] if positional else None
    return default


def _is_required(default: str | None, marker_args: str) -> bool:
    if marker_args and keyword_arg(marker_args, "default_factory") is not None:
        return False
    value = _marker_default(None, marker_args) if marker_args else None
    if value is None and default is not None and not _MARKER.match(default.strip()):
        value = default
    return value is None or value.strip() in ("...", "Ellipsis")


def _schema_from_default(default: str | None) -> Schema:
    value = python_literal(default)
    if isinstance(value, bool):
        return Schema(type=SchemaType.BOOLEAN)
    if isinstance(value, int):
        return Schema(type=SchemaType.INTEGER)
    if isinstance(value, float):
        return Schema(type=SchemaType.NUMBER)
    return Schema(type=SchemaType.STRING)


def _unwrap(type_name: str) -> tuple[str, bool]:
    """Strip Optional/Union-with-None/Annotated wrappers; report nullability."""
    t = type_name.strip().strip("\"'")
    nullable = False
    while True:
        m = re.match(r"^(?:typing\.)?(Optional|Annotated|Union)\[(.+)\]$", t, re.S)
        if m:
            parts = split_params(m.group(2))
            if m.group(1) == "Optional":
                nullable, t = True, parts[0]
            elif m.group(1) == "Annotated":
                t = parts[0]
            else:
                rest = [p for p in parts if p != "None"]
                nullable = nullable or len(rest) < len(parts)
                t = rest[0] if rest else "None"
            continue
        alternatives = split_params(t, sep="|")
        if len(alternatives) > 1:
            rest = [p for p in alternatives if p != "None"]
            nullable = nullable or len(rest) < len(alternatives)
            t = rest[0] if rest else "None"
            continue
        return t.strip(), nullable


def _request_body(body_parts: dict, form_fields: dict, multipart: bool) -> RequestBody | None:
    if form_fields:
        return RequestBody(
            required=any(req for _, req in form_fields.values()),
            content_type="multipart/form-data" if multipart else "application/x-www-form-urlencoded",
            schema=Schema(
                type=SchemaType.OBJECT,
                properties={k: s for k, (s, _) in form_fields.items()},
                required=[k for k, (_, req) in form_fields.items() if req] or None,
            ),
        )
    if not body_parts:
        return None
    if len(body_parts) == 1:
        schema, required = next(iter(body_parts.values()))
        return RequestBody(required=required, schema=schema)
    # several body parameters are embedded under their names
    return RequestBody(
        required=any(req for _, req in body_parts.values()),
        schema=Schema(
            type=SchemaType.OBJECT,
            properties={k: s for k, (s, _) in body_parts.items()},
            required=[k for k, (_, req) in body_parts.items() if req] or None,
        ),
    )
