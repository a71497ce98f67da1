"""ASP.NET Core source extractor.

Pass one collects controllers (classes deriving from ControllerBase /
Controller, or named *Controller) with their [Route] templates, and the
DTO classes, records and enums they exchange. Pass two reads the action
methods, their [Http*] attributes and parameter binding sources.
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
    STATUS_DESCRIPTIONS,
    c_classes,
    default_response,
    extract_path_params,
    generic_args,
    join_paths,
    keyword_arg,
    mask_blocks,
    placeholder_constraints,
    positional_args,
    read_balanced,
    reconcile_path_params,
    split_params,
    strip_c_comments,
    strip_placeholder_constraints,
    strip_suffix,
    title_case,
    unquote,
)
from .source import ModelField, ModelInfo, RouteInfo, ScanContext, SourceExtractor, ViewInfo, router_key

CSHARP_TYPE_MAP: dict[str, SchemaType] = {
    "string": SchemaType.STRING,
    "String": SchemaType.STRING,
    "char": SchemaType.STRING,
    "Guid": SchemaType.STRING,
    "DateTime": SchemaType.STRING,
    "DateTimeOffset": SchemaType.STRING,
    "DateOnly": SchemaType.STRING,
    "TimeOnly": SchemaType.STRING,
    "TimeSpan": SchemaType.STRING,
    "Uri": SchemaType.STRING,
    "IFormFile": SchemaType.STRING,
    "int": SchemaType.INTEGER,
    "Int32": SchemaType.INTEGER,
    "long": SchemaType.INTEGER,
    "Int64": SchemaType.INTEGER,
    "short": SchemaType.INTEGER,
    "Int16": SchemaType.INTEGER,
    "byte": SchemaType.INTEGER,
    "uint": SchemaType.INTEGER,
    "ulong": SchemaType.INTEGER,
    "double": SchemaType.NUMBER,
    "Double": SchemaType.NUMBER,
    "float": SchemaType.NUMBER,
    "Single": SchemaType.NUMBER,
    "decimal": SchemaType.NUMBER,
    "Decimal": SchemaType.NUMBER,
    "bool": SchemaType.BOOLEAN,
    "Boolean": SchemaType.BOOLEAN,
    "List": SchemaType.ARRAY,
    "IList": SchemaType.ARRAY,
    "IEnumerable": SchemaType.ARRAY,
    "Array": SchemaType.ARRAY,
    "Dictionary": SchemaType.OBJECT,
    "IDictionary": SchemaType.OBJECT,
    "object": SchemaType.OBJECT,
    "Object": SchemaType.OBJECT,
    "JsonElement": SchemaType.OBJECT,
}

CSHARP_FORMATS = {
    "Guid": "uuid",
    "DateTime": "date-time",
    "DateTimeOffset": "date-time",
    "DateOnly": "date",
    "TimeOnly": "time",
    "Uri": "uri",
    "IFormFile": "binary",
    "int": "int32",
    "Int32": "int32",
    "long": "int64",
    "Int64": "int64",
    "double": "double",
    "Double": "double",
    "float": "float",
    "Single": "float",
    "decimal": "decimal",
    "Decimal": "decimal",
}

# route constraint -> schema of the path parameter
CONSTRAINT_SCHEMAS = {
    "int": (SchemaType.INTEGER, "int32"),
    "long": (SchemaType.INTEGER, "int64"),
    "bool": (SchemaType.BOOLEAN, None),
    "guid": (SchemaType.STRING, "uuid"),
    "datetime": (SchemaType.STRING, "date-time"),
    "decimal": (SchemaType.NUMBER, None),
    "double": (SchemaType.NUMBER, "double"),
    "float": (SchemaType.NUMBER, "float"),
}

VERB_ATTRIBUTES = {
    "HttpGet": HttpMethod.GET,
    "HttpPost": HttpMethod.POST,
    "HttpPut": HttpMethod.PUT,
    "HttpDelete": HttpMethod.DELETE,
    "HttpPatch": HttpMethod.PATCH,
    "HttpHead": HttpMethod.HEAD,
    "HttpOptions": HttpMethod.OPTIONS,
}

CONTROLLER_BASES = {"ControllerBase", "Controller", "ApiController", "ODataController"}
COLLECTION_TYPES = {"List", "IList", "IEnumerable", "ICollection", "IReadOnlyList", "IReadOnlyCollection", "HashSet", "ISet", "IAsyncEnumerable", "Array"}
MAP_TYPES = {"Dictionary", "IDictionary", "IReadOnlyDictionary"}
WRAPPER_TYPES = {"Task", "ValueTask", "ActionResult", "Nullable"}
RESULT_TYPES = {"IActionResult", "ActionResult", "IResult", "Task", "ValueTask", "void", ""}
IGNORED_TYPES = {"CancellationToken", "HttpContext", "HttpRequest", "HttpResponse", "ClaimsPrincipal"}
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}
REQUIRED_ATTRIBUTES = {"Required", "BindRequired"}
BINDING_ATTRIBUTES = {"FromQuery", "FromBody", "FromHeader", "FromForm"}

# helper calls in an action body and the status they answer with
RESULT_CALLS = (
    ("CreatedAtAction", 201),
    ("CreatedAtRoute", 201),
    ("Created", 201),
    ("Accepted", 202),
    ("NoContent", 204),
    ("BadRequest", 400),
    ("ValidationProblem", 400),
    ("Unauthorized", 401),
    ("Forbid", 403),
    ("NotFound", 404),
    ("Conflict", 409),
)

_ATTRIBUTE = re.compile(r"\s*([\w.]+)(?:<([^>]*)>)?\s*")
_METHOD = re.compile(
    r"(?<![\w.])((?:(?:public|protected|internal|private|static|virtual|override|async|new|sealed)\s+)+)"
    r"([\w.]+(?:\s*<[^;{}()]*>)?(?:\[\])*\??)\s+(\w+)\s*(?=\()"
)
_PROPERTY = re.compile(
    r"(?<![\w.])((?:(?:public|protected|internal|virtual|override|required|new|static|readonly|const)\s+)+)"
    r"([\w.]+(?:\s*<[^;{}()=]*>)?(?:\[\])*\??)\s+(\w+)\s*(?=\{|;|=)"
)
_TYPEOF = re.compile(r"typeof\s*\(\s*([^)]+?)\s*\)")
_STATUS = re.compile(r"(?:Status)?(\d{3})")
_ASSEMBLY = re.compile(r"<AssemblyName>\s*([^<\s]+)\s*</AssemblyName>")


def attributes_before(text: str, start: int) -> list[tuple[str, str]]:
    """(name, args) of the `[Attribute(...)]` lists written in front of ``start``.

    Generic attributes keep their type argument as a `typeof(...)` argument.
    """
    found: list[tuple[str, str]] = []
    i = text.rfind(";", 0, start) + 1
    while i < start:
        ch = text[i]
        if ch == "[":
            block = read_balanced(text, i, "[", "]")
            if block is None:
                break
            inner, i = block
            found.extend(_attribute_list(inner))
            continue
        if ch in "{}":
            found = []
        i += 1
    return found


def _attribute_list(inner: str) -> list[tuple[str, str]]:
    attributes = []
    for part in split_params(inner, angle=True):
        m = _ATTRIBUTE.match(part)
        if not m or part.startswith(("return:", "assembly:")):
            continue
        args = ""
        rest = part[m.end():]
        if rest.startswith("("):
            block = read_balanced(rest, 0)
            args = block[0] if block else ""
        if m.group(2):
            args = f"typeof({m.group(2)})" + (", " + args if args else "")
        name = strip_suffix(m.group(1).rsplit(".", 1)[-1], ("Attribute",))
        attributes.append((name, args))
    return attributes


def leading_attributes(text: str) -> tuple[dict[str, str], str]:
    """Split `[FromQuery(Name = "q")] string q` into attributes and the rest."""
    attributes: dict[str, str] = {}
    text = text.strip()
    while text.startswith("["):
        block = read_balanced(text, 0, "[", "]")
        if block is None:
            break
        inner, end = block
        attributes.update(_attribute_list(inner))
        text = text[end:].strip()
    return attributes, text


def attribute_value(args: str, key: str) -> str | None:
    """First positional argument, or the named ``key = ...`` argument."""
    raw = keyword_arg(args, key)
    if raw is not None:
        return raw
    positional = positional_args(args)
    return positional[0] if positional else None


def camel_case(name: str) -> str:
    return name[:1].lower() + name[1:]


def _declaration(raw: str) -> tuple[dict[str, str], str, str, str | None] | None:
    """(attributes, type, name, default) of one parameter or record component."""
    attributes, rest = leading_attributes(raw)
    rest, eq, default = rest.partition("=")
    rest = re.sub(r"^(?:(?:this|ref|out|in|params|scoped)\s+)+", "", rest.strip())
    parts = rest.rsplit(None, 1)
    if len(parts) != 2:
        return None
    return attributes, parts[0].strip(), parts[1].strip(), default.strip() if eq else None


class AspNetCoreExtractor(SourceExtractor):
    project_type = ProjectType.ASPNET_CORE
    name = "aspnet-core"
    display_name = "ASP.NET Core"
    extensions = (".cs",)
    extra_ignored = ("Migrations", "wwwroot", "Properties")
    searched_patterns = ("[ApiController]", "[Route(...)]", "[HttpGet(...)]", "class ...Controller : ControllerBase")
    type_map = CSHARP_TYPE_MAP

    # -- pass one ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        text = strip_c_comments(text)
        for kind, name, components, bases, body, start in c_classes(text):
            attributes = dict(attributes_before(text, start))
            if kind == "class" and _is_controller(name, bases, attributes):
                route = attributes.get("Route")
                ctx.views[router_key(path, name)] = ViewInfo(
                    name=name,
                    file=path,
                    bases=bases,
                    attributes={"tag": unquote(attribute_value(attributes["Tags"], "Tags")) or ""} if "Tags" in attributes else {},
                    body=body,
                    base_path=unquote(attribute_value(route, "Template")) or "" if route is not None else "",
                )
            elif kind == "enum":
                values = [m.group(0) for m in (re.match(r"\w+", c.strip()) for c in split_params(body)) if m]
                ctx.models[name] = ModelInfo(name=name, file=path, meta={"enum": values})
            elif kind in ("class", "record"):
                fields = _record_fields(components) + _property_fields(body)
                ctx.models[name] = ModelInfo(name=name, file=path, bases=bases, fields=fields)

    # -- pass two ----

    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        routes = []
        for view in ctx.views.values():
            if view.file == path:
                routes.extend(self._controller_routes(view))
        return routes

    def _controller_routes(self, view: ViewInfo) -> list[RouteInfo]:
        routes = []
        short = strip_suffix(view.name, ("Controller",))
        base = view.base_path if view.base_path else f"/api/{short.lower()}"
        masked = mask_blocks(view.body)
        for m in _METHOD.finditer(masked):
            if "public" not in m.group(1).split():
                continue
            attributes = attributes_before(masked, m.start())
            names = {name for name, _ in attributes}
            if "NonAction" in names:
                continue
            verbs = [(VERB_ATTRIBUTES[n], args) for n, args in attributes if n in VERB_ATTRIBUTES]
            method_routes = [unquote(attribute_value(args, "Template")) or "" for n, args in attributes if n == "Route"]
            if not verbs and not method_routes:
                continue
            if not verbs:
                verbs = [(HttpMethod.GET, "")]

            params = read_balanced(view.body, m.end())
            if params is None:
                continue
            signature, end = params
            handler_body = ""
            block_start = view.body.find("{", end)
            if block_start != -1 and "=>" not in view.body[end:block_start] and ";" not in view.body[end:block_start]:
                block = read_balanced(view.body, block_start, "{", "}")
                handler_body = block[0] if block else ""

            action = m.group(3)
            for verb, args in verbs:
                template = unquote(attribute_value(args, "Template")) if args else None
                for t in ([template] if template is not None else method_routes or [""]):
                    raw = _route(base, t)
                    raw = re.sub(r"\[controller\]", short.lower(), raw, flags=re.I)
                    raw = re.sub(r"\[action\]", strip_suffix(action, ("Async",)).lower(), raw, flags=re.I)
                    routes.append(RouteInfo(
                        method=verb,
                        path=strip_placeholder_constraints(raw),
                        handler=action,
                        file=view.file,
                        signature=signature,
                        body=handler_body,
                        group=short,
                        summary=title_case(strip_suffix(action, ("Async",))),
                        tags=[view.attributes["tag"]] if view.attributes.get("tag") else [],
                        deprecated="Obsolete" in names,
                        response_type=m.group(2),
                        extra={
                            "constraints": placeholder_constraints(raw),
                            "produces": [args for n, args in attributes if n == "ProducesResponseType"],
                            "consumes": [unquote(a) for n, args in attributes if n == "Consumes" for a in positional_args(args)],
                        },
                    ))
        return routes

    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        placeholders = extract_path_params(route.path)
        params: list[Parameter] = []
        body: RequestBody | None = None
        form_fields: dict[str, tuple[Schema, bool]] = {}

        for raw in split_params(route.signature, angle=True):
            parsed = _declaration(raw)
            if parsed is None:
                continue
            attributes, type_name, var, default = parsed
            outer = generic_args(type_name.rstrip("?"))[0].rsplit(".", 1)[-1]
            if outer in IGNORED_TYPES or "FromServices" in attributes:
                continue
            schema = self.type_schema(type_name, ctx)
            required = bool(REQUIRED_ATTRIBUTES & attributes.keys())

            if "FromRoute" in attributes or (var in placeholders and not BINDING_ATTRIBUTES & attributes.keys()):
                name = unquote(keyword_arg(attributes.get("FromRoute", ""), "Name")) or var
                params.append(Parameter(name=name, location=ParameterLocation.PATH, schema=schema))
            elif "FromBody" in attributes:
                body = RequestBody(
                    required=not type_name.endswith("?"),
                    content_type=next(iter(route.extra.get("consumes") or []), None) or "application/json",
                    schema=schema,
                )
            elif "FromForm" in attributes or outer == "IFormFile":
                self._form_fields(outer, var, schema, attributes, ctx, form_fields)
            elif "FromHeader" in attributes:
                name = unquote(keyword_arg(attributes["FromHeader"], "Name")) or var
                params.append(Parameter(name=name, location=ParameterLocation.HEADER, required=required, schema=schema))
            elif "FromQuery" in attributes or outer in CSHARP_TYPE_MAP or self._is_enum(outer, ctx):
                name = unquote(keyword_arg(attributes.get("FromQuery", ""), "Name")) or var
                if outer in ctx.models and not self._is_enum(outer, ctx):
                    params.extend(self._query_from_model(outer, ctx))
                    continue
                params.append(Parameter(
                    name=name,
                    location=ParameterLocation.QUERY,
                    required=required,
                    schema=schema,
                    default=_csharp_literal(default),
                ))
            elif route.method in BODY_METHODS:
                body = RequestBody(required=not type_name.endswith("?"), schema=schema)
            elif outer in ctx.models:
                params.extend(self._query_from_model(outer, ctx))

        if form_fields and body is None:
            body = RequestBody(
                content_type="multipart/form-data" if any(s.format == "binary" for s, _ in form_fields.values()) else "application/x-www-form-urlencoded",
                schema=Schema(
                    type=SchemaType.OBJECT,
                    properties={name: s for name, (s, _) in form_fields.items()},
                    required=[name for name, (_, req) in form_fields.items() if req] or None,
                ),
            )

        hints = {}
        for name, constraint in route.extra.get("constraints", {}).items():
            kind = CONSTRAINT_SCHEMAS.get(constraint.split(":", 1)[0].split("(", 1)[0].lower())
            if kind is not None:
                hints[name] = Schema(type=kind[0], format=kind[1])
        return Endpoint(
            method=route.method,
            path=route.path,
            summary=route.summary,
            operation_id=route.handler,
            tags=route.tags,
            parameters=reconcile_path_params(route.path, params, hints),
            request_body=body,
            responses=self._responses(route, ctx),
            deprecated=route.deprecated,
        )

    def _is_enum(self, name: str, ctx: ScanContext) -> bool:
        model = ctx.models.get(name)
        return model is not None and "enum" in model.meta

    def _query_from_model(self, name: str, ctx: ScanContext) -> list[Parameter]:
        return [
            Parameter(
                name=f.name,
                location=ParameterLocation.QUERY,
                required=f.required,
                schema=self.type_schema(f.type_name, ctx),
                description=f.description,
            )
            for f in self.model_fields(ctx.models[name], ctx)
        ]

    def _form_fields(
        self,
        outer: str,
        var: str,
        schema: Schema,
        attributes: dict[str, str],
        ctx: ScanContext,
        form_fields: dict[str, tuple[Schema, bool]],
    ) -> None:
        if outer in ctx.models and not self._is_enum(outer, ctx):
            for f in self.model_fields(ctx.models[outer], ctx):
                form_fields[f.name] = (self.type_schema(f.type_name, ctx), f.required)
            return
        name = unquote(keyword_arg(attributes.get("FromForm", ""), "Name")) or var
        form_fields[name] = (schema, bool(REQUIRED_ATTRIBUTES & attributes.keys()))

    def _responses(self, route: RouteInfo, ctx: ScanContext) -> list[Response]:
        inner = _unwrap_result(route.response_type or "")
        returned = self.type_schema(inner, ctx) if inner else None

        declared = route.extra.get("produces") or []
        if declared:
            responses = []
            for args in declared:
                t = _TYPEOF.search(args)
                status_text = positional_args(_TYPEOF.sub("", args).strip(" ,")) or [keyword_arg(args, "StatusCode") or ""]
                m = _STATUS.search(status_text[0]) if status_text else None
                status = int(m.group(1)) if m else 200
                schema = self.type_schema(t.group(1), ctx) if t else (returned if status < 300 else None)
                responses.append(Response(
                    status_code=status,
                    description=STATUS_DESCRIPTIONS.get(status, "Response"),
                    content_type="application/json" if schema is not None else None,
                    schema=schema,
                ))
            return responses

        calls = [status for call, status in RESULT_CALLS if re.search(rf"\b{call}\s*\(", route.body)]
        success = next((s for s in calls if s < 300), 200)
        if success == 204 and re.search(r"\bOk\s*\(", route.body):
            success = 200
        responses = [default_response(success, returned if success != 204 else None)]
        responses.extend(default_response(s) for s in dict.fromkeys(calls) if s >= 400)
        return responses

    def project_title(self, root: Path) -> str:
        projects = sorted(root.glob("*.csproj")) or sorted(root.glob("*/*.csproj"))
        if projects:
            m = _ASSEMBLY.search(projects[0].read_text(encoding="utf-8", errors="replace"))
            return m.group(1) if m else projects[0].stem
        return super().project_title(root)

    # -- types ----

    def type_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        type_name = type_name.strip()
        nullable = type_name.endswith("?")
        type_name = type_name.rstrip("?").strip()
        schema = self._inner_schema(type_name, ctx, seen)
        if nullable:
            schema.nullable = True
        return schema

    def _inner_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str]) -> Schema:
        if type_name.endswith("[]"):
            item = type_name[:-2].strip()
            if item == "byte":
                return Schema(type=SchemaType.STRING, format="byte")
            return Schema(type=SchemaType.ARRAY, items=self.type_schema(item, ctx, seen))

        outer, args = generic_args(type_name)
        outer = outer.rsplit(".", 1)[-1]
        if outer in WRAPPER_TYPES and args:
            return self.type_schema(args[0], ctx, seen)
        if outer in COLLECTION_TYPES:
            items = self.type_schema(args[0], ctx, seen) if args else Schema(type=SchemaType.OBJECT)
            return Schema(type=SchemaType.ARRAY, items=items)
        if outer in MAP_TYPES:
            value = self.type_schema(args[-1], ctx, seen) if len(args) == 2 else True
            return Schema(type=SchemaType.OBJECT, additional_properties=value)

        model = ctx.models.get(outer)
        if model is not None and "enum" in model.meta:
            return Schema(type=SchemaType.STRING, enum=model.meta["enum"] or None)
        if model is not None:
            return self.model_schema(outer, ctx, seen)
        if outer in CSHARP_TYPE_MAP:
            return Schema(type=CSHARP_TYPE_MAP[outer], format=CSHARP_FORMATS.get(outer))
        return Schema(type=SchemaType.OBJECT)


def _is_controller(name: str, bases: list[str], attributes: dict[str, str]) -> bool:
    if "NonController" in attributes:
        return False
    return "ApiController" in attributes or bool(CONTROLLER_BASES & set(bases)) or any(
        b.endswith("Controller") for b in bases
    ) or (name.endswith("Controller") and bool(bases))


def _route(base: str, template: str) -> str:
    if template.startswith("~/"):
        return join_paths(template[2:])
    if template.startswith("/"):
        return join_paths(template)
    return join_paths(base, template)


def _field(attributes: dict[str, str], type_name: str, name: str, required: bool) -> ModelField:
    renamed = unquote(attribute_value(attributes["JsonPropertyName"], "Name")) if "JsonPropertyName" in attributes else None
    description = unquote(attribute_value(attributes["Description"], "Description")) if "Description" in attributes else None
    return ModelField(
        name=renamed or camel_case(name),
        type_name=type_name,
        required=required or bool(REQUIRED_ATTRIBUTES & attributes.keys()),
        description=description,
    )


def _property_fields(body: str) -> list[ModelField]:
    masked = mask_blocks(body)
    fields = []
    for m in _PROPERTY.finditer(masked):
        modifiers = m.group(1).split()
        if "public" not in modifiers or "static" in modifiers or "const" in modifiers:
            continue
        attributes = dict(attributes_before(masked, m.start()))
        if "JsonIgnore" in attributes:
            continue
        fields.append(_field(attributes, m.group(2), m.group(3), "required" in modifiers))
    return fields


def _record_fields(components: str) -> list[ModelField]:
    fields = []
    for raw in split_params(components, angle=True):
        parsed = _declaration(raw)
        if parsed is None:
            continue
        attributes, type_name, name, default = parsed
        required = default is None and not type_name.endswith("?")
        fields.append(_field(attributes, type_name, name, required))
    return fields


def _unwrap_result(type_name: str) -> str:
    """`Task<ActionResult<IEnumerable<Item>>>` -> `IEnumerable<Item>`; bare results -> ``""``."""
    type_name = type_name.strip()
    while True:
        outer, args = generic_args(type_name)
        outer = outer.rsplit(".", 1)[-1]
        if outer in WRAPPER_TYPES and args:
            type_name = args[0]
            continue
        return "" if outer in RESULT_TYPES else type_name


def _csharp_literal(value: str | None):
    if value is None or value == "null" or value.startswith("default"):
        return None
    if value in ("true", "false"):
        return value == "true"
    text = unquote(value)
    if text is not None:
        return text
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value.rstrip("mMdDfF"))
    except ValueError:
        return None
