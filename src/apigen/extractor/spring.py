"""Spring Boot source extractor.

Pass one collects @RestController classes (with their class-level
@RequestMapping) and the DTO classes, records and enums they exchange.
Pass two walks each controller's top-level methods and reads the mapping
annotations and parameter bindings in front of them.
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
    string_list,
    strip_c_comments,
    strip_placeholder_constraints,
    strip_suffix,
    title_case,
    unquote,
)
from .source import ModelField, ModelInfo, RouteInfo, ScanContext, SourceExtractor, ViewInfo, router_key

JAVA_TYPE_MAP: dict[str, SchemaType] = {
    "String": SchemaType.STRING,
    "char": SchemaType.STRING,
    "Character": SchemaType.STRING,
    "CharSequence": SchemaType.STRING,
    "UUID": SchemaType.STRING,
    "LocalDate": SchemaType.STRING,
    "LocalDateTime": SchemaType.STRING,
    "LocalTime": SchemaType.STRING,
    "OffsetDateTime": SchemaType.STRING,
    "ZonedDateTime": SchemaType.STRING,
    "Instant": SchemaType.STRING,
    "Date": SchemaType.STRING,
    "MultipartFile": SchemaType.STRING,
    "Integer": SchemaType.INTEGER,
    "int": SchemaType.INTEGER,
    "Long": SchemaType.INTEGER,
    "long": SchemaType.INTEGER,
    "Short": SchemaType.INTEGER,
    "short": SchemaType.INTEGER,
    "Byte": SchemaType.INTEGER,
    "byte": SchemaType.INTEGER,
    "BigInteger": SchemaType.INTEGER,
    "Double": SchemaType.NUMBER,
    "double": SchemaType.NUMBER,
    "Float": SchemaType.NUMBER,
    "float": SchemaType.NUMBER,
    "BigDecimal": SchemaType.NUMBER,
    "Boolean": SchemaType.BOOLEAN,
    "boolean": SchemaType.BOOLEAN,
    "List": SchemaType.ARRAY,
    "ArrayList": SchemaType.ARRAY,
    "Set": SchemaType.ARRAY,
    "Map": SchemaType.OBJECT,
    "HashMap": SchemaType.OBJECT,
    "Object": SchemaType.OBJECT,
    "JsonNode": SchemaType.OBJECT,
}

JAVA_FORMATS = {
    "UUID": "uuid",
    "LocalDate": "date",
    "LocalDateTime": "date-time",
    "OffsetDateTime": "date-time",
    "ZonedDateTime": "date-time",
    "Instant": "date-time",
    "Date": "date-time",
    "LocalTime": "time",
    "Long": "int64",
    "long": "int64",
    "Integer": "int32",
    "int": "int32",
    "Double": "double",
    "double": "double",
    "Float": "float",
    "float": "float",
    "MultipartFile": "binary",
}

MAPPINGS = {
    "GetMapping": HttpMethod.GET,
    "PostMapping": HttpMethod.POST,
    "PutMapping": HttpMethod.PUT,
    "DeleteMapping": HttpMethod.DELETE,
    "PatchMapping": HttpMethod.PATCH,
    "RequestMapping": None,
}

HTTP_STATUS = {
    "OK": 200,
    "CREATED": 201,
    "ACCEPTED": 202,
    "NO_CONTENT": 204,
    "BAD_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
}

COLLECTION_TYPES = {"List", "ArrayList", "LinkedList", "Set", "HashSet", "SortedSet", "Collection", "Iterable", "Flux", "Stream"}
MAP_TYPES = {"Map", "HashMap", "LinkedHashMap", "TreeMap"}
WRAPPER_TYPES = {"ResponseEntity", "HttpEntity", "Mono", "CompletableFuture", "Callable", "DeferredResult", "Optional", "EntityModel"}
PAGE_TYPES = {"Page", "Slice"}
VOID_TYPES = {"void", "Void", "?", ""}
IGNORED_TYPES = {
    "HttpServletRequest", "HttpServletResponse", "ServletRequest", "ServletResponse", "HttpSession",
    "Principal", "Authentication", "BindingResult", "Errors", "Model", "ModelMap", "Locale",
    "UriComponentsBuilder", "WebRequest", "ServerWebExchange", "ServerHttpRequest", "RedirectAttributes",
}
REQUIRED_ANNOTATIONS = {"NotNull", "NotBlank", "NotEmpty"}
CONTROLLER_ANNOTATIONS = {"RestController", "Controller"}
MEDIA_TYPES = {
    "MULTIPART_FORM_DATA": "multipart/form-data",
    "APPLICATION_FORM_URLENCODED": "application/x-www-form-urlencoded",
    "APPLICATION_XML": "application/xml",
    "TEXT_PLAIN": "text/plain",
    "APPLICATION_JSON": "application/json",
}

_ANNOTATION = re.compile(r"@([\w.]+)\s*")
_METHOD = re.compile(
    r"(?<![\w.@])((?:(?:public|protected|private|static|final|synchronized|abstract|default)\s+)*)"
    r"(?:<[^;{}()]*>\s+)?([\w.]+(?:\s*<[^;{}()]*>)?(?:\[\])*)\s+(\w+)\s*(?=\()"
)
_FIELD = re.compile(
    r"(?<![\w.])((?:(?:private|protected|public|static|final|transient|volatile)\s+)+)"
    r"([\w.]+(?:\s*<[^;{}()=]*>)?(?:\[\])*)\s+(\w+)\s*(?:=[^;]*)?;"
)
_ARTIFACT = re.compile(r"<artifactId>\s*([^<\s]+)\s*</artifactId>")
_ROOT_PROJECT = re.compile(r"""rootProject\.name\s*=\s*["']([^"']+)["']""")
_DIGITS = re.compile(r"^(?:\\d|\[0-9\])[+*]?(?:\{\d+(?:,\d*)?\})?$")


def annotations_before(text: str, start: int) -> list[tuple[str, str]]:
    """(name, args) of the annotations written directly in front of ``start``."""
    found: list[tuple[str, str]] = []
    i = text.rfind(";", 0, start) + 1
    while i < start:
        ch = text[i]
        if ch == "@":
            m = _ANNOTATION.match(text, i)
            if m and m.group(1) != "interface":
                i = m.end()
                args = ""
                if text.startswith("(", i):
                    block = read_balanced(text, i)
                    if block:
                        args, i = block
                found.append((m.group(1).rsplit(".", 1)[-1], args))
                continue
        elif ch in "{}":
            found = []
        i += 1
    return found


def leading_annotations(text: str) -> tuple[dict[str, str], str]:
    """Split `@PathVariable("id") final Long id` into annotations and the rest."""
    annotations: dict[str, str] = {}
    text = text.strip()
    while text.startswith("@"):
        m = _ANNOTATION.match(text)
        if not m:
            break
        rest = text[m.end():]
        args = ""
        if rest.startswith("("):
            block = read_balanced(rest, 0)
            if block is None:
                break
            args, end = block
            rest = rest[end:]
        annotations[m.group(1).rsplit(".", 1)[-1]] = args
        text = rest.strip()
    return annotations, text


def annotation_value(args: str, *keys: str) -> str | None:
    """The annotation's `value` (first positional) or one of ``keys``."""
    for key in ("value", *keys):
        raw = keyword_arg(args, key)
        if raw is not None:
            return raw
    positional = positional_args(args)
    return positional[0] if positional else None


def _declaration(raw: str) -> tuple[dict[str, str], str, str] | None:
    annotations, rest = leading_annotations(raw)
    rest = re.sub(r"^(?:final\s+)", "", rest).replace("...", "[] ")
    parts = rest.rsplit(None, 1)
    if len(parts) != 2:
        return None
    return annotations, parts[0].strip(), parts[1].strip()


class SpringBootExtractor(SourceExtractor):
    project_type = ProjectType.SPRING_BOOT
    name = "spring-boot"
    display_name = "Spring Boot"
    extensions = (".java",)
    extra_ignored = ("generated", ".gradle", ".mvn")
    searched_patterns = ("@RestController", "@RequestMapping(...)", "@GetMapping(...)", "@PostMapping(...)")
    type_map = JAVA_TYPE_MAP

    # -- pass one ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        text = strip_c_comments(text)
        for kind, name, components, bases, body, start in c_classes(text):
            annotations = dict(annotations_before(text, start))
            if kind == "class" and CONTROLLER_ANNOTATIONS & annotations.keys():
                mapping = annotations.get("RequestMapping", "")
                paths = string_list(annotation_value(mapping, "path")) if mapping else []
                attributes = {}
                tag = annotations.get("Tag")
                if tag is not None:
                    attributes["tag"] = unquote(keyword_arg(tag, "name")) or ""
                ctx.views[router_key(path, name)] = ViewInfo(
                    name=name,
                    file=path,
                    bases=bases,
                    attributes=attributes,
                    body=body,
                    base_path=paths[0] if paths else "",
                )
            elif kind == "enum":
                constants = split_params(body.split(";", 1)[0])
                values = [m.group(0) for m in (re.match(r"\w+", c) for c in constants) if m]
                ctx.models[name] = ModelInfo(name=name, file=path, meta={"enum": values})
            elif kind == "record":
                ctx.models[name] = ModelInfo(name=name, file=path, fields=_record_fields(components))
            elif kind == "class":
                ctx.models[name] = ModelInfo(name=name, file=path, bases=bases, fields=_class_fields(body))

    # -- pass two ----

    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        routes = []
        for view in ctx.views.values():
            if view.file == path:
                routes.extend(self._controller_routes(view))
        return routes

    def _controller_routes(self, view: ViewInfo) -> list[RouteInfo]:
        routes = []
        body = view.body
        masked = mask_blocks(body)
        group = strip_suffix(view.name, ("Controller",))
        for m in _METHOD.finditer(masked):
            if masked.count("(", 0, m.start()) != masked.count(")", 0, m.start()):
                continue
            annotations = dict(annotations_before(masked, m.start()))
            mapping = next((a for a in MAPPINGS if a in annotations), None)
            if mapping is None:
                continue
            args = annotations[mapping]
            params = read_balanced(body, m.end())
            if params is None:
                continue
            signature, end = params
            block_start = body.find("{", end)
            handler_body = ""
            if block_start != -1 and not body[end:block_start].strip(" \n\t").endswith(";"):
                block = read_balanced(body, block_start, "{", "}")
                handler_body = block[0] if block else ""

            methods = [MAPPINGS[mapping]] if MAPPINGS[mapping] else [
                HttpMethod(v) for v in re.findall(r"RequestMethod\.(\w+)", keyword_arg(args, "method") or "")
                if v in HttpMethod.__members__
            ] or [HttpMethod.GET]
            paths = string_list(annotation_value(args, "path")) or [""]
            operation = annotations.get("Operation")
            summary = unquote(keyword_arg(operation, "summary")) if operation is not None else None
            consumes = keyword_arg(args, "consumes") or ""

            for raw_path in paths:
                full = join_paths(view.base_path, raw_path)
                for method in methods:
                    routes.append(RouteInfo(
                        method=method,
                        path=strip_placeholder_constraints(full),
                        handler=m.group(3),
                        file=view.file,
                        signature=signature,
                        body=handler_body,
                        group=group,
                        summary=summary or title_case(m.group(3)),
                        tags=[view.attributes["tag"]] if view.attributes.get("tag") else [],
                        deprecated="Deprecated" in annotations,
                        status_code=_response_status(annotations.get("ResponseStatus")),
                        response_type=m.group(2),
                        extra={"constraints": placeholder_constraints(full), "consumes": _media_type(consumes)},
                    ))
        return routes

    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        placeholders = extract_path_params(route.path)
        params: list[Parameter] = []
        body: RequestBody | None = None
        form_fields: dict[str, tuple[Schema, bool]] = {}
        validated = False

        for raw in split_params(route.signature, angle=True):
            parsed = _declaration(raw)
            if parsed is None:
                continue
            annotations, type_name, var = parsed
            outer = generic_args(type_name)[0].rsplit(".", 1)[-1]
            if outer in IGNORED_TYPES or "AuthenticationPrincipal" in annotations:
                continue
            if outer == "Pageable":
                params.extend(_pageable_params())
                continue
            optional = outer == "Optional"
            schema = self.type_schema(type_name, ctx)

            if "PathVariable" in annotations:
                name = unquote(annotation_value(annotations["PathVariable"], "name")) or var
                params.append(Parameter(name=name, location=ParameterLocation.PATH, schema=schema))
            elif "RequestBody" in annotations:
                validated = validated or bool({"Valid", "Validated"} & annotations.keys())
                required = (keyword_arg(annotations["RequestBody"], "required") or "true") != "false" and not optional
                body = RequestBody(required=required, content_type=route.extra.get("consumes") or "application/json", schema=schema)
            elif "RequestPart" in annotations or outer == "MultipartFile":
                args = annotations.get("RequestPart") or annotations.get("RequestParam") or ""
                name = unquote(annotation_value(args, "name")) or var
                form_fields[name] = (schema, _binding_required(args, optional))
            elif "RequestHeader" in annotations or "CookieValue" in annotations:
                key = "RequestHeader" if "RequestHeader" in annotations else "CookieValue"
                args = annotations[key]
                params.append(Parameter(
                    name=unquote(annotation_value(args, "name")) or var,
                    location=ParameterLocation.HEADER if key == "RequestHeader" else ParameterLocation.COOKIE,
                    required=_binding_required(args, optional),
                    schema=schema,
                    default=unquote(keyword_arg(args, "defaultValue")),
                ))
            elif "RequestParam" in annotations:
                args = annotations["RequestParam"]
                params.append(Parameter(
                    name=unquote(annotation_value(args, "name")) or var,
                    location=ParameterLocation.QUERY,
                    required=_binding_required(args, optional),
                    schema=schema,
                    default=unquote(keyword_arg(args, "defaultValue")),
                ))
            elif var in placeholders:
                params.append(Parameter(name=var, location=ParameterLocation.PATH, schema=schema))
            elif outer in ctx.models and "enum" not in ctx.models[outer].meta:
                # unannotated DTOs bind their fields from the query string
                for f in self.model_fields(ctx.models[outer], ctx):
                    params.append(Parameter(
                        name=f.name,
                        location=ParameterLocation.QUERY,
                        schema=self.type_schema(f.type_name, ctx),
                        description=f.description,
                    ))
            else:
                params.append(Parameter(name=var, location=ParameterLocation.QUERY, schema=schema))

        if form_fields and body is None:
            body = RequestBody(
                content_type="multipart/form-data",
                schema=Schema(
                    type=SchemaType.OBJECT,
                    properties={name: s for name, (s, _) in form_fields.items()},
                    required=[name for name, (_, req) in form_fields.items() if req] or None,
                ),
            )

        hints = {
            name: Schema(type=SchemaType.INTEGER)
            for name, constraint in route.extra.get("constraints", {}).items()
            if _DIGITS.match(constraint)
        }
        return Endpoint(
            method=route.method,
            path=route.path,
            summary=route.summary,
            operation_id=route.handler,
            tags=route.tags,
            parameters=reconcile_path_params(route.path, params, hints),
            request_body=body,
            responses=self._responses(route, ctx, validated),
            deprecated=route.deprecated,
        )

    def _responses(self, route: RouteInfo, ctx: ScanContext, validated: bool) -> list[Response]:
        status = route.status_code or 200
        inner = _unwrap_response(route.response_type or "")
        schema = None
        if status != 204 and inner not in VOID_TYPES:
            schema = self.type_schema(inner, ctx)
        responses = [default_response(status, schema)]
        if validated:
            responses.append(default_response(400))
        return responses

    def project_title(self, root: Path) -> str:
        pom = root / "pom.xml"
        if pom.is_file():
            text = re.sub(r"<parent>.*?</parent>", "", pom.read_text(encoding="utf-8", errors="replace"), flags=re.S)
            m = _ARTIFACT.search(text)
            if m:
                return m.group(1)
        for settings in ("settings.gradle", "settings.gradle.kts"):
            path = root / settings
            if path.is_file():
                m = _ROOT_PROJECT.search(path.read_text(encoding="utf-8", errors="replace"))
                if m:
                    return m.group(1)
        return super().project_title(root)

    # -- types ----

    def type_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        type_name = type_name.strip()
        if type_name.endswith("[]"):
            item = type_name[:-2].strip()
            if item == "byte":
                return Schema(type=SchemaType.STRING, format="binary")
            return Schema(type=SchemaType.ARRAY, items=self.type_schema(item, ctx, seen))

        outer, args = generic_args(type_name)
        outer = outer.rsplit(".", 1)[-1]
        if outer in WRAPPER_TYPES and args:
            schema = self.type_schema(args[0], ctx, seen)
            if outer == "Optional":
                schema.nullable = True
            return schema
        if outer in COLLECTION_TYPES:
            items = self.type_schema(args[0], ctx, seen) if args else Schema(type=SchemaType.OBJECT)
            return Schema(type=SchemaType.ARRAY, items=items)
        if outer in MAP_TYPES:
            value = self.type_schema(args[-1], ctx, seen) if len(args) == 2 else True
            return Schema(type=SchemaType.OBJECT, additional_properties=value)
        if outer in PAGE_TYPES:
            items = self.type_schema(args[0], ctx, seen) if args else Schema(type=SchemaType.OBJECT)
            return Schema(type=SchemaType.OBJECT, properties={
                "content": Schema(type=SchemaType.ARRAY, items=items),
                "totalElements": Schema(type=SchemaType.INTEGER),
                "totalPages": Schema(type=SchemaType.INTEGER),
                "number": Schema(type=SchemaType.INTEGER),
                "size": Schema(type=SchemaType.INTEGER),
            })

        model = ctx.models.get(outer)
        if model is not None and "enum" in model.meta:
            return Schema(type=SchemaType.STRING, enum=model.meta["enum"] or None)
        if model is not None:
            return self.model_schema(outer, ctx, seen)
        if outer in JAVA_TYPE_MAP:
            return Schema(type=JAVA_TYPE_MAP[outer], format=JAVA_FORMATS.get(outer))
        return Schema(type=SchemaType.OBJECT)


def _field(annotations: dict[str, str], type_name: str, name: str) -> ModelField:
    json_name = unquote(annotation_value(annotations["JsonProperty"])) if "JsonProperty" in annotations else None
    doc = annotations.get("Schema")
    return ModelField(
        name=json_name or name,
        type_name=type_name,
        required=bool(REQUIRED_ANNOTATIONS & annotations.keys()),
        description=unquote(keyword_arg(doc, "description")) if doc else None,
    )


def _class_fields(body: str) -> list[ModelField]:
    masked = mask_blocks(body)
    fields = []
    for m in _FIELD.finditer(masked):
        if "static" in m.group(1).split():
            continue
        annotations = dict(annotations_before(masked, m.start()))
        fields.append(_field(annotations, m.group(2), m.group(3)))
    return fields


def _record_fields(components: str) -> list[ModelField]:
    fields = []
    for raw in split_params(components, angle=True):
        parsed = _declaration(raw)
        if parsed is not None:
            fields.append(_field(*parsed))
    return fields


def _binding_required(args: str, optional: bool) -> bool:
    if optional or keyword_arg(args, "defaultValue") is not None:
        return False
    return (keyword_arg(args, "required") or "true").strip() != "false"


def _response_status(args: str | None) -> int | None:
    if args is None:
        return None
    raw = annotation_value(args, "code") or ""
    m = re.search(r"HttpStatus\.(\w+)", raw)
    if m:
        return HTTP_STATUS.get(m.group(1))
    return int(raw) if raw.strip().isdigit() else None


def _media_type(raw: str) -> str | None:
    for constant, media_type in MEDIA_TYPES.items():
        if constant in raw:
            return media_type
    values = string_list(raw)
    return values[0] if values else None


def _unwrap_response(type_name: str) -> str:
    type_name = type_name.strip()
    while True:
        outer, args = generic_args(type_name)
        if outer.rsplit(".", 1)[-1] not in WRAPPER_TYPES:
            return type_name
        if not args:
            return ""
        type_name = args[0]


def _pageable_params() -> list[Parameter]:
    return [
        Parameter(name="page", location=ParameterLocation.QUERY, schema=Schema(type=SchemaType.INTEGER), default=0),
        Parameter(name="size", location=ParameterLocation.QUERY, schema=Schema(type=SchemaType.INTEGER), default=20),
        Parameter(name="sort", location=ParameterLocation.QUERY, schema=Schema(type=SchemaType.STRING)),
    ]
