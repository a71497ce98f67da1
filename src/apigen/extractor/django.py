"""Django REST Framework source extractor.

Pass one records serializers, Django models, ViewSets, APIViews, @api_view
functions, routers and their registrations, and the urlpatterns that mount
views and includes. Routes are produced once every file was seen, since a
router registration usually lives far from the ViewSet it names.

ViewSet routes come from the action table below. When a registration's
capabilities cannot be determined (class not found, or a bare ViewSet that
defines no actions) the full CRUD set is generated. That over-generation is
deliberate and a known source of false positives.
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
    base_name,
    docstring_summary,
    indented_block,
    join_paths,
    keyword_arg,
    positional_args,
    python_classes,
    read_balanced,
    read_source,
    reconcile_path_params,
    string_list,
    strip_suffix,
    title_case,
    unquote,
)
from .source import ModelField, ModelInfo, Registration, RouteInfo, RouterInfo, ScanContext, SourceExtractor, ViewInfo, router_key

DJANGO_FIELD_MAP: dict[str, SchemaType] = {
    "CharField": SchemaType.STRING,
    "TextField": SchemaType.STRING,
    "EmailField": SchemaType.STRING,
    "URLField": SchemaType.STRING,
    "SlugField": SchemaType.STRING,
    "UUIDField": SchemaType.STRING,
    "IPAddressField": SchemaType.STRING,
    "GenericIPAddressField": SchemaType.STRING,
    "FileField": SchemaType.STRING,
    "ImageField": SchemaType.STRING,
    "ChoiceField": SchemaType.STRING,
    "IntegerField": SchemaType.INTEGER,
    "SmallIntegerField": SchemaType.INTEGER,
    "BigIntegerField": SchemaType.INTEGER,
    "PositiveIntegerField": SchemaType.INTEGER,
    "PositiveSmallIntegerField": SchemaType.INTEGER,
    "AutoField": SchemaType.INTEGER,
    "BigAutoField": SchemaType.INTEGER,
    "ForeignKey": SchemaType.INTEGER,
    "OneToOneField": SchemaType.INTEGER,
    "PrimaryKeyRelatedField": SchemaType.INTEGER,
    "FloatField": SchemaType.NUMBER,
    "DecimalField": SchemaType.NUMBER,
    "BooleanField": SchemaType.BOOLEAN,
    "NullBooleanField": SchemaType.BOOLEAN,
    "DateField": SchemaType.STRING,
    "DateTimeField": SchemaType.STRING,
    "TimeField": SchemaType.STRING,
    "DurationField": SchemaType.STRING,
    "ListField": SchemaType.ARRAY,
    "MultipleChoiceField": SchemaType.ARRAY,
    "ManyToManyField": SchemaType.ARRAY,
    "DictField": SchemaType.OBJECT,
    "JSONField": SchemaType.OBJECT,
    "HStoreField": SchemaType.OBJECT,
    "StringRelatedField": SchemaType.STRING,
    "SlugRelatedField": SchemaType.STRING,
    "HyperlinkedRelatedField": SchemaType.STRING,
    "HyperlinkedIdentityField": SchemaType.STRING,
    "SerializerMethodField": SchemaType.STRING,
    "ReadOnlyField": SchemaType.STRING,
}

DJANGO_FORMATS = {
    "EmailField": "email",
    "URLField": "uri",
    "UUIDField": "uuid",
    "DateField": "date",
    "DateTimeField": "date-time",
    "TimeField": "time",
    "FileField": "binary",
    "ImageField": "binary",
}

# action -> (HTTP method, operates on a single object)
ACTIONS: dict[str, tuple[HttpMethod, bool]] = {
    "list": (HttpMethod.GET, False),
    "create": (HttpMethod.POST, False),
    "retrieve": (HttpMethod.GET, True),
    "update": (HttpMethod.PUT, True),
    "partial_update": (HttpMethod.PATCH, True),
    "destroy": (HttpMethod.DELETE, True),
}
CRUD = tuple(ACTIONS)

VIEWSET_ACTIONS: dict[str, tuple[str, ...]] = {
    "ModelViewSet": CRUD,
    "ReadOnlyModelViewSet": ("list", "retrieve"),
    "ListModelMixin": ("list",),
    "CreateModelMixin": ("create",),
    "RetrieveModelMixin": ("retrieve",),
    "UpdateModelMixin": ("update", "partial_update"),
    "DestroyModelMixin": ("destroy",),
}
GENERIC_VIEWSETS = {"ViewSet", "GenericViewSet", "ViewSetMixin"}

APIVIEW_METHODS: dict[str, tuple[HttpMethod, ...]] = {
    "APIView": (HttpMethod.GET, HttpMethod.POST, HttpMethod.PUT, HttpMethod.DELETE),
    "GenericAPIView": (HttpMethod.GET, HttpMethod.POST, HttpMethod.PUT, HttpMethod.DELETE),
    "CreateAPIView": (HttpMethod.POST,),
    "ListAPIView": (HttpMethod.GET,),
    "RetrieveAPIView": (HttpMethod.GET,),
    "DestroyAPIView": (HttpMethod.DELETE,),
    "UpdateAPIView": (HttpMethod.PUT, HttpMethod.PATCH),
    "ListCreateAPIView": (HttpMethod.GET, HttpMethod.POST),
    "RetrieveUpdateAPIView": (HttpMethod.GET, HttpMethod.PUT, HttpMethod.PATCH),
    "RetrieveDestroyAPIView": (HttpMethod.GET, HttpMethod.DELETE),
    "RetrieveUpdateDestroyAPIView": (HttpMethod.GET, HttpMethod.PUT, HttpMethod.PATCH, HttpMethod.DELETE),
}

PATH_CONVERTERS = {"int": SchemaType.INTEGER, "str": SchemaType.STRING, "slug": SchemaType.STRING, "uuid": SchemaType.STRING, "path": SchemaType.STRING}
DEFAULT_ROUTER_PREFIX = "/api"
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}
_HTTP_VERBS = {m.value.lower() for m in HttpMethod}

_ROUTER = re.compile(r"^\s*(\w+)\s*=\s*(?:routers\.)?(DefaultRouter|SimpleRouter|ExtendedSimpleRouter|\w*Router)\s*(?=\()", re.M)
_REGISTER = re.compile(r"\b(\w+)\.register\s*(?=\()")
_URL = re.compile(r"\b(re_path|path|url)\s*(?=\()")
_API_VIEW = re.compile(r"@api_view\s*\(\s*\[([^\]]*)\]\s*\)")
_ACTION = re.compile(r"@action\s*(?=\()")
_DEF = re.compile(r"(?:async\s+)?def\s+(\w+)\s*(?=\()")
_FIELD_ASSIGN = re.compile(r"^(\w+)\s*=\s*([\w.]+)\s*\(", re.S)
_ATTR = re.compile(r"^(\w+)\s*=\s*(.+)$")
_CONVERTER = re.compile(r"<(?:(\w+):)?(\w+)>")
_NAMED_GROUP = re.compile(r"\(\?P<(\w+)>[^)]*\)")
_SETTINGS_MODULE = re.compile(r"""DJANGO_SETTINGS_MODULE["']\s*,\s*["']([\w.]+)["']""")
_ROOT_URLCONF = re.compile(r"""ROOT_URLCONF\s*=\s*["']([\w.]+)["']""")
_URLS_STANDALONE = re.compile(r"(?<!include\()\b(\w+)\.urls\b")
_DATA_ACCESS = r"(?:\.get\(\s*['\"](\w+)['\"]|\[\s*['\"](\w+)['\"]\s*\])"


class DjangoRestExtractor(SourceExtractor):
    project_type = ProjectType.DJANGO_REST
    name = "django-rest"
    display_name = "Django REST Framework"
    extensions = (".py",)
    extra_ignored = ("migrations", "static", "templates")
    searched_patterns = ("router.register(...)", "class ...(ModelViewSet)", "class ...(APIView)", "@api_view([...])", "path(...)")
    type_map = DJANGO_FIELD_MAP

    # -- pass one ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        for name, bases, body in python_classes(text):
            names = [base_name(b) for b in bases]
            if any(b.endswith("Serializer") for b in names):
                ctx.models[name] = _serializer(name, names, body, path)
            elif "Model" in names or any(b.endswith(".Model") for b in bases):
                ctx.models[name] = _django_model(name, names, body, path)
            elif any(_is_view_base(b) for b in names):
                ctx.views[name] = _view(name, names, body, path)

        for m in _API_VIEW.finditer(text):
            handler = _DEF.search(text, m.end())
            if not handler:
                continue
            methods = [v.upper() for v in string_list("[" + m.group(1) + "]")] or ["GET"]
            signature = read_balanced(text, handler.end())
            ctx.views[handler.group(1)] = ViewInfo(
                name=handler.group(1),
                file=path,
                bases=["api_view"],
                methods=methods,
                body=indented_block(text, signature[1] if signature else handler.end()),
            )

        for m in _ROUTER.finditer(text):
            ctx.routers[router_key(path, m.group(1))] = RouterInfo(var=m.group(1), file=path)

        for m in _REGISTER.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            positional = positional_args(args[0])
            prefix = unquote(positional[0]) if positional else unquote(keyword_arg(args[0], "prefix"))
            view = positional[1] if len(positional) > 1 else keyword_arg(args[0], "viewset")
            if prefix is None or not view:
                continue
            ctx.registrations.append(Registration(prefix=prefix, view=base_name(view), file=path, router=m.group(1)))

        self._scan_urlpatterns(path, text, ctx)

    def _scan_urlpatterns(self, path: Path, text: str, ctx: ScanContext) -> None:
        for m in _URL.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            positional = positional_args(args[0])
            if len(positional) < 2:
                continue
            route = unquote(positional[0])
            if route is None:
                continue
            if m.group(1) != "path":
                route = _regex_route(route)
            target = positional[1].strip()

            include = re.match(r"^include\s*\(", target)
            if include:
                inner = read_balanced(target, include.end() - 1)
                include_args = positional_args(inner[0]) if inner else []
                if not include_args:
                    continue
                first = include_args[0]
                module = unquote(first)
                if module is not None:
                    ctx.mounts[f"module:{module}"] = (route, path)
                elif first.endswith(".urls"):
                    ctx.mounts[f"router:{router_key(path, first[:-5])}"] = (route, path)
                continue

            view = re.match(r"^([\w.]+?)(?:\.as_view\s*\(.*\))?$", target, re.S)
            if view:
                ctx.url_paths.setdefault(base_name(view.group(1)), (route, path))

        for m in _URLS_STANDALONE.finditer(text):
            ctx.mounts.setdefault(f"router:{router_key(path, m.group(1))}", ("", path))

    # -- pass two ----

    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        return []

    def finalize_routes(self, ctx: ScanContext) -> list[RouteInfo]:
        routes: list[RouteInfo] = []
        for reg in ctx.registrations:
            routes.extend(self._viewset_routes(reg, ctx))
        registered = {reg.view for reg in ctx.registrations}
        for view_name, (route, path) in ctx.url_paths.items():
            view = ctx.views.get(view_name)
            if view is None or view_name in registered:
                continue
            routes.extend(self._view_routes(view, route, path, ctx))
        return routes

    def _viewset_routes(self, reg: Registration, ctx: ScanContext) -> list[RouteInfo]:
        view = ctx.views.get(reg.view)
        mount = self._router_mount(reg, ctx)
        if mount is not None:
            route, including = mount
            base = join_paths(self._file_prefix(including, ctx), _django_route(route)[0])
        else:
            base = DEFAULT_ROUTER_PREFIX
        base = join_paths(base, reg.prefix)

        lookup = "id"
        actions = self._viewset_actions(view, ctx) if view is not None else None
        if view is not None:
            lookup = unquote(view.attributes.get("lookup_url_kwarg")) or unquote(view.attributes.get("lookup_field")) or "id"
        if actions is None:
            self.logger.debug("viewset_full_crud", view=reg.view, prefix=reg.prefix)
            actions = list(CRUD)

        detail_path = join_paths(base, "{" + lookup + "}")
        routes = []
        for action in actions:
            method, detail = ACTIONS[action]
            routes.append(RouteInfo(
                method=method,
                path=detail_path if detail else base,
                handler=f"{reg.view}.{action}",
                file=view.file if view else reg.file,
                group=reg.view,
                summary=f"{title_case(action)} {title_case(_display_name(reg.view))}",
                extra={"view": reg.view, "action": action, "detail": detail, "lookup": lookup},
            ))

        for fn, (methods, detail, url_path) in _extra_actions(view).items() if view else []:
            path = join_paths(detail_path if detail else base, url_path or fn)
            for method in methods:
                routes.append(RouteInfo(
                    method=method,
                    path=path,
                    handler=f"{reg.view}.{fn}",
                    file=view.file,
                    group=reg.view,
                    summary=title_case(fn),
                    extra={"view": reg.view, "action": fn, "detail": detail, "lookup": lookup},
                ))
        return routes

    def _router_mount(self, reg: Registration, ctx: ScanContext) -> tuple[str, Path] | None:
        """Route and including file of the urlpatterns entry mounting a registration's router."""
        target = self.resolve_router(reg.router, reg.file, ctx)
        for key, (route, including) in ctx.mounts.items():
            if not key.startswith("router:"):
                continue
            expr = key.rpartition(":")[2]
            if target is not None:
                if self.resolve_router(expr, including, ctx) == target:
                    return route, including
            elif base_name(expr) == reg.router:
                return route, including
        return None

    def _viewset_actions(self, view: ViewInfo, ctx: ScanContext, _seen: frozenset[str] = frozenset()) -> list[str] | None:
        """Actions a ViewSet supports, or None when that cannot be determined."""
        found: list[str] = []
        determinable = False
        for base in view.bases:
            if base in VIEWSET_ACTIONS:
                found.extend(VIEWSET_ACTIONS[base])
                determinable = True
            elif base in ctx.views and base not in _seen and base != view.name:
                inherited = self._viewset_actions(ctx.views[base], ctx, _seen | {view.name})
                if inherited is not None:
                    found.extend(inherited)
                    determinable = True
        own = [m for m in view.methods if m in ACTIONS]
        if own:
            found.extend(own)
            determinable = True
        if not determinable:
            return None
        return [a for a in CRUD if a in found]

    def _view_routes(self, view: ViewInfo, route: str, path: Path, ctx: ScanContext) -> list[RouteInfo]:
        route_path, converters = _django_route(route)
        full = join_paths(self._file_prefix(path, ctx), route_path)
        if "api_view" in view.bases:
            methods = [HttpMethod(m) for m in view.methods if m in HttpMethod.__members__]
        else:
            own = [HttpMethod(m.upper()) for m in view.methods if m in _HTTP_VERBS]
            methods = own or _apiview_methods(view, ctx)
        return [
            RouteInfo(
                method=method,
                path=full,
                handler=view.name,
                file=view.file,
                body=view.body,
                group=view.name,
                summary=docstring_summary(view.body) or f"{method.value} {title_case(_display_name(view.name))}",
                extra={"view": view.name, "converters": converters, "detail": bool(converters)},
            )
            for method in methods
        ]

    def _file_prefix(self, path: Path, ctx: ScanContext, _seen: frozenset[Path] = frozenset()) -> str:
        """Prefix under which a urls module is included, following include chains."""
        if path in _seen:
            return ""
        try:
            module = ".".join(path.resolve().relative_to(ctx.root.resolve()).with_suffix("").parts)
        except ValueError:
            return ""
        for key, (route, including) in ctx.mounts.items():
            if key.startswith("module:") and (key[7:] == module or module.endswith("." + key[7:])):
                return join_paths(self._file_prefix(including, ctx, _seen | {path}), _django_route(route)[0])
        return ""

    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        view = ctx.views.get(route.extra.get("view", ""))
        lookup = route.extra.get("lookup", "id")
        hints = {lookup: Schema(type=SchemaType.INTEGER if lookup in ("id", "pk") else SchemaType.STRING)}
        for name, conv in route.extra.get("converters", {}).items():
            hints[name] = Schema(type=PATH_CONVERTERS.get(conv, SchemaType.STRING), format="uuid" if conv == "uuid" else None)

        serializer = self._serializer_schema(view, ctx)
        params = self._query_params(view, route)
        request_body = None
        if route.method in BODY_METHODS:
            schema = serializer or _data_schema(route.body)
            if route.method == HttpMethod.PATCH:
                schema = schema.model_copy(update={"required": None})
            request_body = RequestBody(required=route.method != HttpMethod.PATCH, schema=schema)

        return Endpoint(
            method=route.method,
            path=route.path,
            summary=route.summary,
            operation_id=route.handler.replace(".", "_"),
            tags=[_display_name(route.group or "")] if route.group else [],
            parameters=reconcile_path_params(route.path, params, hints),
            request_body=request_body,
            responses=_responses(route, serializer),
        )

    def _serializer_schema(self, view: ViewInfo | None, ctx: ScanContext) -> Schema | None:
        if view is None:
            return None
        name = base_name(view.attributes.get("serializer_class", ""))
        if name and name in ctx.models:
            return self.model_schema(name, ctx)
        return None

    def _query_params(self, view: ViewInfo | None, route: RouteInfo) -> list[Parameter]:
        params: dict[str, Parameter] = {}
        for m in re.finditer(r"request\.(?:query_params|GET)" + _DATA_ACCESS, route.body):
            name = m.group(1) or m.group(2)
            params.setdefault(name, Parameter(name=name, location=ParameterLocation.QUERY, required=bool(m.group(2))))
        if view is not None and route.extra.get("action") == "list":
            for field in string_list(view.attributes.get("filterset_fields")):
                params.setdefault(field, Parameter(name=field, location=ParameterLocation.QUERY))
            if view.attributes.get("search_fields"):
                params.setdefault("search", Parameter(name="search", location=ParameterLocation.QUERY, description="Search term"))
            if view.attributes.get("ordering_fields"):
                params.setdefault("ordering", Parameter(name="ordering", location=ParameterLocation.QUERY, description="Field to order by"))
        return list(params.values())

    def group_name(self, route: RouteInfo, ctx: ScanContext) -> str:
        return title_case(_display_name(route.group or "")) or "Default"

    def project_title(self, root: Path) -> str:
        candidates = [(root / "manage.py", _SETTINGS_MODULE)]
        candidates += [(settings, _ROOT_URLCONF) for settings in sorted(root.glob("*/settings.py"))]
        for candidate, pattern in candidates:
            if not candidate.is_file():
                continue
            try:
                m = pattern.search(read_source(candidate))
            except (OSError, UnicodeDecodeError):
                continue
            if m:
                return m.group(1).split(".", 1)[0]
        return super().project_title(root)

    # -- schemas ----

    def type_schema(self, type_name: str, ctx: ScanContext, seen: frozenset[str] = frozenset()) -> Schema:
        if type_name.endswith("[]"):
            return Schema(type=SchemaType.ARRAY, items=self.type_schema(type_name[:-2], ctx, seen))
        if type_name in ctx.models:
            return self.model_schema(type_name, ctx, seen)
        mapped = DJANGO_FIELD_MAP.get(type_name)
        if mapped is not None:
            return Schema(type=mapped, format=DJANGO_FORMATS.get(type_name))
        return Schema(type=SchemaType.STRING)

    def model_fields(self, model: ModelInfo, ctx: ScanContext, _visited: frozenset[str] = frozenset()) -> list[ModelField]:
        fields = {f.name: f for f in super().model_fields(model, ctx, _visited)}
        if model.meta.get("kind") != "serializer":
            return list(fields.values())

        source = ctx.models.get(model.meta.get("model", ""))
        source_fields = {f.name: f for f in self.model_fields(source, ctx)} if source is not None else {}
        declared = model.meta.get("fields")
        if declared == "__all__":
            names = list(source_fields) + [n for n in fields if n not in source_fields]
        elif declared:
            names = list(declared)
        else:
            names = list(fields)
        excluded = set(model.meta.get("exclude", []))
        read_only = set(model.meta.get("read_only_fields", []))

        result = []
        for name in names:
            if name in excluded:
                continue
            f = fields.get(name) or source_fields.get(name) or ModelField(name=name, type_name="CharField", required=False)
            if name in read_only or name in ("id", "pk"):
                f = ModelField(name=f.name, type_name=f.type_name, required=False, default=f.default, description=f.description)
            result.append(f)
        return result


# -- pass one helpers -------------------------------------------------------


def _is_view_base(name: str) -> bool:
    return (
        name.endswith(("ViewSet", "APIView", "ModelMixin"))
        or name in APIVIEW_METHODS
        or name in VIEWSET_ACTIONS
        or name in GENERIC_VIEWSETS
    )


def _first_level_lines(body: str) -> list[str]:
    lines = [line for line in body.split("\n") if line.strip()]
    if not lines:
        return []
    indent = len(lines[0]) - len(lines[0].lstrip())
    return [line.strip() for line in lines if len(line) - len(line.lstrip()) == indent]


def _field_call(line: str) -> tuple[str, str, str] | None:
    """`name = serializers.CharField(args)` -> (name, CharField, args)."""
    m = _FIELD_ASSIGN.match(line)
    if not m:
        return None
    call = read_balanced(line, m.end() - 1)
    return m.group(1), base_name(m.group(2)), call[0] if call else ""


def _serializer(name: str, bases: list[str], body: str, path: Path) -> ModelInfo:
    fields = []
    for line in _first_level_lines(body):
        parsed = _field_call(line)
        if parsed is None:
            continue
        field_name, field_type, args = parsed
        if field_type.endswith("Serializer") and keyword_arg(args, "many") == "True":
            field_type += "[]"
        required = (
            keyword_arg(args, "read_only") != "True"
            and keyword_arg(args, "required") != "False"
            and keyword_arg(args, "default") is None
        )
        fields.append(ModelField(
            name=field_name,
            type_name=field_type,
            required=required,
            description=unquote(keyword_arg(args, "help_text")),
        ))

    meta: dict = {"kind": "serializer"}
    meta_block = re.search(r"^([ \t]+)class\s+Meta\s*(?:\([^)]*\))?\s*:", body, re.M)
    if meta_block:
        for line in _first_level_lines(indented_block(body, meta_block.end() - 1)):
            m = _ATTR.match(line)
            if not m:
                continue
            key, value = m.group(1), m.group(2).strip()
            if key == "model":
                meta["model"] = base_name(value)
            elif key == "fields":
                meta["fields"] = "__all__" if unquote(value) == "__all__" else string_list(value)
            elif key in ("exclude", "read_only_fields"):
                meta[key] = string_list(value)
    return ModelInfo(name=name, fields=fields, bases=bases, file=path, meta=meta)


def _django_model(name: str, bases: list[str], body: str, path: Path) -> ModelInfo:
    fields = [ModelField(name="id", type_name="AutoField", required=False)]
    for line in _first_level_lines(body):
        parsed = _field_call(line)
        if parsed is None or parsed[1] not in DJANGO_FIELD_MAP:
            continue
        field_name, field_type, args = parsed
        optional = any(keyword_arg(args, k) == "True" for k in ("null", "blank")) or keyword_arg(args, "default") is not None
        required = not optional and field_type not in ("AutoField", "BigAutoField") and keyword_arg(args, "auto_now") != "True" and keyword_arg(args, "auto_now_add") != "True"
        fields.append(ModelField(name=field_name, type_name=field_type, required=required, description=unquote(keyword_arg(args, "help_text"))))
    return ModelInfo(name=name, fields=fields, bases=bases, file=path, meta={"kind": "model"})


def _view(name: str, bases: list[str], body: str, path: Path) -> ViewInfo:
    attributes: dict[str, str] = {}
    methods: list[str] = []
    for line in _first_level_lines(body):
        attr = _ATTR.match(line)
        if attr and not line.startswith("def "):
            attributes[attr.group(1)] = attr.group(2).strip()
        m = re.match(r"^(?:async\s+)?def\s+(\w+)", line)
        if m:
            methods.append(m.group(1))
    for m in _ACTION.finditer(body):
        args = read_balanced(body, m.end())
        handler = _DEF.search(body, args[1] if args else m.end())
        if handler:
            attributes[f"action:{handler.group(1)}"] = args[0] if args else ""
    return ViewInfo(name=name, file=path, bases=bases, methods=methods, attributes=attributes, body=body)


def _extra_actions(view: ViewInfo) -> dict[str, tuple[list[HttpMethod], bool, str | None]]:
    actions = {}
    for key, args in view.attributes.items():
        if not key.startswith("action:"):
            continue
        methods = [HttpMethod(v.upper()) for v in string_list(keyword_arg(args, "methods")) if v.upper() in HttpMethod.__members__]
        actions[key[7:]] = (
            methods or [HttpMethod.GET],
            keyword_arg(args, "detail") == "True",
            unquote(keyword_arg(args, "url_path")),
        )
    return actions


def _apiview_methods(view: ViewInfo, ctx: ScanContext, _seen: frozenset[str] = frozenset()) -> list[HttpMethod]:
    for base in view.bases:
        if base in APIVIEW_METHODS:
            return list(APIVIEW_METHODS[base])
        parent = ctx.views.get(base)
        if parent is not None and base not in _seen:
            own = [HttpMethod(m.upper()) for m in parent.methods if m in _HTTP_VERBS]
            return own or _apiview_methods(parent, ctx, _seen | {view.name})
    return list(APIVIEW_METHODS["APIView"])


# -- routes -----------------------------------------------------------------


def _display_name(name: str) -> str:
    return strip_suffix(name, ("ViewSet", "APIView", "View"))


def _regex_route(pattern: str) -> str:
    """`^users/(?P<pk>[0-9]+)/$` -> `users/<pk>/`."""
    route = _NAMED_GROUP.sub(lambda m: f"<{m.group(1)}>", pattern)
    route = route.lstrip("^").rstrip("$").replace("\\/", "/").replace("/?", "/")
    return re.sub(r"[\\()?*+\[\]]", "", route)


def _django_route(route: str) -> tuple[str, dict[str, str]]:
    """`users/<int:pk>/` -> (`users/{pk}/`, {"pk": "int"})."""
    converters: dict[str, str] = {}

    def convert(m: re.Match) -> str:
        converters[m.group(2)] = m.group(1) or "str"
        return "{" + m.group(2) + "}"

    return _CONVERTER.sub(convert, route), converters


def _data_schema(body: str) -> Schema:
    properties: dict[str, Schema] = {}
    required: list[str] = []
    for m in re.finditer(r"request\.data" + _DATA_ACCESS, body):
        name = m.group(1) or m.group(2)
        properties.setdefault(name, Schema(type=SchemaType.STRING))
        if m.group(2) and name not in required:
            required.append(name)
    return Schema(type=SchemaType.OBJECT, properties=properties or None, required=required or None)


def _responses(route: RouteInfo, serializer: Schema | None) -> list[Response]:
    action = route.extra.get("action")
    detail = route.extra.get("detail", False)
    if route.method == HttpMethod.DELETE:
        responses = [Response(status_code=204, description=STATUS_DESCRIPTIONS[204])]
    else:
        status = 201 if route.method == HttpMethod.POST and action in (None, "create") else 200
        schema = serializer
        if serializer is not None and action == "list":
            schema = Schema(type=SchemaType.ARRAY, items=serializer)
        responses = [Response(
            status_code=status,
            description=STATUS_DESCRIPTIONS[status],
            content_type="application/json",
            schema=schema,
        )]
    if route.method in BODY_METHODS:
        responses.append(Response(status_code=400, description=STATUS_DESCRIPTIONS[400], content_type="application/json"))
    if detail:
        responses.append(Response(status_code=404, description=STATUS_DESCRIPTIONS[404], content_type="application/json"))
    return responses
