"""Flask source extractor.

Pass one records Flask apps, Blueprints, register_blueprint mounts and
MethodView classes. Pass two reads `@bp.route` / `@bp.get` decorators and
`add_url_rule` calls, then scans each handler body for `request.*` access
to infer query, header, cookie and body parameters.
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
    python_imports,
    python_project_name,
    read_balanced,
    reconcile_path_params,
    string_list,
    title_case,
    unquote,
)
from .source import Registration, RouteInfo, RouterInfo, ScanContext, SourceExtractor, ViewInfo, router_key

FLASK_TYPE_MAP: dict[str, SchemaType] = {
    "string": SchemaType.STRING,
    "int": SchemaType.INTEGER,
    "float": SchemaType.NUMBER,
    "path": SchemaType.STRING,
    "uuid": SchemaType.STRING,
    "any": SchemaType.STRING,
}

# request.args.get(..., type=int)
ARG_TYPES: dict[str, SchemaType] = {
    "int": SchemaType.INTEGER,
    "float": SchemaType.NUMBER,
    "bool": SchemaType.BOOLEAN,
    "str": SchemaType.STRING,
}

VIEW_BASES = {"MethodView", "View"}
BODY_METHODS = {HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH}
_VERB_NAMES = ("get", "post", "put", "delete", "patch", "options", "head")

_APP = re.compile(r"^\s*(\w+)\s*=\s*(?:flask\.)?(Flask|Blueprint)\s*(?=\()", re.M)
_REGISTER = re.compile(r"\b(\w+)\.register_blueprint\s*(?=\()")
_ROUTE = re.compile(r"@(\w+)\.(route|get|post|put|delete|patch)\s*(?=\()")
_URL_RULE = re.compile(r"\b(\w+)\.add_url_rule\s*(?=\()")
_DEF = re.compile(r"(?:async\s+)?def\s+(\w+)\s*(?=\()")
_CONVERTER = re.compile(r"<(?:(\w+)(?:\([^)]*\))?:)?(\w+)>")
_METHOD_DEF = re.compile(r"^([ \t]+)(?:async\s+)?def\s+(\w+)\s*\(", re.M)

_ACCESS = r"(?:\.get\(\s*['\"]([\w-]+)['\"]([^)]*)\)|\[\s*['\"]([\w-]+)['\"]\s*\])"
_QUERY = re.compile(r"request\.(?:args|values)" + _ACCESS)
_HEADER = re.compile(r"request\.headers" + _ACCESS)
_COOKIE = re.compile(r"request\.cookies" + _ACCESS)
_FORM = re.compile(r"request\.form" + _ACCESS)
_JSON_VAR = re.compile(r"(\w+)\s*=\s*request\.(?:get_json\s*\([^)]*\)|json)")
_JSON_USED = re.compile(r"request\.(?:get_json\s*\(|json\b)")
_FILES = re.compile(r"request\.files")
_RETURN_STATUS = re.compile(r"return\s+.+?,\s*(\d{3})\s*$", re.M)
_ABORT = re.compile(r"\babort\(\s*(\d{3})")


class FlaskExtractor(SourceExtractor):
    project_type = ProjectType.FLASK
    name = "flask"
    display_name = "Flask"
    extensions = (".py",)
    extra_ignored = ("migrations",)
    searched_patterns = ("@app.route(...)", "@bp.get(...)", "Blueprint(...)", "add_url_rule(...)")
    type_map = FLASK_TYPE_MAP

    # -- pass one ----

    def scan_file(self, path: Path, text: str, ctx: ScanContext) -> None:
        ctx.imports[path] = python_imports(text)
        for m in _APP.finditer(text):
            args = read_balanced(text, m.end())
            args_text = args[0] if args else ""
            positional = positional_args(args_text)
            name = None
            if m.group(2) == "Blueprint":
                name = unquote(positional[0]) if positional else unquote(keyword_arg(args_text, "name"))
            ctx.routers[router_key(path, m.group(1))] = RouterInfo(
                var=m.group(1),
                file=path,
                prefix=unquote(keyword_arg(args_text, "url_prefix")) or "",
                name=name,
            )
        for m in _REGISTER.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            positional = positional_args(args[0])
            if positional:
                ctx.registrations.append(Registration(
                    prefix=unquote(keyword_arg(args[0], "url_prefix")) or "",
                    view=positional[0],
                    file=path,
                    router=m.group(1),
                ))
        for name, bases, body in python_classes(text):
            names = {base_name(b) for b in bases}
            if names & VIEW_BASES or any(n.endswith("MethodView") for n in names):
                methods = [d for _, d in _first_level_defs(body)]
                ctx.views[name] = ViewInfo(name=name, file=path, bases=sorted(names), methods=methods, body=body)

    def after_scan(self, ctx: ScanContext) -> None:
        for reg in ctx.registrations:
            child = self.resolve_router(reg.view, reg.file, ctx)
            if child is None:
                self.logger.debug("blueprint_unresolved", blueprint=reg.view, path=str(reg.file))
                continue
            info = ctx.routers[child]
            info.mount_prefix = reg.prefix
            parent = router_key(reg.file, reg.router or "")
            if parent in ctx.routers and ctx.routers[parent].name is not None and parent != child:
                info.parent = parent  # nested blueprint

    def _prefix(self, router: RouterInfo | None, ctx: ScanContext) -> str:
        parts: list[str] = []
        for r in self.router_chain(router, ctx):
            # url_prefix given to register_blueprint replaces the blueprint's own
            parts.insert(0, r.mount_prefix or r.prefix)
        return join_paths(*parts)

    # -- pass two ----

    def extract_routes(self, path: Path, text: str, ctx: ScanContext) -> list[RouteInfo]:
        routes = []
        for m in _ROUTE.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            args_text, after = args
            positional = positional_args(args_text)
            rule = unquote(positional[0]) if positional else unquote(keyword_arg(args_text, "rule"))
            handler = _DEF.search(text, after)
            if rule is None or not handler:
                continue
            if m.group(2) == "route":
                methods = [v.upper() for v in string_list(keyword_arg(args_text, "methods"))] or ["GET"]
            else:
                methods = [m.group(2).upper()]
            signature = read_balanced(text, handler.end())
            body = indented_block(text, signature[1] if signature else handler.end())
            router = ctx.routers.get(router_key(path, m.group(1)))
            routes.extend(self._routes(rule, methods, handler.group(1), body, path, router, ctx))

        for m in _URL_RULE.finditer(text):
            args = read_balanced(text, m.end())
            if not args:
                continue
            routes.extend(self._url_rule(args[0], text, path, ctx.routers.get(router_key(path, m.group(1))), ctx))
        return routes

    def _url_rule(self, args: str, text: str, path: Path, router: RouterInfo | None, ctx: ScanContext) -> list[RouteInfo]:
        positional = positional_args(args)
        rule = unquote(positional[0]) if positional else unquote(keyword_arg(args, "rule"))
        view_func = keyword_arg(args, "view_func") or (positional[2] if len(positional) > 2 else None)
        if rule is None or not view_func:
            return []
        declared = [v.upper() for v in string_list(keyword_arg(args, "methods"))]

        as_view = re.match(r"^(\w+)\.as_view\s*\(", view_func.strip())
        if as_view:
            view = ctx.views.get(as_view.group(1))
            if view is None:
                return []
            routes = []
            for method_name, method_body in _method_bodies(view.body):
                if method_name.upper() not in HttpMethod.__members__ or method_name not in _VERB_NAMES:
                    continue
                if declared and method_name.upper() not in declared:
                    continue
                routes.extend(self._routes(rule, [method_name.upper()], f"{view.name}.{method_name}", method_body, path, router, ctx, view.name))
            return routes

        func = re.search(rf"(?:async\s+)?def\s+{re.escape(view_func.strip())}\s*\(", text)
        if not func:
            return []
        signature = read_balanced(text, func.end() - 1)
        body = indented_block(text, signature[1] if signature else func.end())
        return self._routes(rule, declared or ["GET"], view_func.strip(), body, path, router, ctx)

    def _routes(self, rule, methods, handler, body, path, router, ctx, view_name=None) -> list[RouteInfo]:
        converters: dict[str, str] = {}

        def convert(m: re.Match) -> str:
            converters[m.group(2)] = m.group(1) or "string"
            return "{" + m.group(2) + "}"

        route_path = join_paths(self._prefix(router, ctx), _CONVERTER.sub(convert, rule))
        group = None
        if view_name:
            group = title_case(view_name.removesuffix("View") or view_name)
        elif router is not None and router.name:
            group = title_case(router.name)

        routes = []
        for method in methods:
            if method not in HttpMethod.__members__:
                continue
            routes.append(RouteInfo(
                method=HttpMethod(method),
                path=route_path,
                handler=handler,
                file=path,
                body=body,
                group=group,
                summary=docstring_summary(body),
                extra={"converters": dict(converters)},
            ))
        return routes

    def route_to_endpoint(self, route: RouteInfo, ctx: ScanContext) -> Endpoint:
        hints = {
            name: Schema(type=FLASK_TYPE_MAP.get(conv, SchemaType.STRING), format="uuid" if conv == "uuid" else None)
            for name, conv in route.extra.get("converters", {}).items()
        }
        params: list[Parameter] = []
        params.extend(_accessed(_QUERY, route.body, ParameterLocation.QUERY))
        params.extend(_accessed(_HEADER, route.body, ParameterLocation.HEADER))
        params.extend(_accessed(_COOKIE, route.body, ParameterLocation.COOKIE))

        request_body = None
        if route.method in BODY_METHODS:
            request_body = _json_body(route.body) or _form_body(route.body)

        return Endpoint(
            method=route.method,
            path=route.path,
            summary=route.summary or title_case(route.handler.rsplit(".", 1)[-1]),
            operation_id=route.handler.replace(".", "_"),
            parameters=reconcile_path_params(route.path, params, hints),
            request_body=request_body,
            responses=_responses(route.body),
        )

    def group_name(self, route: RouteInfo, ctx: ScanContext) -> str:
        return route.group or "Default"

    def project_title(self, root: Path) -> str:
        return python_project_name(root) or super().project_title(root)


def _first_level_defs(body: str) -> list[tuple[int, str]]:
    defs = [(len(m.group(1)), m.group(2)) for m in _METHOD_DEF.finditer(body)]
    if not defs:
        return []
    indent = min(i for i, _ in defs)
    return [(i, name) for i, name in defs if i == indent]


def _method_bodies(class_body: str) -> list[tuple[str, str]]:
    """(method name, method body) for every first-level method of a class."""
    defs = _first_level_defs(class_body)
    if not defs:
        return []
    indent = defs[0][0]
    result = []
    for m in _METHOD_DEF.finditer(class_body):
        if len(m.group(1)) != indent:
            continue
        signature = read_balanced(class_body, m.end() - 1)
        result.append((m.group(2), indented_block(class_body, signature[1] if signature else m.end())))
    return result


def _accessed(pattern: re.Pattern, body: str, location: ParameterLocation) -> list[Parameter]:
    params: dict[str, Parameter] = {}
    for m in pattern.finditer(body):
        if m.group(3):
            name, required, kind = m.group(3), True, None
        else:
            name, rest = m.group(1), m.group(2) or ""
            type_arg = re.search(r"type\s*=\s*(\w+)", rest)
            kind = type_arg.group(1) if type_arg else None
            required = False
        if name in params:
            params[name].required = params[name].required or required
            continue
        params[name] = Parameter(
            name=name,
            location=location,
            required=required,
            schema=Schema(type=ARG_TYPES.get(kind or "str", SchemaType.STRING)),
        )
    return list(params.values())


def _json_body(body: str) -> RequestBody | None:
    if not _JSON_USED.search(body):
        return None
    properties: dict[str, Schema] = {}
    required: list[str] = []
    for var in dict.fromkeys(m.group(1) for m in _JSON_VAR.finditer(body)):
        for m in re.finditer(rf"\b{re.escape(var)}" + _ACCESS, body):
            name = m.group(3) or m.group(1)
            properties.setdefault(name, Schema(type=SchemaType.STRING))
            if m.group(3) and name not in required:
                required.append(name)
    return RequestBody(
        required=True,
        content_type="application/json",
        schema=Schema(type=SchemaType.OBJECT, properties=properties or None, required=required or None),
    )


def _form_body(body: str) -> RequestBody | None:
    fields = _accessed(_FORM, body, ParameterLocation.QUERY)
    has_files = bool(_FILES.search(body))
    if not fields and not has_files:
        return None
    properties = {f.name: f.schema_ for f in fields}
    for m in re.finditer(r"request\.files" + _ACCESS, body):
        properties[m.group(3) or m.group(1)] = Schema(type=SchemaType.STRING, format="binary")
    return RequestBody(
        required=True,
        content_type="multipart/form-data" if has_files else "application/x-www-form-urlencoded",
        schema=Schema(
            type=SchemaType.OBJECT,
            properties=properties or None,
            required=[f.name for f in fields if f.required] or None,
        ),
    )


def _responses(body: str) -> list[Response]:
    codes = [int(c) for c in _RETURN_STATUS.findall(body)] + [int(c) for c in _ABORT.findall(body)]
    success = sorted({c for c in codes if 200 <= c < 300}) or [200]
    errors = sorted({c for c in codes if c >= 400})
    return [
        Response(status_code=code, description=STATUS_DESCRIPTIONS.get(code, "Response"), content_type="application/json" if code != 204 else None)
        for code in success + errors
    ]
