"""Shared helpers for the extractors.

Path and placeholder handling, the grouping pass, source file enumeration
and the small text-scanning utilities the regex-level extractors rely on.
"""

import ast
import os
import re
from pathlib import Path
from typing import Any, Iterable

from .base import (
    Endpoint,
    Group,
    Parameter,
    ParameterLocation,
    Response,
    Schema,
    SchemaType,
    normalize_path,
)

IGNORED_DIRS = frozenset({
    "venv", ".venv", "env", ".env", "__pycache__", "site-packages", "node_modules",
    ".git", ".hg", ".tox", ".mypy_cache", ".pytest_cache", ".idea", ".vscode",
    "build", "dist", "target", "bin", "obj", "out",
    "test", "tests", "__tests__", "spec",
})

_TEST_FILE = re.compile(r"(^test_.*|.*_test\.\w+$|.*Tests?\.\w+$|^conftest\.py$)")
_PLACEHOLDER = re.compile(r"\{([A-Za-z_][\w-]*)\}")

STATUS_DESCRIPTIONS = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
}


# -- paths ----------------------------------------------------------------


def join_paths(*parts: str | None) -> str:
    """Join route fragments with single slashes and normalize the result."""
    return normalize_path("/".join(p.strip("/") for p in parts if p and p.strip("/")))


def strip_placeholder_constraints(path: str) -> str:
    """Reduce `{id:int}`, `{id:\\d+}`, `{id?}` and `{*rest}` to `{id}` / `{rest}`."""
    out = []
    i = 0
    while i < len(path):
        if path[i] != "{":
            out.append(path[i])
            i += 1
            continue
        depth, j = 0, i
        while j < len(path):
            if path[j] == "{":
                depth += 1
            elif path[j] == "}":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        inner = path[i + 1:j]
        name = inner.split(":", 1)[0].split("=", 1)[0].strip().lstrip("*").rstrip("?")
        out.append("{" + name + "}")
        i = j + 1
    return "".join(out)


def extract_path_params(path: str) -> list[str]:
    """Placeholder names in order of appearance, without duplicates."""
    seen: list[str] = []
    for name in _PLACEHOLDER.findall(path):
        if name not in seen:
            seen.append(name)
    return seen


def reconcile_path_params(path: str, params: list[Parameter], hints: dict[str, Schema] | None = None) -> list[Parameter]:
    """Ensure exactly one path parameter per placeholder.

    Known path parameters keep their schema; missing ones are synthesized from
    ``hints`` or as strings. Path parameters without a placeholder are dropped.
    """
    hints = hints or {}
    by_name: dict[str, Parameter] = {}
    for p in params:
        if p.location == ParameterLocation.PATH and p.name not in by_name:
            by_name[p.name] = p

    result = []
    for name in extract_path_params(path):
        existing = by_name.get(name)
        if existing is None:
            schema = hints.get(name) or Schema(type=SchemaType.STRING)
            existing = Parameter(name=name, location=ParameterLocation.PATH, required=True, schema=schema)
        result.append(existing)

    result.extend(p for p in params if p.location != ParameterLocation.PATH)
    return result


# -- grouping -------------------------------------------------------------


def group_endpoints(
    pairs: Iterable[tuple[str, Endpoint]],
    declared: Iterable[tuple[str, str | None]] = (),
) -> list[Group]:
    """Bucket endpoints by group name, preserving first-seen order.

    ``declared`` pre-seeds groups (name, description) so their order wins;
    declared groups that end up empty are dropped.
    """
    groups: dict[str, Group] = {}
    for name, description in declared:
        if name not in groups:
            groups[name] = Group(name=name, description=description)
    for name, endpoint in pairs:
        group = groups.get(name)
        if group is None:
            group = groups[name] = Group(name=name)
        group.endpoints.append(endpoint)
    return [g for g in groups.values() if g.endpoints]


# -- naming ---------------------------------------------------------------


def title_case(name: str) -> str:
    """`user_accounts` / `user-accounts` / `userAccounts` -> `User Accounts`."""
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name)
    words = re.split(r"[\s_\-]+", name)
    return " ".join(w[:1].upper() + w[1:] for w in words if w)


def strip_suffix(name: str, suffixes: Iterable[str]) -> str:
    for suffix in suffixes:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


# -- text scanning --------------------------------------------------------

def read_balanced(text: str, start: int, opener: str = "(", closer: str = ")") -> tuple[str, int] | None:
    """Return the text between the delimiter at ``start`` and its match.

    Quoted strings are skipped. Returns (inner, index after closer), or None
    when the delimiter is unbalanced.
    """
    if start >= len(text) or text[start] != opener:
        return None
    depth = 0
    quote = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start + 1:i], i + 1
        i += 1
    return None


def split_params(text: str, sep: str = ",", angle: bool = False) -> list[str]:
    """Split on ``sep`` at nesting depth zero.

    ``angle`` also treats `<...>` as nesting (Java/C# generics).
    """
    parts = []
    depth = 0
    quote = None
    current = []
    openers = "([{<" if angle else "([{"
    closers = ")]}>" if angle else ")]}"
    for ch in text:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch in openers:
            depth += 1
        elif ch in closers:
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


_STRING = re.compile(r"""^\s*[rbuf]*("([^"\\]|\\.)*"|'([^'\\]|\\.)*')""", re.I)


def unquote(value: str | None) -> str | None:
    """The content of a leading string literal, or None."""
    if value is None:
        return None
    m = _STRING.match(value)
    if not m:
        return None
    return m.group(1)[1:-1]


def keyword_arg(args: str, key: str) -> str | None:
    """Raw value text of ``key=...`` among top-level call arguments."""
    for part in split_params(args):
        name, eq, value = part.partition("=")
        if eq and name.strip() == key and not value.startswith("="):
            return value.strip()
    return None


def positional_args(args: str) -> list[str]:
    return [p for p in split_params(args) if not re.match(r"^\w+\s*=[^=]", p)]


def string_list(value: str | None) -> list[str]:
    """Strings inside a `[...]`, `(...)` or `{...}` literal, or a single string."""
    if not value:
        return []
    value = value.strip()
    if value[:1] in "[({":
        return [s for s in (unquote(p) for p in split_params(value[1:-1])) if s is not None]
    single = unquote(value)
    return [single] if single is not None else []


# -- files ----------------------------------------------------------------


def find_source_files(
    root: Path,
    extensions: Iterable[str],
    extra_ignored: Iterable[str] = (),
    max_depth: int | None = None,
) -> list[Path]:
    """Source files under ``root`` by extension, skipping vendored and test trees."""
    extensions = tuple(extensions)
    ignored = IGNORED_DIRS | frozenset(extra_ignored)
    if root.is_file():
        return [root] if root.name.endswith(extensions) else []

    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        for name in filenames:
            if name.endswith(extensions) and not _TEST_FILE.match(name):
                found.append(Path(dirpath) / name)
    return sorted(found)


def read_source(path: Path) -> str:
    """Read a source file as UTF-8. Decoding errors propagate to the caller."""
    return path.read_text(encoding="utf-8")


# -- responses ------------------------------------------------------------


def default_response(status: int = 200, schema: Schema | None = None, content_type: str = "application/json") -> Response:
    return Response(
        status_code=status,
        description=STATUS_DESCRIPTIONS.get(status, "Response"),
        content_type=content_type if schema is not None else None,
        schema=schema,
    )


# -- python source --------------------------------------------------------

_PY_CLASS = re.compile(r"^([ \t]*)class\s+(\w+)\s*(?:\((.*?)\))?\s*:", re.M | re.S)
_DOCSTRING = re.compile(r'^\s*[rRuU]?("""|\'\'\'|"|\')(.*?)\1', re.S)
_PY_NAME = re.compile(r"""^\s*name\s*=\s*["']([^"']+)["']""", re.M)
_SETUP_NAME = re.compile(r"""\bname\s*=\s*["']([^"']+)["']""")


def line_start(text: str, index: int) -> int:
    return text.rfind("\n", 0, index) + 1


def indented_block(text: str, index: int) -> str:
    """The indented block that follows the line containing ``index``.

    Stops at the first non-blank line indented no deeper than that line.
    """
    start = line_start(text, index)
    header = text[start:]
    indent = len(header) - len(header.lstrip(" \t"))
    end_of_header = text.find("\n", index)
    if end_of_header == -1:
        return ""
    lines = []
    for line in text[end_of_header + 1:].split("\n"):
        if line.strip() and len(line) - len(line.lstrip(" \t")) <= indent:
            break
        lines.append(line)
    return "\n".join(lines).rstrip()


def python_classes(text: str) -> list[tuple[str, list[str], str]]:
    """(name, base names, body) for every class statement in ``text``."""
    classes = []
    for m in _PY_CLASS.finditer(text):
        bases = []
        for base in split_params(m.group(3) or ""):
            if "=" in base:  # metaclass=..., total=False
                continue
            bases.append(base.strip().split("[", 1)[0])
        classes.append((m.group(2), bases, indented_block(text, m.end() - 1)))
    return classes


def base_name(dotted: str) -> str:
    """`serializers.ModelSerializer` -> `ModelSerializer`."""
    return dotted.strip().rsplit(".", 1)[-1]


def docstring_summary(body: str) -> str:
    """First line of the docstring opening a function or class body."""
    m = _DOCSTRING.match(body)
    if not m:
        return ""
    return m.group(2).strip().split("\n", 1)[0].strip()


def python_literal(text: str | None) -> Any:
    """Value of a Python literal expression, or None when it is not one."""
    if text is None:
        return None
    try:
        return ast.literal_eval(text.strip())
    except (ValueError, TypeError, SyntaxError, RecursionError):
        return None


def python_project_name(root: Path) -> str | None:
    """Distribution name from pyproject.toml or setup.py, if declared."""
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            m = _PY_NAME.search(pyproject.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            m = None
        if m:
            return m.group(1)
    setup = root / "setup.py"
    if setup.is_file():
        try:
            m = _SETUP_NAME.search(setup.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            m = None
        if m:
            return m.group(1)
    return None


_FROM_IMPORT = re.compile(r"^\s*from\s+([\w.]+)\s+import\s+(?:\(([^)]*)\)|([^\n]+))", re.M)


def python_imports(text: str) -> dict[str, tuple[str, str]]:
    """local name -> (module, imported name) for `from x import a as b`."""
    result = {}
    for m in _FROM_IMPORT.finditer(text):
        names = m.group(2) if m.group(2) is not None else m.group(3)
        for item in re.sub(r"#[^\n]*", "", names).split(","):
            parts = item.strip().split()
            if not parts:
                continue
            local = parts[2] if len(parts) == 3 and parts[1] == "as" else parts[0]
            result[local] = (m.group(1), parts[0])
    return result


# -- java / c# source -----------------------------------------------------

_C_CLASS = re.compile(r"\b(class|record|enum|interface)\s+(\w+)\s*(?:<[^>{;]*>)?\s*")
_C_HEADER_TAIL = re.compile(r"\s*(?:(?:extends|:)\s*([\w<>,.?\s]+?))?\s*(?:implements\s+[\w<>,.?\s]+?)?\s*(?:where\s+[^{]+?)?(\{|;)")
_C_PLACEHOLDER = re.compile(r"\{\*?([A-Za-z_]\w*)\??(?::([^}]*))?\}")


def strip_c_comments(text: str) -> str:
    """Drop `//` and `/* */` comments, leaving string and char literals intact."""
    out = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch in "\"'":
            j = i + 1
            while j < n and text[j] != ch and text[j] != "\n":
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            out.append(" ")
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def c_classes(text: str) -> list[tuple[str, str, str, list[str], str, int]]:
    """(kind, name, record components, bases, body, start) per type declaration.

    ``start`` is the offset of the keyword so callers can read the annotations
    or attributes written before it. Nested types are reported too.
    """
    found = []
    for m in _C_CLASS.finditer(text):
        pos = m.end()
        components = ""
        if text.startswith("(", pos):
            block = read_balanced(text, pos)
            if block is None:
                continue
            components, pos = block
        tail = _C_HEADER_TAIL.match(text, pos)
        if tail is None:
            continue
        bases = [b.strip().split("<", 1)[0] for b in split_params(tail.group(1) or "", angle=True)]
        body = ""
        if tail.group(2) == "{":
            block = read_balanced(text, tail.end() - 1, "{", "}")
            body = block[0] if block else ""
        found.append((m.group(1), m.group(2), components, bases, body, m.start()))
    return found


def generic_args(type_name: str) -> tuple[str, list[str]]:
    """`Map<String, List<Item>>` -> (`Map`, [`String`, `List<Item>`])."""
    type_name = type_name.strip()
    lt = type_name.find("<")
    if lt == -1 or not type_name.endswith(">"):
        return type_name, []
    return type_name[:lt].strip(), split_params(type_name[lt + 1:-1], angle=True)


def placeholder_constraints(path: str) -> dict[str, str]:
    """name -> constraint text for `{id:int}` / `{id:[0-9]+}` placeholders."""
    return {m.group(1): m.group(2) for m in _C_PLACEHOLDER.finditer(path) if m.group(2)}


def mask_blocks(text: str) -> str:
    """Blank the inside of nested `{...}` blocks, keeping offsets and the braces.

    What remains is the top level of a class body: fields, method headers and
    their annotations. Braces inside parentheses or string literals are kept.
    """
    out = list(text)
    depth = paren = 0
    quote = None
    escape = False
    for i, ch in enumerate(text):
        if quote:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif depth == 0 and ch == "(":
            paren += 1
        elif depth == 0 and ch == ")":
            paren = max(paren - 1, 0)
        elif ch == "{" and paren == 0:
            depth += 1
            if depth == 1:
                continue
        elif ch == "}" and paren == 0 and depth:
            depth -= 1
            if depth == 0:
                continue
        if depth and ch != "\n":
            out[i] = " "
    return "".join(out)
