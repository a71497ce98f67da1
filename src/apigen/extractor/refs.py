"""$ref handling for OpenAPI / Swagger documents.

Two strategies:

- ``dereference`` inlines every reference (local pointers, relative files,
  URLs). Circular references reuse the node already being built, so the
  result may be a cyclic graph of dicts. Any unresolvable reference raises
  RefResolutionError.
- ``bundle`` is the lenient fallback: external targets that can be loaded
  are copied into the document's own schema namespace and their refs are
  rewritten to local pointers; anything else is left untouched.
"""

import copy
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urljoin

import requests
import yaml

from apigen.errors import RefResolutionError, SpecLoadError

Loader = Callable[[str], Any]


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def load_document(location: str) -> Any:
    """Load a YAML or JSON document from a file path or an http(s) URL."""
    try:
        if is_url(location):
            resp = requests.get(location, timeout=30)
            resp.raise_for_status()
            text = resp.text
        else:
            text = Path(location).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError, requests.RequestException) as e:
        raise SpecLoadError(f"Cannot read {location}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Cannot parse {location}: {e}") from e


def split_ref(ref: str) -> tuple[str, str]:
    """`file.yaml#/a/b` -> ("file.yaml", "/a/b"); `#/a` -> ("", "/a")."""
    location, _, fragment = ref.partition("#")
    return location, fragment


def join_location(base: str, relative: str) -> str:
    if not relative:
        return base
    if is_url(relative):
        return relative
    if is_url(base):
        return urljoin(base, relative)
    return str((Path(base).parent / relative).resolve())


def resolve_pointer(document: Any, pointer: str, ref: str = "") -> Any:
    """Follow a JSON pointer (RFC 6901) inside ``document``."""
    node = document
    for raw in pointer.split("/")[1:] if pointer else []:
        token = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and token in node:
            node = node[token]
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            raise RefResolutionError(ref or pointer, f"'{token}' not found")
    return node


def ref_name(ref: str) -> str:
    """Short name for a reference: last pointer segment, else the file stem."""
    location, pointer = split_ref(ref)
    if pointer.strip("/"):
        return pointer.rstrip("/").rsplit("/", 1)[-1].replace("~1", "/").replace("~0", "~")
    return Path(location).stem or "Ref"


def dereference(document: Any, base: str, loader: Loader = load_document) -> tuple[Any, dict[int, str]]:
    """Inline every $ref in ``document``.

    ``base`` is the document's own location, used to resolve relative files.
    Returns the new document and a map of id(node) -> ref for every node that
    was reached through a reference.
    """
    documents: dict[str, Any] = {base: document}
    built: dict[tuple[str, str], Any] = {}
    aliasing: set[tuple[str, str]] = set()
    origins: dict[int, str] = {}

    def load(location: str) -> Any:
        if location not in documents:
            try:
                documents[location] = loader(location)
            except SpecLoadError as e:
                raise RefResolutionError(location, str(e)) from e
        return documents[location]

    def follow(ref: str, location: str) -> Any:
        target_loc, pointer = split_ref(ref)
        target_loc = join_location(location, target_loc)
        key = (target_loc, pointer)
        if key in built:
            return built[key]
        target = resolve_pointer(load(target_loc), pointer, ref)
        if isinstance(target, dict) and not isinstance(target.get("$ref"), str):
            node: dict = {}
            built[key] = node
            origins[id(node)] = ref
            for k, v in target.items():
                node[k] = walk(v, target_loc)
            return node
        if key in aliasing:
            raise RefResolutionError(ref, "reference only points to itself")
        aliasing.add(key)
        built[key] = result = walk(target, target_loc)
        return result

    def walk(node: Any, location: str) -> Any:
        if isinstance(node, dict):
            if isinstance(node.get("$ref"), str):
                return follow(node["$ref"], location)
            return {k: walk(v, location) for k, v in node.items()}
        if isinstance(node, list):
            return [walk(v, location) for v in node]
        return node

    return walk(document, base), origins


def bundle(document: Any, base: str, loader: Loader = load_document) -> tuple[Any, list[str]]:
    """Pull loadable external refs into the document; leave the rest.

    Returns the bundled copy and the list of refs that stayed unresolved.
    """
    doc = copy.deepcopy(document)
    swagger2 = isinstance(doc, dict) and "swagger" in doc
    if swagger2:
        namespace = doc.setdefault("definitions", {})
        prefix = "#/definitions/"
    else:
        namespace = doc.setdefault("components", {}).setdefault("schemas", {})
        prefix = "#/components/schemas/"

    documents: dict[str, Any] = {base: doc}
    imported: dict[str, str] = {}  # absolute ref -> local name
    unresolved: list[str] = []

    def local_name(ref: str) -> str:
        name = ref_name(ref)
        candidate, n = name, 2
        while candidate in namespace:
            candidate = f"{name}{n}"
            n += 1
        return candidate

    def import_ref(ref: str, location: str) -> str | None:
        target_loc, pointer = split_ref(ref)
        target_loc = join_location(location, target_loc)
        absolute = f"{target_loc}#{pointer}"
        if absolute in imported:
            return imported[absolute]
        try:
            if target_loc not in documents:
                documents[target_loc] = loader(target_loc)
            target = resolve_pointer(documents[target_loc], pointer, ref)
        except (SpecLoadError, RefResolutionError):
            return None
        name = local_name(ref)
        imported[absolute] = name
        namespace[name] = {}
        namespace[name] = rewrite(copy.deepcopy(target), target_loc)
        return name

    def rewrite(node: Any, location: str) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str):
                target_loc, _ = split_ref(ref)
                if location == base and not target_loc:
                    return node
                name = import_ref(ref, location)
                if name is None:
                    unresolved.append(ref)
                    return node
                return {"$ref": prefix + name}
            return {k: rewrite(v, location) for k, v in node.items()}
        if isinstance(node, list):
            return [rewrite(v, location) for v in node]
        return node

    for key in list(doc):
        if key in ("components", "definitions"):
            continue
        doc[key] = rewrite(doc[key], base)
    for name in list(namespace):
        namespace[name] = rewrite(namespace[name], base)
    if not swagger2:
        components = doc["components"]
        for section, entries in list(components.items()):
            if section != "schemas" and isinstance(entries, dict):
                components[section] = rewrite(entries, base)
    return doc, unresolved
