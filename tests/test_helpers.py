import os
from pathlib import Path

from apigen.extractor.base import Endpoint, Parameter, ParameterLocation, Schema, SchemaType
from apigen.extractor.helpers import (
    docstring_summary,
    extract_path_params,
    find_source_files,
    group_endpoints,
    join_paths,
    keyword_arg,
    positional_args,
    python_literal,
    read_balanced,
    reconcile_path_params,
    split_params,
    string_list,
    strip_placeholder_constraints,
    title_case,
    unquote,
)


class TestPaths:
    def test_join_paths(self):
        assert join_paths("/api/", "/users/", "{id}") == "/api/users/{id}"
        assert join_paths("", None, "/") == "/"

    def test_strip_placeholder_constraints(self):
        assert strip_placeholder_constraints("/items/{id:int}") == "/items/{id}"
        assert strip_placeholder_constraints("/files/{*path}") == "/files/{path}"
        assert strip_placeholder_constraints("/a/{slug?}") == "/a/{slug}"
        assert strip_placeholder_constraints("/r/{id:\\d{3}}") == "/r/{id}"

    def test_extract_path_params_dedupes(self):
        assert extract_path_params("/a/{x}/b/{y}/{x}") == ["x", "y"]


class TestReconcilePathParams:
    def test_synthesizes_missing_placeholders(self):
        params = reconcile_path_params("/users/{id}", [], {"id": Schema(type=SchemaType.INTEGER)})
        assert len(params) == 1
        assert params[0].name == "id"
        assert params[0].location == ParameterLocation.PATH
        assert params[0].schema_.type == SchemaType.INTEGER

    def test_drops_path_params_without_placeholder(self):
        params = reconcile_path_params("/users", [Parameter(name="id", location=ParameterLocation.PATH)])
        assert params == []

    def test_path_params_come_first(self):
        params = reconcile_path_params("/users/{id}", [
            Parameter(name="q", location=ParameterLocation.QUERY),
            Parameter(name="id", location=ParameterLocation.PATH, schema=Schema(type=SchemaType.INTEGER)),
        ])
        assert [p.name for p in params] == ["id", "q"]
        assert params[0].schema_.type == SchemaType.INTEGER


class TestGroupEndpoints:
    def test_first_seen_order(self):
        groups = group_endpoints([
            ("b", Endpoint(method="GET", path="/b")),
            ("a", Endpoint(method="GET", path="/a")),
            ("b", Endpoint(method="POST", path="/b")),
        ])
        assert [g.name for g in groups] == ["b", "a"]
        assert len(groups[0].endpoints) == 2

    def test_declared_order_wins_and_empty_groups_dropped(self):
        groups = group_endpoints(
            [("a", Endpoint(method="GET", path="/a")), ("b", Endpoint(method="GET", path="/b"))],
            [("b", "Bees"), ("unused", None), ("a", None)],
        )
        assert [g.name for g in groups] == ["b", "a"]
        assert groups[0].description == "Bees"


class TestNaming:
    def test_title_case(self):
        assert title_case("user_accounts") == "User Accounts"
        assert title_case("user-accounts") == "User Accounts"
        assert title_case("userAccounts") == "User Accounts"


class TestTextScanning:
    def test_read_balanced_skips_strings(self):
        text = 'f("a)", (b, c)) tail'
        inner, end = read_balanced(text, 1)
        assert inner == '"a)", (b, c)'
        assert text[end:] == " tail"

    def test_read_balanced_unbalanced(self):
        assert read_balanced("f(a, b", 1) is None

    def test_split_params_respects_nesting(self):
        assert split_params("a, f(b, c), [d, e]") == ["a", "f(b, c)", "[d, e]"]

    def test_split_params_generics(self):
        assert split_params("Map<String, Long> m, int x", angle=True) == ["Map<String, Long> m", "int x"]

    def test_keyword_and_positional_args(self):
        args = '"/users", methods=["GET", "POST"], strict_slashes=False'
        assert positional_args(args) == ['"/users"']
        assert keyword_arg(args, "methods") == '["GET", "POST"]'
        assert keyword_arg(args, "missing") is None

    def test_unquote(self):
        assert unquote('"users"') == "users"
        assert unquote("'x'") == "x"
        assert unquote("users") is None

    def test_string_list(self):
        assert string_list('["GET", "POST"]') == ["GET", "POST"]
        assert string_list("('a',)") == ["a"]
        assert string_list('"single"') == ["single"]
        assert string_list(None) == []

    def test_docstring_summary(self):
        assert docstring_summary('    """List users.\n\n    Paginated.\n    """\n    return []') == "List users."
        assert docstring_summary("    r'Raw one.'\n    pass") == "Raw one."
        assert docstring_summary("    return []") == ""

    def test_python_literal(self):
        assert python_literal(" 10 ") == 10
        assert python_literal("[1, 'a']") == [1, "a"]
        assert python_literal("Query(None)") is None
        assert python_literal("{[]: 1}") is None
        assert python_literal(None) is None


class TestFindSourceFiles:
    def test_skips_ignored_dirs_and_test_files(self, tmp_path):
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "views.py").write_text("x = 1\n")
        (tmp_path / "app" / "test_views.py").write_text("x = 1\n")
        (tmp_path / "app" / "conftest.py").write_text("x = 1\n")
        (tmp_path / "venv").mkdir()
        (tmp_path / "venv" / "lib.py").write_text("x = 1\n")
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "helpers.py").write_text("x = 1\n")

        found = find_source_files(tmp_path, (".py",))
        assert found == [tmp_path / "app" / "views.py"]

    def test_max_depth(self, tmp_path):
        deep = tmp_path / "a" / "b" / "c"
        deep.mkdir(parents=True)
        (deep / "x.py").write_text("")
        (tmp_path / "top.py").write_text("")
        assert find_source_files(tmp_path, (".py",), max_depth=1) == [tmp_path / "top.py"]

    def test_extra_ignored(self, tmp_path):
        (tmp_path / "migrations").mkdir()
        (tmp_path / "migrations" / "0001_initial.py").write_text("")
        assert find_source_files(tmp_path, (".py",), ("migrations",)) == []

    def test_ignored_dirs_are_not_walked(self, tmp_path, monkeypatch):
        (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
        (tmp_path / "node_modules" / "pkg" / "index.py").write_text("")
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("")
        visited = []
        walk = os.walk

        def recording_walk(top, *args, **kwargs):
            for entry in walk(top, *args, **kwargs):
                visited.append(Path(entry[0]))
                yield entry

        monkeypatch.setattr(os, "walk", recording_walk)
        assert find_source_files(tmp_path, (".py",)) == [tmp_path / "src" / "app.py"]
        assert visited == [tmp_path, tmp_path / "src"]

    def test_max_depth_stops_descent(self, tmp_path, monkeypatch):
        (tmp_path / "a" / "b" / "c").mkdir(parents=True)
        (tmp_path / "a" / "b" / "mid.py").write_text("")
        (tmp_path / "a" / "b" / "c" / "deep.py").write_text("")
        visited = []
        walk = os.walk

        def recording_walk(top, *args, **kwargs):
            for entry in walk(top, *args, **kwargs):
                visited.append(Path(entry[0]))
                yield entry

        monkeypatch.setattr(os, "walk", recording_walk)
        assert find_source_files(tmp_path, (".py",), max_depth=2) == [tmp_path / "a" / "b" / "mid.py"]
        assert tmp_path / "a" / "b" / "c" not in visited
