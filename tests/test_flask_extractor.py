from pathlib import Path

from apigen.extractor.base import ParameterLocation, ProjectType, SchemaType
from apigen.extractor.flask import FlaskExtractor

FIXTURES = Path(__file__).parent / "fixtures"
APP = FIXTURES / "flask_app"


def _endpoint(project, method: str, path: str):
    return next(e for e in project.endpoints() if e.method.value == method and e.path == path)


class TestFlaskExtractor:
    def test_extracts_project(self):
        result = FlaskExtractor().extract(APP)

        assert result.success, result.errors
        project = result.project
        assert project.project_type == ProjectType.FLASK
        assert project.info.title == "flask_app"
        assert project.endpoint_count == 4

    def test_register_prefix_replaces_blueprint_prefix(self):
        project = FlaskExtractor().extract(APP).project
        paths = {(e.method.value, e.path) for e in project.endpoints()}
        assert paths == {
            ("GET", "/ping"),
            ("GET", "/api/items"),
            ("POST", "/api/items"),
            ("GET", "/api/items/{item_id}"),
        }

    def test_groups(self):
        project = FlaskExtractor().extract(APP).project
        groups = {g.name: len(g.endpoints) for g in project.groups}
        assert groups == {"Default": 1, "Items": 3}
        assert _endpoint(project, "GET", "/ping").summary == "Ping"

    def test_request_args(self):
        project = FlaskExtractor().extract(APP).project
        endpoint = _endpoint(project, "GET", "/api/items")
        assert endpoint.summary == "List items."
        page, category = endpoint.parameters
        assert page.name == "page"
        assert page.required is False
        assert page.schema_.type == SchemaType.INTEGER
        assert category.name == "category"
        assert category.required is True
        assert category.location == ParameterLocation.QUERY

    def test_converter_types_path_parameter(self):
        project = FlaskExtractor().extract(APP).project
        endpoint = _endpoint(project, "GET", "/api/items/{item_id}")
        assert endpoint.parameters[0].name == "item_id"
        assert endpoint.parameters[0].schema_.type == SchemaType.INTEGER
        assert [r.status_code for r in endpoint.responses] == [200, 404]

    def test_json_body_and_status(self):
        project = FlaskExtractor().extract(APP).project
        endpoint = _endpoint(project, "POST", "/api/items")
        body = endpoint.request_body
        assert body.content_type == "application/json"
        assert set(body.schema_.properties) == {"name", "price"}
        assert body.schema_.required == ["name"]
        assert [r.status_code for r in endpoint.responses] == [201]

    def test_method_view(self, tmp_path):
        (tmp_path / "app.py").write_text(
            "from flask import Flask, request\n"
            "from flask.views import MethodView\n"
            "app = Flask(__name__)\n"
            "\n"
            "class UserView(MethodView):\n"
            "    def get(self, user_id):\n"
            "        return {}\n"
            "\n"
            "    def put(self, user_id):\n"
            "        name = request.form['name']\n"
            "        return {}\n"
            "\n"
            "app.add_url_rule('/users/<uuid:user_id>', view_func=UserView.as_view('user'))\n"
        )
        result = FlaskExtractor().extract(tmp_path)
        assert result.success, result.errors
        project = result.project
        assert [g.name for g in project.groups] == ["User"]
        put = _endpoint(project, "PUT", "/users/{user_id}")
        assert put.parameters[0].schema_.format == "uuid"
        assert put.request_body.content_type == "application/x-www-form-urlencoded"
        assert put.request_body.schema_.required == ["name"]


class TestFlaskFailures:
    def test_no_routes(self, tmp_path):
        (tmp_path / "app.py").write_text("from flask import Flask\napp = Flask(__name__)\n")
        result = FlaskExtractor().extract(tmp_path)
        assert not result.success
        assert "No Flask routes found" in result.errors[0]
        assert "@app.route(...)" in result.errors[1]

    def test_file_that_breaks_a_pattern_is_skipped(self, tmp_path):
        class FragileExtractor(FlaskExtractor):
            def scan_file(self, path, text, ctx):
                if path.name == "odd.py":
                    raise TypeError("unexpected token")
                super().scan_file(path, text, ctx)

            def extract_routes(self, path, text, ctx):
                if path.name == "odd.py":
                    raise RecursionError("nesting too deep")
                return super().extract_routes(path, text, ctx)

        (tmp_path / "app.py").write_text(
            "from flask import Flask\n"
            "app = Flask(__name__)\n"
            "\n"
            "@app.route('/ping')\n"
            "def ping():\n"
            "    return 'pong'\n"
        )
        (tmp_path / "odd.py").write_text("@app.route('/odd')\ndef odd():\n    return ''\n")
        result = FragileExtractor().extract(tmp_path)
        assert result.success, result.errors
        assert [e.path for e in result.project.endpoints()] == ["/ping"]
