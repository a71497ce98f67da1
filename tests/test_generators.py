import json
import os
import shutil
from pathlib import Path

import pytest

from apigen.config import AuthSettings
from apigen.extractor.base import Schema, SchemaType
from apigen.extractor.openapi import OpenApiExtractor
from apigen.generator.base import GeneratorOptions, fallback_example, slugify
from apigen.generator.curl import CurlGenerator
from apigen.generator.postman import SCHEMA_URL, PostmanGenerator
from apigen.generator.readme import ReadmeGenerator, type_label
from apigen.resolver.auth import AuthResolver
from apigen.resolver.examples import ExampleResolver

FIXTURES = Path(__file__).parent / "fixtures"


def _project(name: str = "petstore.yaml", auth: AuthSettings | None = None):
    project = OpenApiExtractor().extract(FIXTURES / name).project
    ExampleResolver(seed=1).resolve(project)
    AuthResolver(auth).resolve(project)
    return project


def _item(collection: dict, method: str, raw_path: str) -> dict:
    for folder in collection["item"]:
        for item in folder["item"]:
            request = item["request"]
            if request["method"] == method and "/".join(request["url"]["path"]) == raw_path:
                return item
    raise KeyError(raw_path)


class TestPostmanGenerator:
    def test_writes_collection(self, tmp_path):
        result = PostmanGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))

        assert result.success, result.errors
        assert result.files == [tmp_path / "postman_collection.json"]
        collection = json.loads(result.files[0].read_text())
        assert collection["info"]["schema"] == SCHEMA_URL
        assert collection["info"]["name"] == "Petstore"
        assert [f["name"] for f in collection["item"]] == ["pets", "store", "default"]
        assert collection["item"][0]["description"] == "Everything about pets"

    def test_variables_and_auth(self, tmp_path):
        collection = PostmanGenerator().collection(_project(), GeneratorOptions(output_dir=tmp_path))
        variables = {v["key"]: v["value"] for v in collection["variable"]}
        assert variables == {"baseUrl": "https://api.petstore.example.com/v1", "token": ""}
        assert collection["auth"]["type"] == "bearer"
        assert collection["auth"]["bearer"][0]["value"] == "{{token}}"

    def test_path_variables(self, tmp_path):
        collection = PostmanGenerator().collection(_project(), GeneratorOptions(output_dir=tmp_path))
        item = _item(collection, "GET", "pets/:petId")
        url = item["request"]["url"]
        assert url["raw"] == "{{baseUrl}}/pets/:petId"
        assert url["host"] == ["{{baseUrl}}"]
        assert url["variable"][0]["key"] == "petId"
        assert url["variable"][0]["value"] != ""
        headers = {h["key"]: h["value"] for h in item["request"]["header"]}
        assert "X-Request-ID" in headers
        assert [r["code"] for r in item["response"]] == [200, 404]

    def test_optional_query_parameters_are_disabled(self, tmp_path):
        collection = PostmanGenerator().collection(_project(), GeneratorOptions(output_dir=tmp_path))
        url = _item(collection, "GET", "pets")["request"]["url"]
        limit = next(q for q in url["query"] if q["key"] == "limit")
        assert limit["value"] == "20"
        assert limit["disabled"] is True
        assert url["raw"] == "{{baseUrl}}/pets"

    def test_declared_body_example(self, tmp_path):
        collection = PostmanGenerator().collection(_project(), GeneratorOptions(output_dir=tmp_path))
        request = _item(collection, "POST", "store/orders")["request"]
        assert request["body"]["mode"] == "raw"
        assert json.loads(request["body"]["raw"]) == {"petId": 1, "quantity": 2}
        assert {"key": "Content-Type", "value": "application/json"} in request["header"]

    def test_multipart_form_and_api_key(self, tmp_path):
        collection = PostmanGenerator().collection(_project("swagger2.json"), GeneratorOptions(output_dir=tmp_path))
        body = _item(collection, "POST", "upload")["request"]["body"]
        assert body["mode"] == "formdata"
        fields = {f["key"]: f["type"] for f in body["formdata"]}
        assert fields == {"file": "file", "note": "text"}
        assert collection["auth"]["type"] == "apikey"

    def test_query_api_key(self, tmp_path):
        settings = AuthSettings(type="apiKey", key_name="api_key", key_location="query")
        collection = PostmanGenerator().collection(_project("minimal.yaml", settings), GeneratorOptions(output_dir=tmp_path))
        url = collection["item"][0]["item"][0]["request"]["url"]
        assert url["raw"] == "{{baseUrl}}/?api_key={{apiKey}}"

    def test_custom_file_name(self, tmp_path):
        result = PostmanGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path, file_name="shop"))
        assert result.files == [tmp_path / "shop.json"]


class TestCurlGenerator:
    def test_writes_scripts(self, tmp_path):
        result = CurlGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))

        assert result.success, result.errors
        names = sorted(p.name for p in result.files)
        assert names == ["all-requests.sh", "default.sh", "pets.sh", "store.sh"]
        for path in result.files:
            assert path.parent == tmp_path / "curl"
            assert os.stat(path).st_mode & 0o777 == 0o755

    def test_group_script(self, tmp_path):
        project = _project()
        script = CurlGenerator().group_script(project.groups[0], project, GeneratorOptions(output_dir=tmp_path))
        assert script.startswith("#!/usr/bin/env bash\n")
        assert 'BASE_URL="${BASE_URL:-https://api.petstore.example.com/v1}"' in script
        assert 'TOKEN="${TOKEN:-your-token-here}"' in script
        assert '-H "Authorization: Bearer ${TOKEN}"' in script
        assert '"${BASE_URL}/pets/${PET_ID:-' in script
        assert "# Deprecated" in script

    def test_scripts_end_with_one_newline(self, tmp_path):
        CurlGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))
        for path in (tmp_path / "curl").iterdir():
            text = path.read_text()
            assert text.endswith("\n") and not text.endswith("\n\n"), path.name

    def test_body_command(self, tmp_path):
        project = _project()
        endpoint = next(e for e in project.endpoints() if e.path == "/store/orders")
        command = CurlGenerator().command(endpoint, project, GeneratorOptions(output_dir=tmp_path))
        assert command.startswith("curl -sS \\\n  -X POST")
        assert "-d '{\"petId\": 1, \"quantity\": 2}'" in command

    def test_multipart_upload(self, tmp_path):
        project = _project("swagger2.json")
        endpoint = next(e for e in project.endpoints() if e.path == "/upload")
        command = CurlGenerator().command(endpoint, project, GeneratorOptions(output_dir=tmp_path))
        assert '-F "file=@./file"' in command
        assert "Content-Type" not in command
        assert '-H "X-Token: ${API_KEY}"' in command

    def test_query_api_key(self, tmp_path):
        settings = AuthSettings(type="apiKey", key_name="api_key", key_location="query")
        project = _project("minimal.yaml", settings)
        command = CurlGenerator().command(next(project.endpoints()), project, GeneratorOptions(output_dir=tmp_path))
        assert '"${BASE_URL}/?api_key=${API_KEY}"' in command

    def test_all_requests_script(self, tmp_path):
        CurlGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))
        script = (tmp_path / "curl" / "all-requests.sh").read_text()
        assert 'export BASE_URL="${BASE_URL:-' in script
        assert 'bash "$DIR/pets.sh"' in script
        assert 'bash "$DIR/default.sh"' in script


class TestReadmeGenerator:
    def test_writes_markdown(self, tmp_path):
        result = ReadmeGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))

        assert result.success, result.errors
        assert result.files == [tmp_path / "README.md"]
        text = result.files[0].read_text()
        assert text.startswith("# Petstore\n")
        assert "Version: `1.2.0`" in text
        assert "https://api.petstore.example.com/v1" in text
        assert "- `http://localhost:8080/v1`" in text
        assert "## Authentication" in text
        assert "- [pets](#pets) (4)" in text
        assert "### GET /pets/{petId}" in text
        assert "> **Deprecated.**" in text

    def test_parameter_table(self, tmp_path):
        text = ReadmeGenerator().markdown(_project(), GeneratorOptions(output_dir=tmp_path))
        assert "| `petId` | path | integer(int64) | yes |" in text
        assert "| `status` | query | enum(available, pending, sold) | no |" in text

    def test_error_codes(self, tmp_path):
        text = ReadmeGenerator().markdown(_project(), GeneratorOptions(output_dir=tmp_path))
        assert "## Error Codes" in text
        assert "| 400 | Bad Request |" in text
        assert "| 404 | Not Found |" in text
        assert "| 500 |" not in text

    def test_without_examples(self, tmp_path):
        text = ReadmeGenerator().markdown(_project(), GeneratorOptions(output_dir=tmp_path, include_examples=False))
        assert "```json" not in text


class TestBaseGenerator:
    def test_existing_files_are_kept(self, tmp_path):
        existing = tmp_path / "README.md"
        existing.write_text("mine")
        result = ReadmeGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path, overwrite=False))
        assert result.success
        assert result.files == []
        assert result.warnings == [f"{existing} exists, skipped"]
        assert existing.read_text() == "mine"

    def test_invalid_output_is_not_written(self, tmp_path):
        class BrokenGenerator(PostmanGenerator):
            def render(self, project, options):
                return {"broken.json": "{"}

        result = BrokenGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))
        assert not result.success
        assert result.errors[0].startswith("broken.json: JSONDecodeError")
        assert not (tmp_path / "broken.json").exists()

    @pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
    def test_invalid_script_is_not_written(self, tmp_path):
        class BrokenCurl(CurlGenerator):
            def render(self, project, options):
                return {"curl/x.sh": "if true; then\n"}

        result = BrokenCurl().generate(_project(), GeneratorOptions(output_dir=tmp_path))
        assert not result.success
        assert not (tmp_path / "curl").exists()

    def test_render_error(self, tmp_path):
        class FailingGenerator(ReadmeGenerator):
            def render(self, project, options):
                raise ValueError("boom")

        result = FailingGenerator().generate(_project(), GeneratorOptions(output_dir=tmp_path))
        assert result.errors == ["readme: boom"]


class TestHelpers:
    def test_fallback_example(self):
        schema = Schema(type=SchemaType.OBJECT, properties={
            "id": Schema(type=SchemaType.INTEGER),
            "tags": Schema(type=SchemaType.ARRAY, items=Schema(type=SchemaType.STRING)),
            "kind": Schema(type=SchemaType.STRING, enum=["a", "b"]),
        })
        assert fallback_example(schema) == {"id": 1, "tags": ["string"], "kind": "a"}
        assert fallback_example(None) is None

    def test_slugify(self):
        assert slugify("User Accounts") == "user-accounts"
        assert slugify("!!!") == "default"

    def test_type_label(self):
        assert type_label(Schema(type=SchemaType.ARRAY, items=Schema(type=SchemaType.STRING, format="uuid"))) == "array<string(uuid)>"
        assert type_label(Schema(ref="#/components/schemas/Node")) == "Node"
        assert type_label(None) == "-"
