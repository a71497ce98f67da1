from unittest.mock import MagicMock, patch

import pytest
import requests

from apigen.errors import RefResolutionError, SpecLoadError
from apigen.extractor.refs import bundle, dereference, is_url, load_document, ref_name, resolve_pointer, split_ref


def _response_schema(doc: dict, path: str) -> dict:
    return doc["paths"][path]["get"]["responses"]["200"]["content"]["application/json"]["schema"]


def _doc_with_refs(*refs: str) -> dict:
    paths = {}
    for i, ref in enumerate(refs):
        paths[f"/r{i}"] = {"get": {"responses": {"200": {
            "description": "ok",
            "content": {"application/json": {"schema": {"$ref": ref}}},
        }}}}
    return {"openapi": "3.0.0", "info": {"title": "T", "version": "1"}, "paths": paths}


class TestLoadDocument:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "spec.yaml"
        path.write_text("openapi: 3.0.0\ninfo:\n  title: T\n")
        assert load_document(str(path))["info"]["title"] == "T"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SpecLoadError):
            load_document(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("key: [unclosed\n")
        with pytest.raises(SpecLoadError, match="Cannot parse"):
            load_document(str(path))

    @patch("apigen.extractor.refs.requests.get")
    def test_url(self, mock_get):
        resp = MagicMock()
        resp.text = '{"openapi": "3.0.0"}'
        mock_get.return_value = resp

        assert load_document("https://example.com/openapi.json") == {"openapi": "3.0.0"}
        mock_get.assert_called_once_with("https://example.com/openapi.json", timeout=30)

    @patch("apigen.extractor.refs.requests.get")
    def test_url_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("down")
        with pytest.raises(SpecLoadError, match="Cannot read"):
            load_document("https://example.com/openapi.json")

    def test_is_url(self):
        assert is_url("https://x.io/spec.yaml")
        assert is_url("http://x.io/spec.yaml")
        assert not is_url("./spec.yaml")


class TestPointers:
    def test_split_ref(self):
        assert split_ref("#/components/schemas/Pet") == ("", "/components/schemas/Pet")
        assert split_ref("common.yaml#/Pet") == ("common.yaml", "/Pet")
        assert split_ref("common.yaml") == ("common.yaml", "")

    def test_ref_name(self):
        assert ref_name("#/components/schemas/Pet") == "Pet"
        assert ref_name("./models/user.yaml") == "user"

    def test_resolve_pointer_escapes(self):
        doc = {"paths": {"/pets/{id}": {"get": "op"}}}
        assert resolve_pointer(doc, "/paths/~1pets~1{id}/get") == "op"

    def test_resolve_pointer_missing(self):
        with pytest.raises(RefResolutionError, match="not found"):
            resolve_pointer({"a": {}}, "/a/b", "#/a/b")


class TestDereference:
    def test_inlines_local_refs(self, tmp_path):
        doc = _doc_with_refs("#/components/schemas/A")
        doc["components"] = {"schemas": {
            "A": {"type": "object", "properties": {"b": {"$ref": "#/components/schemas/B"}}},
            "B": {"type": "string"},
        }}

        result, origins = dereference(doc, str(tmp_path / "spec.yaml"))
        schema = _response_schema(result, "/r0")
        assert schema["type"] == "object"
        assert schema["properties"]["b"] == {"type": "string"}
        assert origins[id(schema)] == "#/components/schemas/A"

    def test_circular_refs_share_nodes(self, tmp_path):
        doc = _doc_with_refs("#/components/schemas/Node")
        doc["components"] = {"schemas": {
            "Node": {"type": "object", "properties": {"next": {"$ref": "#/components/schemas/Node"}}},
        }}

        result, _ = dereference(doc, str(tmp_path / "spec.yaml"))
        node = _response_schema(result, "/r0")
        assert node["properties"]["next"] is node

    def test_alias_loop_raises(self, tmp_path):
        doc = {"a": {"$ref": "#/b"}, "b": {"$ref": "#/a"}}
        with pytest.raises(RefResolutionError):
            dereference(doc, str(tmp_path / "spec.yaml"))

    def test_external_file(self, tmp_path):
        (tmp_path / "schemas.yaml").write_text("Pet:\n  type: object\n  properties:\n    name:\n      type: string\n")
        doc = _doc_with_refs("schemas.yaml#/Pet")

        result, _ = dereference(doc, str(tmp_path / "spec.yaml"))
        assert _response_schema(result, "/r0")["properties"]["name"]["type"] == "string"

    def test_missing_external_file_raises(self, tmp_path):
        doc = _doc_with_refs("missing.yaml#/Pet")
        with pytest.raises(RefResolutionError):
            dereference(doc, str(tmp_path / "spec.yaml"))

    def test_custom_loader(self):
        loader = MagicMock(return_value={"Pet": {"type": "string"}})
        doc = _doc_with_refs("https://example.com/common.yaml#/Pet")

        result, _ = dereference(doc, "https://example.com/spec.yaml", loader)
        assert _response_schema(result, "/r0") == {"type": "string"}
        loader.assert_called_once_with("https://example.com/common.yaml")


class TestBundle:
    def test_imports_loadable_refs_and_reports_the_rest(self, tmp_path):
        (tmp_path / "schemas.yaml").write_text("Pet:\n  type: object\n")
        doc = _doc_with_refs("schemas.yaml#/Pet", "missing.yaml#/Thing")

        bundled, unresolved = bundle(doc, str(tmp_path / "spec.yaml"))
        assert _response_schema(bundled, "/r0") == {"$ref": "#/components/schemas/Pet"}
        assert bundled["components"]["schemas"]["Pet"] == {"type": "object"}
        assert _response_schema(bundled, "/r1") == {"$ref": "missing.yaml#/Thing"}
        assert unresolved == ["missing.yaml#/Thing"]

    def test_does_not_mutate_input(self, tmp_path):
        doc = _doc_with_refs("missing.yaml#/Thing")
        bundle(doc, str(tmp_path / "spec.yaml"))
        assert "components" not in doc

    def test_swagger2_uses_definitions(self, tmp_path):
        (tmp_path / "user.yaml").write_text("type: object\n")
        doc = {"swagger": "2.0", "paths": {"/u": {"get": {"responses": {"200": {
            "description": "ok", "schema": {"$ref": "user.yaml"},
        }}}}}}

        bundled, unresolved = bundle(doc, str(tmp_path / "spec.yaml"))
        assert unresolved == []
        assert bundled["definitions"]["user"] == {"type": "object"}
        assert bundled["paths"]["/u"]["get"]["responses"]["200"]["schema"] == {"$ref": "#/definitions/user"}
