import json
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from apigen.config import ApigenConfig
from apigen.errors import ConfigError, DetectionError, ExtractionError
from apigen.extractor.base import DetectionResult, ProjectType
from apigen.pipeline import Pipeline

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for name in list(os.environ):
        if name.startswith("APIGEN_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


class TestPipelineRun:
    def test_openapi_end_to_end(self, tmp_path):
        out = tmp_path / "out"
        config = ApigenConfig(source=str(FIXTURES / "petstore.yaml"), output=str(out))
        config.mock_data.seed = 3

        result = Pipeline(config).run()

        assert result.success
        assert result.detection.type == ProjectType.OPENAPI
        assert result.project.endpoint_count == 6
        assert list(result.outputs) == ["postman", "curl", "readme"]
        assert (out / "postman_collection.json").exists()
        assert (out / "curl" / "pets.sh").exists()
        assert (out / "README.md").exists()

    def test_seeded_runs_are_identical(self, tmp_path):
        contents = []
        for name in ("a", "b"):
            config = ApigenConfig(source=str(FIXTURES / "petstore.yaml"), output=str(tmp_path / name))
            config.mock_data.seed = 99
            Pipeline(config).run()
            contents.append(json.loads((tmp_path / name / "postman_collection.json").read_text()))
        assert contents[0] == contents[1]

    def test_framework_project(self, tmp_path):
        config = ApigenConfig(source=str(FIXTURES / "flask_app"), output=str(tmp_path / "out"),
                              generators={"postman": True, "curl": False, "readme": False})
        result = Pipeline(config).run()
        assert result.detection.type == ProjectType.FLASK
        assert list(result.outputs) == ["postman"]
        collection = json.loads((tmp_path / "out" / "postman_collection.json").read_text())
        assert collection["auth"]["type"] == "bearer"
        assert collection["variable"][0]["value"] == "http://localhost:3000"

    def test_detector_can_be_replaced(self, tmp_path):
        detector = MagicMock()
        detector.detect.return_value = DetectionResult(type=ProjectType.FASTAPI, confidence=90)
        config = ApigenConfig(source=str(FIXTURES / "fastapi_app"), output=str(tmp_path / "out"))
        pipeline = Pipeline(config, detector=detector)

        detection = pipeline.detect()
        extraction = pipeline.extract(detection)

        detector.detect.assert_called_once_with(str(FIXTURES / "fastapi_app"))
        assert extraction.project.project_type == ProjectType.FASTAPI


class TestPipelineErrors:
    def test_invalid_config(self):
        config = ApigenConfig(base_url="nope", framework="rails")
        with pytest.raises(ConfigError) as exc:
            Pipeline(config).validate()
        assert len(exc.value.problems) == 2
        assert exc.value.problems[1].startswith("Unknown framework 'rails'")

    def test_nothing_detected(self, tmp_path):
        config = ApigenConfig(source=str(tmp_path))
        with pytest.raises(DetectionError) as exc:
            Pipeline(config).detect()
        assert "Could not detect a supported framework" in str(exc.value)
        assert exc.value.reasons == ["No supported project type found"]

    def test_explicit_openapi_without_document(self):
        config = ApigenConfig(framework="openapi")
        with pytest.raises(DetectionError, match="No OpenAPI document found"):
            Pipeline(config).detect()

    def test_extraction_failure(self, tmp_path):
        config = ApigenConfig(source=str(tmp_path), framework="fastapi")
        pipeline = Pipeline(config)
        with pytest.raises(ExtractionError) as exc:
            pipeline.extract(pipeline.detect())
        assert "No .py files found" in exc.value.errors[0]


class TestPipelineDetect:
    def test_explicit_framework_skips_detection(self):
        detector = MagicMock()
        config = ApigenConfig(source=str(FIXTURES / "spring_app"), framework="spring")
        detection = Pipeline(config, detector=detector).detect()
        assert detection.type == ProjectType.SPRING_BOOT
        assert detection.spec_file is None
        detector.detect.assert_not_called()

    def test_explicit_openapi_source(self):
        config = ApigenConfig(source=str(FIXTURES / "swagger2.json"), framework="openapi")
        detection = Pipeline(config).detect()
        assert detection.spec_file == FIXTURES / "swagger2.json"

    def test_url_source(self):
        detector = MagicMock()
        config = ApigenConfig(source="https://api.example.com/openapi.json")
        detection = Pipeline(config, detector=detector).detect()
        assert detection.type == ProjectType.OPENAPI
        assert detection.spec_file is None
        detector.detect.assert_not_called()


class TestOutputDir:
    def test_relative_to_source_directory(self):
        config = ApigenConfig(source=str(FIXTURES / "flask_app"), output="generated")
        assert Pipeline(config).output_dir() == (FIXTURES / "flask_app" / "generated").resolve()

    def test_relative_to_cwd_for_documents(self, tmp_path):
        config = ApigenConfig(source=str(FIXTURES / "petstore.yaml"), output="generated")
        assert Pipeline(config).output_dir() == (tmp_path / "generated").resolve()

    def test_project_config(self):
        config = ApigenConfig(base_url="https://x.example.com", mock_data={"seed": 5, "locale": "tr"})
        project_config = Pipeline(config).project_config()
        assert project_config.base_url == "https://x.example.com"
        assert project_config.mock_seed == 5
        assert project_config.mock_locale == "tr"
