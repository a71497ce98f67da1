import shutil

import pytest

from apigen.generator.validator import validate_files, validate_json, validate_shell

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")


class TestValidateJson:
    def test_valid_json(self):
        errors = validate_json({"collection.json": '{"info": {"name": "x"}}'})
        assert errors == {}

    def test_invalid_json(self):
        errors = validate_json({"bad.json": '{"info": '})
        assert "bad.json" in errors
        assert "JSONDecodeError" in errors["bad.json"]

    def test_skips_non_json(self):
        errors = validate_json({"README.md": "{not json", "ok.json": "[]"})
        assert errors == {}


class TestValidateShell:
    @needs_bash
    def test_valid_script(self):
        errors = validate_shell({"curl/users.sh": '#!/usr/bin/env bash\nBASE_URL="${BASE_URL:-http://x}"\ncurl -sS "${BASE_URL}/users"\n'})
        assert errors == {}

    @needs_bash
    def test_syntax_error(self):
        errors = validate_shell({"curl/bad.sh": "#!/usr/bin/env bash\nif true; then\n  echo hi\n"})
        assert "curl/bad.sh" in errors

    def test_skips_non_scripts(self):
        errors = validate_shell({"README.md": "if then fi ("})
        assert errors == {}

    def test_skipped_without_bash(self):
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(shutil, "which", lambda name: None)
            assert validate_shell({"bad.sh": "if true; then\n"}) == {}


class TestValidateFiles:
    @needs_bash
    def test_combined(self):
        files = {
            "good.json": "{}",
            "bad.json": "{",
            "bad.sh": "case x in\n",
            "README.md": "# anything",
        }
        errors = validate_files(files)
        assert set(errors) == {"bad.json", "bad.sh"}

    def test_all_valid(self):
        files = {"postman_collection.json": '{"item": []}', "README.md": "# API\n"}
        assert validate_files(files) == {}
