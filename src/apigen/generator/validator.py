"""Validates generated files for syntax and structural correctness."""

import json
import shutil
import subprocess
import tempfile
from pathlib import Path


def validate_json(files: dict[str, str]) -> dict[str, str]:
    """Check JSON files parse.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".json"):
            continue
        try:
            json.loads(content)
        except json.JSONDecodeError as e:
            errors[filename] = f"JSONDecodeError: {e.msg} (line {e.lineno})"
    return errors


def validate_shell(files: dict[str, str]) -> dict[str, str]:
    """Run ``bash -n`` on shell scripts. Skipped when bash is not installed.

    Returns dict of {filename: error_message} for files with errors.
    """
    scripts = {f: c for f, c in files.items() if f.endswith(".sh")}
    bash = shutil.which("bash")
    if not scripts or bash is None:
        return {}

    errors = {}
    with tempfile.TemporaryDirectory() as tmpdir:
        for filename, content in scripts.items():
            filepath = Path(tmpdir) / Path(filename).name
            filepath.write_text(content, encoding="utf-8")
            result = subprocess.run([bash, "-n", str(filepath)], capture_output=True, text=True)
            if result.returncode != 0:
                errors[filename] = result.stderr.strip().replace(str(filepath), filename)[:500]
    return errors


def validate_files(files: dict[str, str]) -> dict[str, str]:
    """Run all validations on generated files.

    Returns dict of {filename: error_message} for all files with errors.
    """
    errors = {}
    errors.update(validate_json(files))
    errors.update(validate_shell(files))
    return errors
