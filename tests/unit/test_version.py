from __future__ import annotations

import json
from pathlib import Path

import dynamodb_engine


def test_version_matches_version_json() -> None:
    version_file = Path(__file__).resolve().parents[2] / "src" / "dynamodb_engine" / "version.json"
    data = json.loads(version_file.read_text(encoding="utf-8"))
    assert dynamodb_engine.__repo_version__ == data["version"]
    if "-rc." in data["version"]:
        assert "-rc." not in dynamodb_engine.__version__
        assert "rc" in dynamodb_engine.__version__
    else:
        assert dynamodb_engine.__version__ == data["version"]
