from __future__ import annotations

import json
from pathlib import Path

import indexwise


def test_version_matches_version_json() -> None:
    version_file = Path(__file__).resolve().parents[2] / "src" / "indexwise" / "version.json"
    data = json.loads(version_file.read_text(encoding="utf-8"))
    assert indexwise.__repo_version__ == data["version"]
    if "-rc." in data["version"]:
        assert "-rc." not in indexwise.__version__
        assert "rc" in indexwise.__version__
    else:
        assert indexwise.__version__ == data["version"]
