"""Pytest configuration shared by the vocabulary review test-suite."""

import os
import sys
import tempfile
from pathlib import Path

_BACKEND_ROOT = Path(__file__).resolve().parents[1] / "apps" / "backend"
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# モジュール import 時に生成される既定ストアがリポジトリ内に DB を作らないよう、
# 一時ディレクトリを指す。個別のテストは monkeypatch で上書きしてよい。
os.environ.setdefault(
    "SRS_DB_PATH", str(Path(tempfile.mkdtemp(prefix="vocab-review-")) / "default.sqlite3")
)
