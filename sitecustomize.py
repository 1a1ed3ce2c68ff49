"""
Put `src/` on `sys.path` when the interpreter starts from the repo root.

Lets `uvicorn api.main:app` and ad-hoc scripts import `programs`, `schemas`, `client`
and `storage` without an editable install.
"""

from __future__ import annotations

import sys
from pathlib import Path

_src = Path(__file__).resolve().parent / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))
