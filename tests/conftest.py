"""Make the ``pm_app`` namespace package importable without an editable install.

``pm_app`` ships no ``__init__.py`` files, so running ``pytest`` from a plain
checkout needs the project root on ``sys.path``.
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
