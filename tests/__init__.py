"""Test package for finfeed.

Puts ``src`` on ``sys.path`` so the suite also runs from a plain checkout
without ``pip install -e .``.
"""

import sys
from pathlib import Path

src_path = Path(__file__).resolve().parents[1] / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))
