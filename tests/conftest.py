"""Pytest configuration and path setup for newgen_faces tests."""

import sys
from pathlib import Path

# Add src/newgen_faces to path so tests can import the modules directly
_src_path = Path(__file__).parent.parent / "src" / "newgen_faces"
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))
