"""Configuration file for pytest."""

import sys
from pathlib import Path

# Add src and the tests directory to the path so tests can import modules correctly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))
