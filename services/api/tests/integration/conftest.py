"""Integration tests drive the provisioner pipeline against the in-process API."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parents[3] / "provisioner" / "src"))
