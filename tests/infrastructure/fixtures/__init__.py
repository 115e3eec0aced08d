"""Sample Go modules for end-to-end toolchain tests.

Usage:
    from tests.infrastructure.fixtures import get_go_module

    first = get_go_module("first")
    # go build inside first
"""

from pathlib import Path

FIXTURES_DIR = Path(__file__).parent
GO_MODULES_DIR = FIXTURES_DIR / "gomodules"


def get_go_module(name: str) -> Path:
    return GO_MODULES_DIR / name
