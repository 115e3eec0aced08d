"""Allow ``python -m go_cache_prune``."""

from __future__ import annotations

import sys


def main() -> None:
    from go_cache_prune import run

    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
