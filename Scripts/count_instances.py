from __future__ import annotations

from detseg_kit.runner import run_count


if __name__ == "__main__":
    raise SystemExit(run_count())
