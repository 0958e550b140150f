from __future__ import annotations

from detseg_kit.runner import run_decode


if __name__ == "__main__":
    raise SystemExit(run_decode())
