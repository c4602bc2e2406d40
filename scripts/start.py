#!/usr/bin/env python3
"""
Container entrypoint: release (migrate + seed), then exec gunicorn on app.wsgi:app.

Env: PORT (default 8080), WEB_CONCURRENCY (default 2), GUNICORN_TIMEOUT (default 60).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def env_int(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer (got {raw!r}).")
    if not low <= value <= high:
        raise SystemExit(f"{name} must be between {low} and {high} (got {value}).")
    return value


def gunicorn_argv(*, port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        # the app factory registers an at-fork hook that disposes the engine in each worker
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    argv = gunicorn_argv(
        port=env_int("PORT", 8080, low=1, high=65535),
        workers=env_int("WEB_CONCURRENCY", 2, low=1, high=64),
        timeout=env_int("GUNICORN_TIMEOUT", 60, low=1, high=3600),
    )

    from scripts.release import run_release

    run_release()
    print("Starting: " + " ".join(argv), flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
