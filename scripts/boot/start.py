#!/usr/bin/env python3
import os
import subprocess
import sys
import time
from pathlib import Path

from scripts.boot.utils import (
    API_HOST,
    API_PID_FILE,
    API_PORT,
    CREATE_NO_WINDOW,
    LOG_DIR,
    REPO_ROOT,
    api_url,
    http_ok,
    load_local_env,
    logger,
)

STARTUP_TIMEOUT = 30.0


def background_popen(
    cmd: list[str], stdout_path: Path, stderr_path: Path, env: dict[str, str]
) -> subprocess.Popen[bytes]:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    with (
        stdout_path.open("ab", buffering=0) as stdout_f,
        stderr_path.open("ab", buffering=0) as stderr_f,
    ):
        return subprocess.Popen(  # noqa: S603
            cmd,
            cwd=str(REPO_ROOT),
            stdout=stdout_f,
            stderr=stderr_f,
            env=env,
            creationflags=CREATE_NO_WINDOW,
        )


def wait_until_ready(url: str, timeout: float = STARTUP_TIMEOUT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if http_ok(url):
            return True
        time.sleep(0.5)
    return False


def start_api(env: dict[str, str]) -> None:
    proc = background_popen(
        [
            sys.executable,
            "-m",
            "uvicorn",
            "cursor_companion.api.main:app",
            "--port",
            str(API_PORT),
            "--host",
            API_HOST,
        ],
        stdout_path=LOG_DIR / "api.log",
        stderr_path=LOG_DIR / "api.err.log",
        env=env,
    )
    API_PID_FILE.write_text(str(proc.pid), encoding="ascii")
    if wait_until_ready(api_url("/status")):
        logger.info("Control API: %s が起動 (PID %s)", api_url(), proc.pid)
    else:
        logger.warning("Control API が応答しません ./log/ 以下を見て")


def main() -> int:
    os.chdir(REPO_ROOT)

    logger.info("============ Cursor Companion starting up... ============")

    load_local_env()
    if not os.environ.get("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY が未設定です. モック応答で起動します")

    start_api(os.environ.copy())

    logger.info("Logs: ./log/api.log, ./log/companion.log")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
