#!/usr/bin/env python3
import contextlib
import os
from pathlib import Path

import psutil

from scripts.boot.utils import API_PID_FILE, REPO_ROOT, logger

TERMINATE_TIMEOUT = 5.0


def stop_by_pid_file(path: Path) -> bool:
    """PIDファイルのプロセスを停止する. 停止を試みたらTrue."""
    if not path.exists():
        logger.info("%s がありません", path.name)
        return False
    try:
        pid = int(path.read_text(encoding="ascii").strip())
    except ValueError:
        logger.warning("PIDファイルが壊れています: %s", path)
        pid = None

    if pid is not None:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            proc.wait(timeout=TERMINATE_TIMEOUT)
        except psutil.NoSuchProcess:
            logger.info("すでに停止済みです")
        except psutil.TimeoutExpired:
            logger.warning("PID %s が終了しないため kill します", pid)
            proc.kill()

    with contextlib.suppress(OSError):
        path.unlink(missing_ok=True)
    return pid is not None


def main() -> int:
    os.chdir(REPO_ROOT)

    logger.info("============ Cursor Companion 停止中 ============")
    stop_by_pid_file(API_PID_FILE)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
