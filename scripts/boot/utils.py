import logging
import sys
from pathlib import Path
from typing import cast

import requests
from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = REPO_ROOT / "log"
API_PID_FILE = REPO_ROOT / "api_server.pid"
API_HOST = "127.0.0.1"
API_PORT = 5577

HTTP_OK_MIN = 200
HTTP_OK_MAX = 400

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("cursor_companion.boot")

# Windows only; 0 elsewhere so Popen accepts it on every platform
CREATE_NO_WINDOW = 0x08000000 if sys.platform == "win32" else 0


def api_url(path: str = "") -> str:
    return f"http://{API_HOST}:{API_PORT}{path}"


def http_ok(url: str, timeout: float = 2.5) -> bool:
    """URLが2xx/3xxを返すか確認する."""
    if not url.lower().startswith(("http://", "https://")):
        return False
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException:
        return False
    status = cast("int", getattr(resp, "status_code", 0))
    return HTTP_OK_MIN <= status < HTTP_OK_MAX


def load_local_env() -> None:
    # 実際の環境変数を優先する
    load_dotenv(dotenv_path=REPO_ROOT / ".env.local", override=False)
