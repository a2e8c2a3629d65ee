"""FastAPI app exposing session control and a small monitoring readout."""

from collections import deque
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, field_validator

from cursor_companion.model.models import InteractionMode
from cursor_companion.settings import load_configuration
from cursor_companion.watchers.logger import LOG_FILE
from cursor_companion.watchers.pump import CompanionRuntime

app = FastAPI(
    title="Cursor Companion",
    description="Cursor-driven screen commentary with non-repeating overlay placement",
)

# グローバルな状態管理
STATE: dict[str, Any] = {
    "runtime": None,
    "logs": deque(maxlen=100),  # ログを保存 (最大100件)
}

# --- ロギング ---


def log_message(message: str) -> None:
    """ログキューに追加する."""
    STATE["logs"].append(message)


def _get_log_tail(max_lines: int = 200) -> list[str]:
    """companion.log の末尾を取得する."""
    try:
        with open(LOG_FILE, encoding="utf-8", errors="ignore") as f:
            lines = f.read().splitlines()
    except OSError:
        return []
    return lines[-max_lines:]


# --- Pydanticモデル定義 ---


class ModeUpdate(BaseModel):
    """モード変更リクエスト."""

    mode: str

    @field_validator("mode")
    @classmethod
    def mode_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "mode must not be empty"
            raise ValueError(msg)
        return v.strip().lower()


class OverlayUpdate(BaseModel):
    enabled: bool


# --- アプリケーションのライフサイクルイベント ---


# Deprecated on_event usage is temporarily retained for simplicity.
@app.on_event("startup")  # pyright: ignore[reportDeprecated]
async def startup_event() -> None:
    """起動時にランタイムを生成してポンプを開始する."""
    if STATE["runtime"] is None:
        STATE["runtime"] = CompanionRuntime(load_configuration())
    runtime: CompanionRuntime = STATE["runtime"]
    runtime.run_forever()
    log_message(f"Runtime started. Provider: {runtime.provider.description}")


@app.on_event("shutdown")  # pyright: ignore[reportDeprecated]
async def shutdown_event() -> None:
    runtime: CompanionRuntime | None = STATE["runtime"]
    if runtime is not None:
        runtime.shutdown()


def _runtime() -> CompanionRuntime:
    runtime: CompanionRuntime | None = STATE["runtime"]
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialised")
    return runtime


# --- APIエンドポイント定義 ---


@app.get("/status")
async def get_current_status() -> dict[str, Any]:
    """現在のセッション状態と使用量を返す."""
    return dict(_runtime().status())


@app.post("/mode")
async def update_mode(req: ModeUpdate) -> dict[str, Any]:
    """インタラクションモードを変更する."""
    try:
        mode = InteractionMode(req.mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Unknown mode: {req.mode}") from e
    changed = _runtime().change_mode(mode)
    log_message(f"Mode update to {mode.value} (changed={changed})")
    return {"ok": True, "mode": mode.value, "changed": changed}


@app.post("/session/start")
async def start_session() -> dict[str, Any]:
    active = _runtime().start_session()
    log_message(f"Session start requested (active={active})")
    return {"ok": active, "state": _runtime().status()["state"]}


@app.post("/session/stop")
async def stop_session() -> dict[str, Any]:
    _runtime().stop_session()
    log_message("Session stop requested")
    return {"ok": True, "state": _runtime().status()["state"]}


@app.post("/session/toggle")
async def toggle_session() -> dict[str, Any]:
    active = _runtime().toggle_session()
    log_message(f"Session toggled (active={active})")
    return {"ok": True, "state": _runtime().status()["state"]}


@app.post("/overlay")
async def update_overlay(req: OverlayUpdate) -> dict[str, Any]:
    _runtime().set_overlay_enabled(req.enabled)
    log_message(f"Overlay enabled={req.enabled}")
    return {"ok": True, "overlay_enabled": req.enabled}


# --- モニタリング用エンドポイント ---


@app.get("/api/monitoring_data")
async def get_monitoring_data() -> dict[str, Any]:
    """最新のコメントとログを返す."""
    runtime = _runtime()
    result = runtime.last_result
    last: dict[str, Any] | None = None
    if result is not None:
        last = {
            "ok": result.ok,
            "text": result.response.text if result.response else None,
            "error": str(result.error) if result.error else None,
        }
    return {
        "last_commentary": last,
        "overlay_history": runtime.overlay.get_history()[-20:],
        "logs": list(STATE["logs"]),
        "pump_logs": _get_log_tail(),
        "status": runtime.status(),
    }
