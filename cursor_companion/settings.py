"""Runtime configuration: environment, ``.env.local`` and ``config.json``."""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from cursor_companion.model.models import GateConfig, InteractionMode
from cursor_companion.watchers.logger import logger

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
CONFIG_FILE_NAME = "config.json"

GATE_CONFIGS: dict[InteractionMode, GateConfig] = {
    InteractionMode.CASUAL: GateConfig(min_interval=5, max_interval=60, min_movement=40),
    InteractionMode.FOCUS: GateConfig(min_interval=12, max_interval=90, min_movement=60),
    InteractionMode.ACCESSIBILITY: GateConfig(
        min_interval=6, max_interval=75, min_movement=40
    ),
}


@dataclass(frozen=True)
class PresentationPolicy:
    """モードごとの出力先."""

    overlay: bool
    voice: bool
    notification: bool


PRESENTATION_POLICIES: dict[InteractionMode, PresentationPolicy] = {
    InteractionMode.CASUAL: PresentationPolicy(overlay=True, voice=True, notification=True),
    InteractionMode.FOCUS: PresentationPolicy(overlay=True, voice=False, notification=False),
    InteractionMode.ACCESSIBILITY: PresentationPolicy(
        overlay=False, voice=True, notification=True
    ),
}


def gate_config_for(mode: InteractionMode) -> GateConfig:
    return GATE_CONFIGS[mode]


def presentation_policy_for(mode: InteractionMode) -> PresentationPolicy:
    return PRESENTATION_POLICIES[mode]


@dataclass
class AppConfiguration:
    api_key: str | None = None
    model: str | None = None
    base_url: str | None = None
    interaction_mode: InteractionMode | None = None
    voice_identifier: str | None = None
    voice_rate: float | None = None
    poll_interval: float | None = None
    request_timeout: float | None = None

    @property
    def resolved_model(self) -> str:
        return (self.model or "").strip() or DEFAULT_MODEL

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or "").strip() or DEFAULT_BASE_URL

    @property
    def resolved_mode(self) -> InteractionMode:
        return self.interaction_mode or InteractionMode.CASUAL


def config_dir() -> Path:
    return Path(os.getenv("COMPANION_CONFIG_DIR", Path.home() / ".cursor_companion"))


def _parse_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric configuration value: %r", value)
        return None


def _parse_mode(value: Any) -> InteractionMode | None:
    if not value:
        return None
    try:
        return InteractionMode(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown interaction mode in configuration: %r", value)
        return None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load configuration %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.error("Configuration %s is not a JSON object", path)
        return {}
    return data


def load_configuration(directory: Path | None = None) -> AppConfiguration:
    """設定を読み込む.

    優先順位: 環境変数 (``.env.local`` を含む) > ``config.json``。
    """
    load_dotenv(dotenv_path=REPO_ROOT / ".env.local", override=False)

    config = AppConfiguration(
        api_key=os.getenv("OPENAI_API_KEY") or None,
        model=os.getenv("OPENAI_MODEL") or None,
        base_url=os.getenv("OPENAI_BASE_URL") or None,
        interaction_mode=_parse_mode(os.getenv("COMPANION_MODE")),
        voice_identifier=os.getenv("VOICE_IDENTIFIER") or None,
        voice_rate=_parse_float(os.getenv("VOICE_RATE")),
        poll_interval=_parse_float(os.getenv("COMPANION_POLL_INTERVAL")),
        request_timeout=_parse_float(os.getenv("COMPANION_REQUEST_TIMEOUT")),
    )

    stored = _read_config_file((directory or config_dir()) / CONFIG_FILE_NAME)
    for f in fields(AppConfiguration):
        if getattr(config, f.name) is not None or stored.get(f.name) is None:
            continue
        value = stored[f.name]
        if f.name == "interaction_mode":
            value = _parse_mode(value)
        elif f.name in ("voice_rate", "poll_interval", "request_timeout"):
            value = _parse_float(str(value))
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(config, f.name, value)

    return config


def save_configuration(config: AppConfiguration, directory: Path | None = None) -> None:
    """モード等を ``config.json`` に保存する. APIキーは書き出さない."""
    target_dir = directory or config_dir()
    path = target_dir / CONFIG_FILE_NAME
    data = {k: v for k, v in asdict(config).items() if k != "api_key" and v is not None}
    if config.interaction_mode is not None:
        data["interaction_mode"] = config.interaction_mode.value
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        existing = _read_config_file(path)
        existing.update(data)
        path.write_text(json.dumps(existing, indent=2), encoding="utf-8")
    except OSError as e:
        logger.error("Unable to save configuration %s: %s", path, e)
