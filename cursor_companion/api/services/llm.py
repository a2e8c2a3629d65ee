import base64
from typing import Any, Protocol

import requests

from cursor_companion.model.models import (
    AnalysisResponse,
    CaptureSnapshot,
    InteractionMode,
    TokenUsage,
)
from cursor_companion.settings import AppConfiguration
from cursor_companion.watchers.logger import logger

HTTP_OK = 200
HTTP_MULTIPLE_CHOICES = 300
DEFAULT_TIMEOUT = 30.0

SYSTEM_PROMPT = """
You are the user's relaxed friend: warm, observant, conversational.
Reply in at most two sentences and stay under 35 words.
Make every response feel fresh: avoid recycled phrases, skip filler, and speak
like a real person who just glanced at the screen.
Trust the image above all else; treat hints as optional and ignore anything
that does not match what you see.
Do not mention capture mechanics or old apps unless they are visibly present.
Default to zero emojis; never use more than one.
""".strip()

MODE_INSTRUCTIONS: dict[InteractionMode, str] = {
    InteractionMode.CASUAL: (
        "New screenshot. React like their laid-back friend in 1-2 sentences "
        "(under ~35 words). Focus on what actually looks new."
    ),
    InteractionMode.FOCUS: (
        "New screenshot. The user is concentrating. Give one short, practical "
        "observation or nudge that helps them keep going. No small talk."
    ),
    InteractionMode.ACCESSIBILITY: (
        "New screenshot. Describe plainly what is on screen near the cursor, "
        "reading out any important text, in 1-2 short sentences suitable for "
        "being spoken aloud."
    ),
}


class AnalysisError(Exception):
    """解析プロバイダー呼び出しの失敗."""


class MissingAPIKeyError(AnalysisError):
    def __init__(self) -> None:
        super().__init__("OpenAI API key is missing. Set OPENAI_API_KEY and restart.")


class InvalidResponseError(AnalysisError):
    def __init__(self, detail: str = "") -> None:
        message = "AI provider returned an unexpected response."
        super().__init__(f"{message} {detail}".strip())


class AnalysisHTTPError(AnalysisError):
    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


class AnalysisTransportError(AnalysisError):
    pass


class AnalysisProvider(Protocol):
    description: str

    def analyze(
        self, snapshot: CaptureSnapshot, mode: InteractionMode
    ) -> AnalysisResponse: ...


def _parse_usage(data: Any) -> TokenUsage | None:
    if not isinstance(data, dict):
        return None
    try:
        return TokenUsage(
            prompt_tokens=int(data.get("prompt_tokens", 0)),
            completion_tokens=int(data.get("completion_tokens", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
        )
    except (TypeError, ValueError):
        return None


class AnalysisService:
    """OpenAI互換のchat/completionsでスクリーンショットにコメントさせるクライアント."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """初期化

        Args:
            api_key: Bearerトークン
            model_name: 使用するモデル名 (例: gpt-4o-mini)
            base_url: APIのベースURL (例: https://api.openai.com/v1)
            timeout: APIタイムアウト(秒)

        """
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chat_url = f"{self.base_url}/chat/completions"
        self.system_prompt = SYSTEM_PROMPT
        self.description = f"OpenAI ({model_name})"

    def is_available(self) -> bool:
        """APIに到達できるかチェック."""
        try:
            response = requests.get(
                f"{self.base_url}/models", headers=self._headers(), timeout=5
            )
        except requests.RequestException:
            return False
        return response.status_code == HTTP_OK

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_messages(
        self, snapshot: CaptureSnapshot, mode: InteractionMode
    ) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = [
            {"type": "text", "text": MODE_INSTRUCTIONS[mode]},
        ]
        hint = snapshot.contextual_hint()
        if hint:
            content.append({"type": "text", "text": hint})
        image_b64 = base64.b64encode(snapshot.png_bytes).decode()
        content.append(
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{image_b64}"},
            }
        )
        return [
            {"role": "system", "content": [{"type": "text", "text": self.system_prompt}]},
            {"role": "user", "content": content},
        ]

    def analyze(
        self, snapshot: CaptureSnapshot, mode: InteractionMode
    ) -> AnalysisResponse:
        """スナップショットを送信してコメントを得る.

        Raises:
            MissingAPIKeyError: APIキー未設定
            AnalysisHTTPError: 2xx以外のレスポンス
            InvalidResponseError: レスポンス形式が想定外
            AnalysisTransportError: 通信エラー・タイムアウト

        """
        if not self.api_key:
            raise MissingAPIKeyError

        payload = {
            "model": self.model_name,
            "messages": self.build_messages(snapshot, mode),
        }

        try:
            response = requests.post(
                self.chat_url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AnalysisTransportError(str(e)) from e

        if not HTTP_OK <= response.status_code < HTTP_MULTIPLE_CHOICES:
            raise AnalysisHTTPError(response.status_code, response.text)

        try:
            data = response.json()
            message = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise InvalidResponseError(type(e).__name__) from e
        if not isinstance(message, str):
            raise InvalidResponseError

        return AnalysisResponse(text=message.strip(), usage=_parse_usage(data.get("usage")))


class MockAnalysisService:
    """APIキーがないときのオフライン応答."""

    description = "Mock offline"

    def analyze(
        self, snapshot: CaptureSnapshot, mode: InteractionMode
    ) -> AnalysisResponse:
        hint = snapshot.contextual_hint()
        detail = (
            hint.replace("\n", " · ")
            if hint
            else "not much on screen right now, but you've got this."
        )
        text = (
            f"Mock mode ({mode.value}): if I could see it I'd toss a quick reaction. "
            f"Maybe glance at {detail}"
        )
        return AnalysisResponse(text=text, usage=None)


def create_analysis_service(
    config: AppConfiguration,
) -> AnalysisService | MockAnalysisService:
    """設定からプロバイダーを選ぶファクトリ関数."""
    api_key = (config.api_key or "").strip()
    if not api_key:
        logger.warning("No OpenAI API key configured. Using mock responses.")
        return MockAnalysisService()
    service = AnalysisService(
        api_key=api_key,
        model_name=config.resolved_model,
        base_url=config.resolved_base_url,
        timeout=config.request_timeout or DEFAULT_TIMEOUT,
    )
    logger.info("Using %s for commentary.", service.description)
    return service
