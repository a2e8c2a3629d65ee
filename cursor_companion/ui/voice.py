from typing import Any

import pyttsx3

from cursor_companion.watchers.logger import logger

DEFAULT_RATE = 185
MIN_RATE = 80
MAX_RATE = 300


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class VoiceOutput:
    """pyttsx3でコメントを読み上げるクラス. エンジンは初回発話時に生成する."""

    def __init__(
        self,
        voice_identifier: str | None = None,
        rate: float | None = None,
        engine: Any = None,
    ) -> None:
        self.voice_identifier = voice_identifier
        self.rate = int(_clamp(rate, MIN_RATE, MAX_RATE)) if rate else DEFAULT_RATE
        self.enabled = True
        self._engine = engine

    def _get_engine(self) -> Any:
        if self._engine is None:
            self._engine = pyttsx3.init()
            self._engine.setProperty("rate", self.rate)
            if self.voice_identifier:
                voices = {v.id for v in self._engine.getProperty("voices")}
                if self.voice_identifier in voices:
                    self._engine.setProperty("voice", self.voice_identifier)
                else:
                    logger.warning(
                        "Requested voice '%s' not available. Using default.",
                        self.voice_identifier,
                    )
        return self._engine

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def stop(self) -> None:
        """発話を止める. ``speak`` と同じスレッドから呼ぶこと."""
        if self._engine is not None:
            self._engine.stop()

    def speak(self, text: str) -> bool:
        """読み上げる. 無効時・失敗時はFalse."""
        if not self.enabled or not text.strip():
            return False
        try:
            engine = self._get_engine()
            engine.stop()
            engine.say(text)
            engine.runAndWait()
        except (RuntimeError, OSError) as e:
            logger.warning("Speech synthesis failed: %s", e)
            return False
        return True
