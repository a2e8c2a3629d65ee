from collections.abc import Sequence
from typing import Any

import numpy as np
from PIL import Image  # pyright: ignore[reportMissingImports]

from cursor_companion.model.models import Rect, TextRegion
from cursor_companion.watchers.logger import logger

MIN_CONFIDENCE = 0.4
DEFAULT_LANGUAGES = ("en",)


def _to_screen_rect(
    box: Sequence[Sequence[float]], image_size: tuple[int, int], screen_rect: Rect
) -> Rect:
    """画像ピクセル座標の四角形をスクリーン座標に変換する."""
    image_width, image_height = image_size
    scale_x = screen_rect.width / image_width
    scale_y = screen_rect.height / image_height
    xs = [float(p[0]) for p in box]
    ys = [float(p[1]) for p in box]
    left, top = min(xs), min(ys)
    return Rect(
        screen_rect.x + left * scale_x,
        screen_rect.y + top * scale_y,
        (max(xs) - left) * scale_x,
        (max(ys) - top) * scale_y,
    )


class TextRegionDetector:
    """easyocrで画面上のテキスト領域 (hotspot) を検出するクラス.

    モデルの読み込みが重いため、Readerは初回の ``detect`` で生成する。
    """

    def __init__(
        self,
        languages: Sequence[str] = DEFAULT_LANGUAGES,
        min_confidence: float = MIN_CONFIDENCE,
        reader: Any = None,
    ) -> None:
        self.languages = list(languages)
        self.min_confidence = min_confidence
        self._reader = reader

    def _get_reader(self) -> Any:
        if self._reader is None:
            import easyocr  # pyright: ignore[reportMissingImports]

            self._reader = easyocr.Reader(self.languages, gpu=False, verbose=False)
        return self._reader

    def detect(self, image: Image.Image, screen_rect: Rect) -> list[TextRegion]:
        """画像からテキスト領域を検出する. 失敗時は空リスト."""
        width, height = image.size
        if width <= 0 or height <= 0:
            return []

        try:
            results = self._get_reader().readtext(np.asarray(image.convert("RGB")))
        except Exception as e:  # noqa: BLE001
            logger.warning("Text recognition failed: %s", e)
            return []

        regions: list[TextRegion] = []
        for box, text, confidence in results:
            if confidence < self.min_confidence:
                continue
            trimmed = str(text).strip()
            if not trimmed:
                continue
            regions.append(
                TextRegion(
                    text=trimmed,
                    bounds=_to_screen_rect(box, (width, height), screen_rect),
                    confidence=float(confidence),
                )
            )
        return regions
