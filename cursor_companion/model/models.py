__all__ = [
    "AnalysisResponse",
    "CaptureSnapshot",
    "CommentaryResult",
    "Display",
    "ForegroundContext",
    "GateConfig",
    "InteractionMode",
    "PermissionStatus",
    "Point",
    "PositionReading",
    "Rect",
    "SessionState",
    "Size",
    "StatusModel",
    "TextRegion",
    "TokenUsage",
    "UsageStats",
]


import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict


@dataclass(frozen=True)
class Point:
    """2D座標."""

    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def distance_squared(self, other: "Point") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """左上原点の矩形."""

    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2

    @property
    def center(self) -> Point:
        return Point(self.mid_x, self.mid_y)

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, point: Point) -> bool:
        """半開区間で点を含むか判定 (右端・下端は含まない)."""
        return self.min_x <= point.x < self.max_x and self.min_y <= point.y < self.max_y


@dataclass(frozen=True)
class Display:
    """モニター1枚分の領域.

    ``frame`` はモニター全体、``visible_frame`` はタスクバー等を除いた
    表示可能領域。
    """

    frame: Rect
    visible_frame: Rect


@dataclass(frozen=True)
class PositionReading:
    """1回分のカーソル位置サンプル.

    ``timestamp`` は単調増加する秒数 (``time.monotonic()``)。
    """

    location: Point
    timestamp: float


@dataclass(frozen=True)
class GateConfig:
    """キャプチャ判定の閾値 (モードごとに固定)."""

    min_interval: float
    max_interval: float
    min_movement: float


@dataclass(frozen=True)
class TextRegion:
    """画面上で認識されたテキスト領域 (hotspot)."""

    text: str
    bounds: Rect
    confidence: float


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class UsageStats:
    """セッション中のトークン使用量の集計値."""

    last: TokenUsage | None
    total_prompt_tokens: int
    total_completion_tokens: int
    total_tokens: int


class InteractionMode(str, Enum):
    CASUAL = "casual"
    FOCUS = "focus"
    ACCESSIBILITY = "accessibility"


class SessionState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass(frozen=True)
class PermissionStatus:
    screen_capture_granted: bool
    cursor_access_granted: bool

    @property
    def all_granted(self) -> bool:
        return self.screen_capture_granted and self.cursor_access_granted


@dataclass(frozen=True)
class ForegroundContext:
    """前面アプリケーションの情報."""

    active_app: str | None = None
    title: str | None = None
    pid: int | None = None
    bounds: Rect | None = None

    @property
    def identity(self) -> tuple[str | None, int | None]:
        """アプリ切り替え検出に使う識別子."""
        return (self.active_app, self.pid)


@dataclass(frozen=True)
class CaptureSnapshot:
    """解析プロバイダーへ送る画像とコンテキスト."""

    png_bytes: bytes
    cursor: Point
    timestamp: float
    screen_rect: Rect
    foreground: ForegroundContext = field(default_factory=ForegroundContext)
    text_regions: tuple[TextRegion, ...] = ()

    def contextual_hint(self) -> str | None:
        """プロンプトに添えるヒント文を組み立てる."""
        hints: list[str] = []
        if self.foreground.active_app:
            hints.append(f"Hint - front app might be {self.foreground.active_app}.")
        if self.foreground.title:
            hints.append(f'Hint - window title shows "{self.foreground.title}".')
        if self.text_regions:
            samples = ", ".join(f'"{region.text}"' for region in self.text_regions[:3])
            hints.append(f"Hint - saw text: {samples}")
        return "\n".join(hints) if hints else None


@dataclass(frozen=True)
class AnalysisResponse:
    text: str
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class CommentaryResult:
    """解析リクエスト1件の結果. 成功時は ``response``、失敗時は ``error``."""

    response: AnalysisResponse | None = None
    error: Exception | None = None
    snapshot: CaptureSnapshot | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


class StatusModel(TypedDict):
    """/status が返す状態."""

    state: str
    mode: str
    provider: str
    request_in_flight: bool
    overlay_enabled: bool
    usage: dict[str, int | None] | None
