"""Capture gating: decide whether a cursor reading should trigger a capture."""

from dataclasses import dataclass

from cursor_companion.model.models import GateConfig, PositionReading


@dataclass
class GateState:
    """直近のキャプチャ基準点と移動基準点."""

    last_capture: PositionReading | None = None
    last_movement: PositionReading | None = None


class CaptureGate:
    """経過時間・移動距離・最大放置時間の組み合わせでキャプチャ可否を判定する.

    ``evaluate`` は例外を投げない純粋な判定関数で、状態は ``state`` のみ。
    タイムスタンプは呼び出しごとに単調非減少であること。
    """

    def __init__(self, config: GateConfig) -> None:
        self.config = config
        self.state = GateState()

    def evaluate(self, reading: PositionReading) -> bool:
        """キャプチャすべきならTrueを返し、基準点を更新する."""
        accepted = self._decide(reading)
        self._track_movement(reading)
        return accepted

    def reset(self) -> None:
        """基準点を破棄する. 次の ``evaluate`` は必ずTrueになる."""
        self.state = GateState()

    def _decide(self, reading: PositionReading) -> bool:
        state = self.state
        config = self.config

        if state.last_capture is None:
            state.last_capture = reading
            state.last_movement = reading
            return True

        elapsed = reading.timestamp - state.last_capture.timestamp
        if elapsed < config.min_interval:
            return False

        if state.last_movement is not None:
            distance = reading.location.distance_to(state.last_movement.location)
            if distance >= config.min_movement:
                state.last_capture = reading
                state.last_movement = reading
                return True

        # staleness fallback; the movement baseline stays where it is
        if config.max_interval > 0 and elapsed >= config.max_interval:
            state.last_capture = reading
            return True

        return False

    def _track_movement(self, reading: PositionReading) -> None:
        # Runs on rejected ticks too, so the baseline follows drift that
        # happens while the min_interval floor is closed.
        previous = self.state.last_movement
        if previous is None:
            self.state.last_movement = reading
            return
        if reading.location.distance_to(previous.location) >= self.config.min_movement:
            self.state.last_movement = reading
