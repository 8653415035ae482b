from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(slots=True)
class TransferMetrics:
    bytes_transferred: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    def finish(self, bytes_transferred: int | None = None) -> "TransferMetrics":
        if bytes_transferred is not None:
            self.bytes_transferred = bytes_transferred
        self.end_ts = time.monotonic()
        return self

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s

    def summary(self) -> str:
        return f"{self.bytes_transferred:,} bytes transferred in {self.duration_s:,.2f}s"
