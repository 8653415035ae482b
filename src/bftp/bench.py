from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass

from .client import Client, Outcome
from .config import ServerConfig
from .constants import DEFAULT_TIMEOUT_MS
from .metrics import TransferMetrics
from .server import Server


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    upload_s: float
    download_s: float
    upload_mbps: float
    download_mbps: float


def run_benchmark(*, size_bytes: int, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> BenchmarkResult:
    payload = os.urandom(size_bytes)

    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, "payload.bin")
        with open(src, "wb") as f:
            f.write(payload)

        config = ServerConfig(
            host="127.0.0.1",
            port=0,
            timeout_ms=timeout_ms,
            base_dir=os.path.join(tmp, "store"),
        )
        server = Server(config)
        host, port = server.bind()
        server.start()
        try:
            client = Client.connect(host, port, timeout_ms)
            if client is None:
                raise RuntimeError("could not connect to loopback server")
            try:
                up = TransferMetrics()
                r = client.upload(src, "bench/payload.bin")
                up.finish(size_bytes)
                if r.outcome is not Outcome.DATA:
                    raise RuntimeError(f"upload failed: {r.message}")

                down = TransferMetrics()
                r = client.download("bench/payload.bin")
                down.finish(size_bytes)
                if r.outcome is not Outcome.DATA or r.data != payload:
                    raise RuntimeError(f"download failed: {r.message}")
            finally:
                client.quit()
        finally:
            server.shutdown()

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        upload_s=up.duration_s,
        download_s=down.duration_s,
        upload_mbps=up.throughput_mbps,
        download_mbps=down.throughput_mbps,
    )
