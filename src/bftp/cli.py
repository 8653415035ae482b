from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from typing import Optional

from .bench import run_benchmark
from .client import Client, DeleteStatus, Outcome, Result
from .config import ClientConfig, ServerConfig
from .constants import DEFAULT_BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .server import Server


def cmd_serve(args: argparse.Namespace) -> int:
    config = ServerConfig.from_raw(
        port=args.port,
        timeout_ms=args.timeout_ms,
        host=args.host,
        base_dir=args.base_dir,
    )
    server = Server(config)
    try:
        server.bind()
    except (OSError, OverflowError) as e:
        logging.error("couldn't open socket: %s", e)
        return 1
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.info("shutting down")
    finally:
        server.shutdown()
    return 0


def _connect(args: argparse.Namespace) -> Optional[Client]:
    config = ClientConfig(host=args.host, port=args.port, timeout_ms=args.timeout_ms)
    return Client.connect(config.host, config.port, config.timeout_ms)


def _finish(client: Client, result: Result) -> int:
    client.quit()
    return 1 if result.outcome is Outcome.FATAL else 0


def cmd_list(args: argparse.Namespace) -> int:
    client = _connect(args)
    if client is None:
        return 1
    result = client.list()
    for entry in result.data or []:
        print(entry)
    return _finish(client, result)


def cmd_upload(args: argparse.Namespace) -> int:
    client = _connect(args)
    if client is None:
        return 1
    result = client.upload(args.file, args.name or os.path.basename(args.file))
    if result.message:
        print(result.message)
    return _finish(client, result)


def cmd_download(args: argparse.Namespace) -> int:
    client = _connect(args)
    if client is None:
        return 1
    result = client.download(args.name)
    if result.outcome is Outcome.DATA and isinstance(result.data, bytes):
        out = args.out or os.path.basename(args.name)
        parent = os.path.dirname(out)
        if parent:
            os.makedirs(parent, exist_ok=True)
        try:
            with open(out, "wb") as f:
                f.write(result.data)
            logging.info("file saved to %s", out)
        except OSError as e:
            logging.error("error writing file to disk: %s", e)
    elif result.message:
        print(result.message)
    return _finish(client, result)


def cmd_delete(args: argparse.Namespace) -> int:
    client = _connect(args)
    if client is None:
        return 1
    status = client.delete_request(args.name)
    if status is DeleteStatus.ANOMALY:
        client.quit()
        return 1
    if status is DeleteStatus.NOT_FOUND:
        print("File does not exist on server")
        client.quit()
        return 0

    if args.yes:
        confirm = True
    else:
        answer = input(f"Delete {args.name}? The server waits 60s for an answer [y/N] ")
        confirm = answer.strip().lower() in ("y", "yes")
    result = client.delete_confirm(confirm)
    if result.message:
        print(result.message)
    return _finish(client, result)


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(size_bytes=args.size_bytes, timeout_ms=args.timeout_ms)
    payload = {"role": "bench", **dataclasses.asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bftp", description="Binary file transfer over TCP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="run the file server")
    # kept as strings so bad values fall back to defaults instead of aborting
    serve.add_argument("port", nargs="?", default=None, help=f"listening port (default {DEFAULT_PORT})")
    serve.add_argument("timeout_ms", nargs="?", default=None, help=f"read timeout in ms (default {DEFAULT_TIMEOUT_MS})")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--base-dir", default=DEFAULT_BASE_DIR)
    serve.set_defaults(func=cmd_serve)

    def add_conn(x: argparse.ArgumentParser) -> None:
        x.add_argument("--host", default="localhost")
        x.add_argument("--port", type=int, default=DEFAULT_PORT)
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)

    ls = sub.add_parser("list", help="list files on the server")
    add_conn(ls)
    ls.set_defaults(func=cmd_list)

    up = sub.add_parser("upload", help="upload a local file")
    add_conn(up)
    up.add_argument("file")
    up.add_argument("--name", default=None, help="name to store on the server")
    up.set_defaults(func=cmd_upload)

    down = sub.add_parser("download", help="download a file from the server")
    add_conn(down)
    down.add_argument("name")
    down.add_argument("--out", default=None)
    down.set_defaults(func=cmd_download)

    rm = sub.add_parser("delete", help="delete a file on the server")
    add_conn(rm)
    rm.add_argument("name")
    rm.add_argument("--yes", action="store_true", help="confirm without prompting")
    rm.set_defaults(func=cmd_delete)

    bench = sub.add_parser("bench", help="loopback upload/download benchmark")
    bench.add_argument("--size-bytes", type=int, default=5_000_000)
    bench.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
