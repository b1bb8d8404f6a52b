#!/usr/bin/env python3
import argparse
import base64
import contextlib
import logging
import random
import shutil
import sys
import time
from dataclasses import dataclass, field
from typing import Optional

import yaml

import jase93


@dataclass
class Config:
    @dataclass
    class BenchConfig:
        size: int = 1 << 20
        seed: int = 0

    chunk_size: int = jase93.DEFAULT_CHUNK_SIZE
    bench: BenchConfig = field(default_factory=BenchConfig)

    @staticmethod
    def from_yaml(path):
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        bench = Config.BenchConfig(**(data.pop("bench", None) or {}))
        return Config(bench=bench, **data)


class Discard:
    """Sink that only counts what is written to it."""

    def __init__(self):
        self.n = 0

    def write(self, buf):
        self.n += len(buf)
        return len(buf)


def open_input(path: Optional[str]):
    if path is None or path == "-":
        return contextlib.nullcontext(sys.stdin.buffer)
    return open(path, "rb")


def open_output(path: Optional[str]):
    if path is None or path == "-":
        return contextlib.nullcontext(sys.stdout.buffer)
    return open(path, "wb")


def cmd_encode(args, config: Config) -> int:
    with open_input(args.input) as src, open_output(args.output) as dst:
        with jase93.StreamEncoder(dst) as enc:
            shutil.copyfileobj(src, enc, config.chunk_size)
    return 0


def cmd_decode(args, config: Config) -> int:
    with open_input(args.input) as src, open_output(args.output) as dst:
        dec = jase93.StreamDecoder(src, config.chunk_size)
        try:
            shutil.copyfileobj(dec, dst, config.chunk_size)
        except jase93.InvalidDataError as e:
            logging.error(e)
            return 1
    return 0


def bench_case(data: bytes, chunk_size: int) -> dict:
    sink = Discard()
    start = time.perf_counter()
    with jase93.StreamEncoder(sink) as enc:
        for i in range(0, len(data), chunk_size):
            enc.write(data[i:i + chunk_size])
    encode_time = time.perf_counter() - start

    encoded = jase93.encode(data)
    start = time.perf_counter()
    jase93.decode(encoded)
    decode_time = time.perf_counter() - start

    start = time.perf_counter()
    b64 = base64.b64encode(data)
    b64_time = time.perf_counter() - start

    size = len(data) or 1
    return {
        "ratio": sink.n / size,
        "base64_ratio": len(b64) / size,
        "encode_mb_s": len(data) / (encode_time or 1e-9) / 1e6,
        "decode_mb_s": len(data) / (decode_time or 1e-9) / 1e6,
        "base64_mb_s": len(data) / (b64_time or 1e-9) / 1e6,
    }


def cmd_bench(args, config: Config) -> int:
    size = args.size if args.size is not None else config.bench.size
    rng = random.Random(config.bench.seed)
    cases = {
        "best": bytes(size),
        "worst": b"\xff" * size,
        "average": rng.randbytes(size),
    }
    for name, data in cases.items():
        logging.info(f"Benchmarking {name} case ({size} bytes)...")
        stats = bench_case(data, config.chunk_size)
        print(f"{name}: " + ", ".join(f"{k}={v:.4f}" for k, v in stats.items()))
    return 0


def cmd_fuzz(args, config: Config) -> int:
    for length in range(1, args.max_length + 1):
        logging.info(f"Fuzzing all {length}-byte inputs...")
        for i in range(1 << (8 * length)):
            a = i.to_bytes(length, byteorder='big')
            b = jase93.encode(a)
            c = jase93.decode(b)
            if a != c:
                logging.error(f"Failed for a = {a!r}, b = {b!r}, c = {c!r}")
                return 1
    logging.info("All inputs round-tripped")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="JSON-string-safe base-93 encoder")
    parser.add_argument("-c", "--config", type=str, help="Path to YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--chunk-size", type=int, help="I/O chunk size in bytes")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("encode", cmd_encode, "Encode binary data to base-93 symbols"),
        ("decode", cmd_decode, "Decode base-93 symbols to binary data"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("-i", "--input", type=str, help="Input file (default: stdin)")
        p.add_argument("-o", "--output", type=str, help="Output file (default: stdout)")
        p.set_defaults(func=func)

    p = subparsers.add_parser("bench", help="Measure size overhead and throughput")
    p.add_argument("-s", "--size", type=int, help="Bytes per case (default from config)")
    p.set_defaults(func=cmd_bench)

    p = subparsers.add_parser("fuzz", help="Round-trip every short input")
    p.add_argument("-n", "--max-length", type=int, default=2, help="Longest input length to try")
    p.set_defaults(func=cmd_fuzz)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = Config.from_yaml(args.config) if args.config else Config()
    if args.chunk_size is not None:
        config.chunk_size = args.chunk_size
    if config.chunk_size <= 0:
        logging.error(f"chunk_size must be positive, got {config.chunk_size}")
        return 2
    logging.debug(f"Config: {config}")

    return args.func(args, config)


if __name__ == '__main__':
    sys.exit(main())
