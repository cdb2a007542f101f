"""Deterministic child process for engine integration tests and smoke runs."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Write the requested output, optionally sleep, exit with the given code."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--stdout", default="")
    parser.add_argument("--stderr", default="")
    parser.add_argument("--repeat", type=int, default=1)
    parser.add_argument("--print-pid", action="store_true")
    parser.add_argument("--print-cwd", action="store_true")
    parser.add_argument("--touch", default=None)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args(argv)

    if args.touch:
        Path(args.touch).touch()
    if args.print_pid:
        sys.stdout.write(f"{os.getpid()}\n")
    if args.print_cwd:
        sys.stdout.write(f"{Path.cwd()}\n")
    for _ in range(max(0, args.repeat)):
        if args.stdout:
            sys.stdout.write(args.stdout)
        if args.stderr:
            sys.stderr.write(args.stderr)
    sys.stdout.flush()
    sys.stderr.flush()

    if args.sleep > 0:
        time.sleep(args.sleep)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
