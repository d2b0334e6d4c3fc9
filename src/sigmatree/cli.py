"""
sigmatree command line.

Usage:
    sigmatree generate     --layers 14 [--workers N] [--batch-size N] [--key-file F]
    sigmatree scratch      SCRATCH --layers 14 [--workers N] [--key-file F]
    sigmatree from-scratch SCRATCH --layers 14
    sigmatree check        ADDRESS

The secret key is read from --key-file, or from standard input (first line).
"""

from pathlib import Path
import argparse
import logging
import os
import sys

from .address import is_valid_address, parse_address, signature_capacity
from .builder import WaveStats
from .params import DEFAULT_BATCH_SIZE, EXECUTORS, default_storage_root
from .errors import StorageError
from .store import DirectoryTreeStore
from .generator import generate, generate_from_scratch_file, generate_scratch_file


def read_secret_key(key_file) -> str:
    """First line of the key file, or of stdin when no file is given."""
    if key_file is not None:
        text = Path(key_file).read_text(encoding='utf-8')
    else:
        text = sys.stdin.readline()
    return text.splitlines()[0] if text else ''


def _print_wave(stats: WaveStats) -> None:
    print(
        f"{stats.keys_done}/{stats.keys_total} "
        f"({stats.keys_per_second:.1f} keys per second)"
    )


def _add_build_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--workers', '-w',
        type=int,
        default=os.cpu_count() or 1,
        help='Worker tasks per wave (default: CPU count)'
    )
    parser.add_argument(
        '--batch-size', '-b',
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f'Keys per worker per wave (default: {DEFAULT_BATCH_SIZE})'
    )
    parser.add_argument(
        '--executor',
        choices=EXECUTORS,
        default='process',
        help='Worker pool kind (default: process)'
    )
    parser.add_argument(
        '--key-file',
        type=Path,
        help='File holding the secret key (default: read stdin)'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sigmatree',
        description='Generate Merkle-tree addresses from a secret key'
    )
    parser.add_argument(
        '--root', '-r',
        type=Path,
        default=None,
        help='Storage root for trees (default: $SIGMATREE_HOME or ./addresses)'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Minimal output')

    sub = parser.add_subparsers(dest='command', required=True)

    gen = sub.add_parser('generate', help='Generate and store a tree')
    gen.add_argument('--layers', '-l', type=int, required=True, help='Tree depth')
    _add_build_options(gen)

    scratch = sub.add_parser('scratch', help='Only write the leaf layer')
    scratch.add_argument('scratch', type=Path, help='Scratch file to write')
    scratch.add_argument('--layers', '-l', type=int, required=True, help='Tree depth')
    _add_build_options(scratch)

    finish = sub.add_parser('from-scratch', help='Finish a tree from a scratch file')
    finish.add_argument('scratch', type=Path, help='Scratch file to read')
    finish.add_argument('--layers', '-l', type=int, required=True, help='Tree depth')

    check = sub.add_parser('check', help='Validate an address checksum')
    check.add_argument('address')

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    if args.command == 'check':
        if not is_valid_address(args.address):
            print(f"INVALID {args.address}")
            return 1
        info = parse_address(args.address)
        if info.num_layers is None:
            print(f"VALID {args.address} (non-standard depth)")
        else:
            print(
                f"VALID {args.address} ({info.num_layers} layers, "
                f"{signature_capacity(info.num_layers)} signatures)"
            )
        return 0

    root = args.root if args.root is not None else Path(default_storage_root())
    on_wave = None if args.quiet else _print_wave

    try:
        if args.command == 'from-scratch':
            result = generate_from_scratch_file(
                args.scratch, args.layers, store=DirectoryTreeStore(root)
            )
        else:
            secret_key = read_secret_key(args.key_file)
            if args.command == 'scratch':
                result = generate_scratch_file(
                    args.scratch, secret_key, args.layers,
                    args.workers, args.batch_size,
                    executor=args.executor, on_wave=on_wave
                )
            else:
                result = generate(
                    secret_key, args.layers, args.workers, args.batch_size,
                    store=DirectoryTreeStore(root), executor=args.executor,
                    on_wave=on_wave
                )
    except (StorageError, OSError) as e:
        print(f"FAILED: {e}", file=sys.stderr)
        return 1

    if not result.ok:
        print(f"FAILED during {result.stage.value}: {result.error}", file=sys.stderr)
        if result.workspace:
            print(f"Work files kept in {result.workspace}", file=sys.stderr)
        return 1

    if result.address is not None:
        print(f"Address: {result.address}")
        if result.stored is False:
            print("Tree already stored, nothing written")
    else:
        print(f"Scratch file written to {args.scratch}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
