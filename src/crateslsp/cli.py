"""
Command line entry point.

Editors start ``crateslsp`` with no arguments and talk LSP over
stdin/stdout.  ``--tcp`` serves a single client over a socket instead, which
is handy when attaching a debugger to the server process.
"""
from __future__ import annotations

import argparse
import logging
import sys

from crateslsp import __version__

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
LOG_FORMAT = '%(levelname)s %(name)s: %(message)s'


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='crateslsp',
        description='Language Server for Cargo.toml: versions, features and docs from crates.io.',
    )
    p.add_argument('--version', action='version', version=f'crateslsp {__version__}')
    transport = p.add_mutually_exclusive_group()
    transport.add_argument(
        '--stdio',
        action='store_true',
        help='talk LSP over stdin/stdout (the default)',
    )
    transport.add_argument(
        '--tcp',
        metavar='PORT',
        type=int,
        help='listen on PORT instead of using stdio',
    )
    p.add_argument(
        '--host',
        default='127.0.0.1',
        help='interface to bind with --tcp (default: %(default)s)',
    )
    p.add_argument(
        '--log-level',
        metavar='LEVEL',
        type=str.upper,
        default='WARNING',
        choices=LOG_LEVELS,
        help='stderr logging threshold (default: %(default)s)',
    )
    return p


def _configure_logging(level: str) -> None:
    # stdout carries the protocol in stdio mode
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, stream=sys.stderr)


def crateslsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``crateslsp`` command."""
    args = _build_parser().parse_args(argv)
    _configure_logging(args.log_level)

    from crateslsp.server import server

    if args.tcp is not None:
        logging.getLogger(__name__).info('listening on %s:%d', args.host, args.tcp)
        server.start_tcp(args.host, args.tcp)
    else:
        server.start_io()


if __name__ == '__main__':
    crateslsp()
