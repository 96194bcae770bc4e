#!/usr/bin/env python
"""
Command-line interface for mdreader
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from mdreader.version_info import __version__, __build_timestamp__, __build_type__

logger = logging.getLogger(__name__)

EXTENSION_LOAD_TIMEOUT = 30.0


def print_version():
    """Print version information."""
    print(f"mdreader v{__version__}")
    print(f"Build: {__build_timestamp__}")
    print(f"Build Type: {__build_type__}")


def render_to_stdout(path: Path, config) -> int:
    """
    Print the sanitized HTML body of `path`.
    There is no second pass, so extensions the document needs are loaded
    before rendering.
    """
    from mdreader.core.document import read_document
    from mdreader.core.renderer import render_html
    from mdreader.core.exceptions import ReaderError
    from mdreader.features.registry import create_default_loader

    try:
        document = read_document(path, max_file_size=config.max_file_size)
    except ReaderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    loader = create_default_loader()
    try:
        capabilities = loader.load_triggered(document.raw_text, timeout=EXTENSION_LOAD_TIMEOUT)
    finally:
        loader.shutdown()
    logger.debug(f"Rendering {document.name} with capabilities {sorted(capabilities)}")
    print(render_html(document.raw_text, document.source_location, capabilities))
    return 0


def start_server(path: Path, config) -> int:
    """Open `path` and start the Flask viewer."""
    from mdreader import app as host
    from mdreader.core.exceptions import ReaderError

    host.configure(config)
    try:
        host.open_path(path)
    except ReaderError as e:
        logger.error(f"Cannot open {path}: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Starting mdreader v{__version__}")
    print(f"Viewing: {path}")
    print(f"Server: http://{config.host}:{config.port}")
    print("Press Ctrl+C to stop")
    print()

    host.app.run(host=config.host, port=config.port, debug=config.debug, use_reloader=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mdreader',
        description=f'mdreader v{__version__}',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mdreader --version              Show version information
  mdreader README.md              View README.md on localhost:8000
  mdreader README.md --port 8080  View on port 8080
  mdreader README.md --render     Print the rendered HTML and exit
        """
    )

    parser.add_argument(
        'file',
        nargs='?',
        type=Path,
        help='Markdown file to open'
    )
    parser.add_argument(
        '--version', '-v',
        action='store_true',
        help='Show version information'
    )
    parser.add_argument(
        '--host',
        type=str,
        default=None,
        help='Host to bind to (default: from config, 127.0.0.1)'
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='Port to bind to (default: from config, 8000)'
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Run in debug mode'
    )
    parser.add_argument(
        '--render',
        action='store_true',
        help='Print the sanitized HTML to stdout instead of starting the viewer'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to a JSON config file (default: ./mdreader.json)'
    )
    return parser


def main(argv=None):
    """Main CLI entry point."""
    from mdreader.core.config import load_config
    from mdreader.core.exceptions import ConfigError
    from mdreader.core.logging_config import setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print_version()
        return 0

    if args.file is None:
        parser.error('a markdown file is required')

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    overrides = {}
    if args.host:
        overrides['host'] = args.host
    if args.port:
        overrides['port'] = args.port
    if args.debug:
        overrides['debug'] = True
    config = replace(config, **overrides)

    if args.render:
        return render_to_stdout(args.file, config)

    setup_logging(Path(config.log_dir), config.debug)
    try:
        return start_server(args.file, config)
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except Exception as e:
        logger.error(f"Error starting server: {e}", exc_info=True)
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
