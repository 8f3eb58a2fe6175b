"""Command-line interface for collie."""

import sys
import logging
import argparse
import asyncio
import shutil
import webbrowser
from pathlib import Path
from typing import Optional

from aiohttp import web
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from collie import __version__
from collie.config.consoles import ConsolesError, load_consoles
from collie.config.loader import load_config, ConfigError
from collie.config.validator import validate_config, ValidationError, VALID_LOG_LEVELS
from collie.server.app import create_app
from collie.server.state import AppState
from collie.workflow.store import DATA_DIRNAME

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog='collie',
        description='Metadata, box art and guide scraper for retro handheld ROM folders',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the current folder as the ROMs path
  collie

  # Listen on all interfaces without opening a browser
  collie --bind 0.0.0.0 --no-launch

  # Forget all earlier scrape results first
  collie --no-cache

  # Use custom config file
  collie --config /path/to/collie.yaml
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=Path,
        metavar='PATH',
        help='Path to collie.yaml (default: ./collie.yaml when present)'
    )

    parser.add_argument(
        '--bind',
        metavar='ADDRESS',
        help='Address to listen on (default: 127.0.0.1). Overrides config.'
    )

    parser.add_argument(
        '--port',
        type=int,
        metavar='PORT',
        help='Port to listen on (default: 2435). Overrides config.'
    )

    parser.add_argument(
        '--no-launch',
        action='store_true',
        help='Do not open a browser window. Overrides config.'
    )

    parser.add_argument(
        '--no-cache',
        action='store_true',
        help='Delete stored scrape results for the ROMs path before serving.'
    )

    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        help='Log level. Overrides config.'
    )

    return parser


def _setup_logging(config: dict) -> None:
    """
    Setup logging configuration from config.

    Args:
        config: Configuration dictionary
    """
    logging_config = config.get('logging', {})

    level_str = (logging_config.get('level') or 'INFO').upper()
    level = getattr(logging, level_str, logging.INFO)

    handlers = []

    console_handler = RichHandler(level=level, show_path=False, rich_tracebacks=True)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    handlers.append(console_handler)

    # File handler (if configured)
    log_file = logging_config.get('file')
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            print(f"Error: Could not create log file '{log_file}': {e}", file=sys.stderr)
            sys.exit(1)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # httpx logs full URLs (with API credentials) at DEBUG
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    # Verbose chunk parsing messages
    logging.getLogger('PIL').setLevel(logging.INFO)

    # One line per request otherwise, including every SSE poll
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


def clear_cache(roms_path: Path) -> bool:
    """
    Delete the stored scrape results of a ROMs path.

    Returns:
        True if a data folder was removed
    """
    data_dir = roms_path / DATA_DIRNAME
    if not data_dir.exists():
        return False
    shutil.rmtree(data_dir)
    logger.info(f"Removed cached scrape results: {data_dir}")
    return True


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for collie CLI.

    Args:
        argv: Command-line arguments (default: sys.argv)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Load and validate configuration
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.bind:
        config['server']['bind'] = args.bind
    if args.port is not None:
        config['server']['port'] = args.port
    if args.no_launch:
        config['server']['launch_browser'] = False
    if args.log_level:
        config['logging']['level'] = args.log_level

    try:
        validate_config(config)
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    _setup_logging(config)

    roms_path = Path.cwd()
    if args.no_cache:
        try:
            clear_cache(roms_path)
        except OSError as e:
            print(f"Error: Could not clear cache: {e}", file=sys.stderr)
            return 1

    try:
        consoles = load_consoles()
    except ConsolesError as e:
        print(f"Error loading console definitions: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_server(config, roms_path, consoles))
    except KeyboardInterrupt:
        print("\nShutting down.", file=sys.stderr)
        return 130
    except OSError as e:
        print(f"\nFatal error: {e}", file=sys.stderr)
        return 1


async def run_server(config: dict, roms_path: Path, consoles) -> int:
    """
    Serve the HTTP API until interrupted.

    Args:
        config: Loaded configuration
        roms_path: Initially selected ROMs path
        consoles: Console definitions

    Returns:
        Exit code
    """
    app_state = AppState(roms_path, config=config, consoles=consoles)
    app = create_app(app_state)

    bind = config['server']['bind']
    port = config['server']['port']

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, bind, port)
    try:
        await site.start()
    except OSError:
        await runner.cleanup()
        raise

    url = f"http://{bind}:{port}"
    Console().print(Panel.fit(
        f"[bold]collie {__version__}[/bold]\n"
        f"ROMs path: {app_state.roms_path}\n"
        f"Consoles: {len(consoles)}\n"
        f"Listening on [link={url}]{url}[/link]",
        title="collie"
    ))

    if config['server'].get('launch_browser', True):
        try:
            webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")

    try:
        # Serve until cancelled (Ctrl+C)
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()

    return 0


if __name__ == '__main__':
    sys.exit(main())
