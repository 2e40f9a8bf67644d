"""
nwbuild command-line interface.

Usage:
    nwbuild [SRC_DIR ...] [options] [-- APP_ARGS ...]

Everything after ``--`` is passed through to the application in run mode.
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from nwbuilder.builder import nwbuild
from nwbuilder.cli.utils import load_yaml_config, print_error
from nwbuilder.core.platform import SUPPORTED_ARCHS, SUPPORTED_PLATFORMS
from nwbuilder.runtime.options import FLAVORS, MODES

try:
    __version__ = version("nwbuilder")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

# argparse dest -> option key
_OPTION_DESTS = (
    "mode",
    "version",
    "flavor",
    "platform",
    "arch",
    "out_dir",
    "cache_dir",
    "download_url",
    "manifest_url",
    "cache",
    "zip",
)


class CLI:
    """nwbuild command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="nwbuild",
            description="Download, cache and build or run NW.js applications",
            epilog="Arguments after -- are passed to the application in run mode",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        parser.add_argument(
            "src_dir",
            nargs="*",
            metavar="SRC_DIR",
            help="Glob patterns of application files (default: ./**/*)",
        )
        parser.add_argument("--mode", choices=MODES, help="Run or build the application")
        parser.add_argument(
            "--version",
            metavar="VERSION",
            help="NW.js version or alias: latest, stable, lts (default: latest)",
        )
        parser.add_argument("--flavor", choices=FLAVORS, help="Runtime flavor")
        parser.add_argument("--platform", choices=SUPPORTED_PLATFORMS, help="Target platform")
        parser.add_argument("--arch", choices=SUPPORTED_ARCHS, help="Target architecture")
        parser.add_argument(
            "--out-dir", metavar="DIR", help="Output directory (default: ./out)"
        )
        parser.add_argument(
            "--cache-dir", metavar="DIR", help="Runtime cache directory (default: ./cache)"
        )
        parser.add_argument("--download-url", metavar="URL", help="Runtime download mirror")
        parser.add_argument("--manifest-url", metavar="URL", help="Version manifest URL")
        parser.add_argument(
            "--no-cache",
            dest="cache",
            action="store_const",
            const=False,
            help="Remove and re-download the cached runtime",
        )
        parser.add_argument(
            "--zip",
            action="store_const",
            const=True,
            help="Zip the output directory",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="YAML file of options (flags win over it)",
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "-V",
            "--print-version",
            action="version",
            version=f"nwbuilder {__version__}",
        )

        return parser

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Arguments after ``--`` are stored in ``argv``.
        """
        own, passthrough = _split_passthrough(
            list(sys.argv[1:] if args is None else args)
        )
        parsed = self.parser.parse_args(own)
        parsed.argv = passthrough
        return parsed

    def build_options(self, args: argparse.Namespace) -> Dict[str, Any]:
        """
        Turn parsed arguments into an nwbuild options mapping.

        Raises:
            FileNotFoundError: If --config names a missing file
            ValueError: If the config file is not valid YAML
        """
        options: Dict[str, Any] = {}
        if args.config:
            options.update(load_yaml_config(args.config, required=True))

        if args.src_dir:
            options["srcDir"] = " ".join(args.src_dir)
        for dest in _OPTION_DESTS:
            value = getattr(args, dest)
            if value is not None:
                options[dest] = value
        if args.argv:
            options["argv"] = args.argv
        return options

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Returns:
            Exit code (0 for success, 1 for error, 130 when interrupted)
        """
        parsed_args = self.parse_args(args)
        self._configure_logging(parsed_args)

        try:
            options = self.build_options(parsed_args)
        except (FileNotFoundError, ValueError) as e:
            print_error(str(e))
            return 1

        try:
            error = nwbuild(options)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130

        return 1 if error is not None else 0

    def _configure_logging(self, args):
        """Configure logging based on verbose/quiet flags."""
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(level=level, format=format_str, force=True)


def _split_passthrough(args: List[str]) -> Tuple[List[str], List[str]]:
    if "--" not in args:
        return args, []
    index = args.index("--")
    return args[:index], args[index + 1:]


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
