#!/usr/bin/env python3
"""
Portal Check - audit an OCFL repository against its RO-Crate catalogs

Usage:
    portal-check --repo <path> [options]

Options:
    -r, --repo <path>         OCFL storage root (required unless set in --config)
    -n, --namespace <ns>      Identifier namespace (default: public_ocfl)
    -o, --portal <url>        Portal endpoint; files are fetched from
                              <url>/<identifier>/<path>
    --fixity                  Check fetched files against manifest digests
    --fetch-filter <regex>    Only fetch files whose physical path matches
    --scratch <dir>           Download directory (default: a new temp dir)
    --workers <n>             Local check threads (default: 4)
    --fetch-workers <n>       Concurrent downloads (default: 4)
    --keep-downloads          Keep fetched files after verification
    --discard-partial         Delete partial files of failed downloads
    --config <file>           JSON config file (flags override it)
    --json <file>             Also write findings as JSON lines
    -v, --verbose             Show every finding and debug logging
    --quiet                   Only show errors
    -h, --help                Show this message

Exit codes:
    0  no problems found
    1  integrity problems found
    2  usage or configuration error
    3  repository could not be loaded
"""

import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

from audit import PortalAudit
from config import AuditConfig
from errors import ConfigError, RepositoryNotInitializedError
from report import ConsoleReporter, JsonLinesReporter, MultiReporter


EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2
EXIT_REPOSITORY = 3


class UsageError(Exception):
    """Raised for malformed command lines."""

    pass


# flag -> (setting name, converter)
VALUE_FLAGS = {
    "--repo": ("repo_root", str),
    "-r": ("repo_root", str),
    "--namespace": ("namespace", str),
    "-n": ("namespace", str),
    "--portal": ("portal_url", str),
    "-o": ("portal_url", str),
    "--fetch-filter": ("fetch_filter", str),
    "--scratch": ("scratch_dir", str),
    "--workers": ("check_workers", int),
    "--fetch-workers": ("fetch_workers", int),
}

# flag -> (setting name, value)
SWITCH_FLAGS = {
    "--fixity": ("fixity", True),
    "--keep-downloads": ("keep_downloads", True),
    "--discard-partial": ("keep_partial", False),
}


def parse_args(args: List[str]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Split the command line into config settings and CLI-only options.

    Returns:
        (settings, options) where settings feed AuditConfig and options holds
        'config', 'json', 'verbose', 'quiet' and 'help'
    """
    settings: Dict[str, Any] = {}
    options: Dict[str, Any] = {
        "config": None,
        "json": None,
        "verbose": False,
        "quiet": False,
        "help": False,
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in VALUE_FLAGS:
            if i + 1 >= len(args):
                raise UsageError(f"{arg} requires a value")
            name, convert = VALUE_FLAGS[arg]
            try:
                settings[name] = convert(args[i + 1])
            except ValueError:
                raise UsageError(f"Invalid value for {arg}: {args[i + 1]}") from None
            i += 2
        elif arg in SWITCH_FLAGS:
            name, value = SWITCH_FLAGS[arg]
            settings[name] = value
            i += 1
        elif arg in ("--config", "--json"):
            if i + 1 >= len(args):
                raise UsageError(f"{arg} requires a value")
            options[arg[2:]] = args[i + 1]
            i += 2
        elif arg in ("-v", "--verbose"):
            options["verbose"] = True
            i += 1
        elif arg == "--quiet":
            options["quiet"] = True
            i += 1
        elif arg in ("-h", "--help"):
            options["help"] = True
            i += 1
        else:
            raise UsageError(f"Unknown argument: {arg}")

    return settings, options


def build_config(settings: Dict[str, Any], config_file: Optional[str]) -> AuditConfig:
    """Defaults < config file < command line."""
    if config_file:
        return AuditConfig.from_file(config_file, **settings)
    return AuditConfig().with_overrides(**settings)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Request-level chatter from the HTTP stack is not useful here
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def print_usage():
    """Print usage information."""
    print(__doc__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = sys.argv[1:] if argv is None else argv

    try:
        settings, options = parse_args(args)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run with --help for usage.", file=sys.stderr)
        return EXIT_USAGE

    if options["help"]:
        print_usage()
        return EXIT_OK

    if "repo_root" not in settings and not options["config"]:
        print("Error: --repo <path> is required", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(options["verbose"])

    try:
        config = build_config(settings, options["config"])
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    verbose = options["verbose"]
    quiet = options["quiet"]

    sinks = [ConsoleReporter(verbose=verbose, quiet=quiet)]
    if options["json"]:
        try:
            sinks.append(JsonLinesReporter(options["json"]))
        except OSError as e:
            print(f"Error: Cannot write {options['json']}: {e}", file=sys.stderr)
            return EXIT_USAGE
    reporter = MultiReporter(sinks)

    try:
        if not quiet:
            print(f"\n=== Auditing: {config.repo_root} ===")
            if config.portal_url:
                mode = "fetch + fixity" if config.fixity else "fetch"
                print(f"Portal: {config.portal_url} ({mode})")
            print()

        try:
            audit = PortalAudit(config, reporter)
        except RepositoryNotInitializedError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_REPOSITORY

        summary = audit.run()
    finally:
        reporter.close()

    if not quiet:
        print()
    print(summary.format_report(verbose=verbose))

    return EXIT_OK if summary.passed() else EXIT_FINDINGS


if __name__ == "__main__":
    sys.exit(main())
