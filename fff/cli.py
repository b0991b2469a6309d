import argparse
from typing import List, Optional

from .config import Config, Settings, parse_status_codes
from .request import parse_headers

DESCRIPTION = "Request URLs provided on stdin fairly frickin' fast"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fff", description=DESCRIPTION)
    # booleans default to None so an absent flag doesn't override config
    parser.add_argument("-b", "--body", help="Request body")
    parser.add_argument("-d", "--delay", type=int, help="Delay between issuing requests (ms, default: 100)")
    parser.add_argument("-H", "--header", action="append", default=[],
                        help="Add a header to the request (can be specified multiple times)")
    parser.add_argument("--ignore-html", action="store_true", default=None,
                        help="Don't save HTML files; useful when looking non-HTML files only")
    parser.add_argument("--ignore-empty", action="store_true", default=None, help="Don't save empty files")
    parser.add_argument("-k", "--keep-alive", "--keep-alives", dest="keep_alive", action="store_true", default=None,
                        help="Use HTTP Keep-Alive")
    parser.add_argument("-m", "--method", help="HTTP method to use (default: GET; GET becomes POST when a body is given)")
    parser.add_argument("-ms", "--match-string", help="Match string that is included in the body")
    parser.add_argument("-mc", "--match-code", action="append", default=[],
                        help="Match status code (can be specified in comma separated format)")
    parser.add_argument("-fc", "-ex", "--filter-code", "--exclude-status", dest="filter_code", action="append",
                        default=[], help="Filter out status code (can be specified in comma separated format)")
    parser.add_argument("-o", "--output", help="Directory to save responses in (will be created)")
    parser.add_argument("-x", "--proxy", help="Use the provided HTTP proxy")
    parser.add_argument("-c", "--concurrency", type=int, help="Maximum requests in flight (default: 50)")
    parser.add_argument("--config", help="YAML file layered over the built-in defaults")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log more to stderr (-vv for debug)")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def settings_from_args(args: argparse.Namespace, environ=None) -> Settings:
    """Flags override environment, which overrides YAML."""
    config = Config(config_path=args.config, environ=environ)

    log_level = None
    if args.verbose == 1:
        log_level = "INFO"
    elif args.verbose >= 2:
        log_level = "DEBUG"

    return Settings.from_config(
        config,
        method=args.method,
        body=args.body.encode() if args.body is not None else None,
        headers=parse_headers(args.header) if args.header else None,
        keep_alive=args.keep_alive,
        proxy=args.proxy,
        delay=args.delay / 1000 if args.delay is not None else None,
        concurrency=args.concurrency,
        match_string=args.match_string.encode() if args.match_string else None,
        match_codes=parse_status_codes(args.match_code) if args.match_code else None,
        exclude_codes=parse_status_codes(args.filter_code) if args.filter_code else None,
        ignore_html=args.ignore_html,
        ignore_empty=args.ignore_empty,
        output_dir=args.output or None,
        log_level=log_level,
    )
