"""CLI entry point for the agiclient library.

Usage::

    agiclient run ANSWER "STREAM FILE hello-world \\"\\" 0"   # from the dialplan
    agiclient vars
    agiclient --host 0.0.0.0 --port 4573 serve --script greet.agi

In standalone mode (run, vars) standard output is the AGI channel, so all
reporting goes to standard error.
"""

import argparse
import configparser
import logging
import os
import sys

from . import AGIError, Session
from .server import DEFAULT_HOST, DEFAULT_PORT, Listener

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _report(text):
    print(text, file=sys.stderr)


def _print_reply(line, resp):
    if resp.error is not None:
        _report("Error: {}: {}".format(line, resp.error))
    else:
        _report(resp.raw)


def _log_reply(line, resp):
    if resp.error is not None:
        logger.error("%s: %s", line, resp.error)
    else:
        logger.info("%s: %s", line, resp.raw)


def _run_commands(session, lines, timeout, on_reply):
    """Execute command lines in order; stop at the first failure.

    Each reply is passed to on_reply(line, resp).  Returns True if every
    command succeeded.
    """
    for line in lines:
        resp = session.execute(timeout, line)
        on_reply(line, resp)
        if resp.error is not None:
            return False
    return True


def cmd_run(args, cfg):
    """Handle the 'run' subcommand."""
    session = Session.stdio()
    if not _run_commands(session, args.commands, cfg["timeout"],
                         _print_reply):
        sys.exit(1)


def cmd_vars(args, cfg):
    """Handle the 'vars' subcommand."""
    session = Session.stdio()
    for key in sorted(session.variables):
        _report("{}={}".format(key, session.variables[key]))


def cmd_serve(args, cfg):
    """Handle the 'serve' subcommand."""
    lines = []
    if args.script:
        lines = _load_script(args.script)

    def handler(session):
        logger.info("Session for %s (%d variables)",
                    session.variables.get("agi_channel", "?"),
                    len(session.variables))
        if lines:
            _run_commands(session, lines, cfg["timeout"], _log_reply)

    listener = Listener(cfg["host"], cfg["port"])
    try:
        listener.serve_forever(handler)
    except KeyboardInterrupt:
        listener.close()


def _load_script(path):
    """Read a command script: one command per line, '#' comments."""
    try:
        with open(path, "r") as f:
            raw = f.read().splitlines()
    except OSError as e:
        _report("Error: cannot read script: {}".format(e))
        sys.exit(1)
    lines = []
    for line in raw:
        line = line.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


def _default_config_path():
    """Return the path to agiclient.conf in the client directory."""
    client_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(client_dir, "agiclient.conf")


def _load_config(path, explicit):
    """Load settings from a config file.

    Args:
        path: File path to read.
        explicit: True if the user passed --config (errors are fatal).

    Returns a dict with keys 'host', 'port', 'timeout' (any may be None).
    """
    if not os.path.exists(path):
        if explicit:
            _report("Error: config file not found: {}".format(path))
            sys.exit(1)
        return {}

    config = configparser.ConfigParser()
    try:
        config.read(path)
    except configparser.Error as e:
        if explicit:
            _report("Error: failed to parse config file: {}".format(e))
            sys.exit(1)
        _report("Warning: failed to parse config file: {}".format(e))
        return {}

    result = {}

    host = config.get("listener", "host", fallback=None)
    if host is not None:
        host = host.strip() or None
    result["host"] = host

    try:
        result["port"] = config.getint("listener", "port", fallback=None)
    except ValueError as e:
        if explicit:
            _report("Error: invalid port in config file: {}".format(e))
            sys.exit(1)
        _report("Warning: invalid port in config file: {}".format(e))
        result["port"] = None

    try:
        result["timeout"] = config.getfloat("commands", "timeout",
                                            fallback=None)
    except ValueError as e:
        if explicit:
            _report("Error: invalid timeout in config file: {}".format(e))
            sys.exit(1)
        _report("Warning: invalid timeout in config file: {}".format(e))
        result["timeout"] = None

    return result


def _resolve(cli_value, env_value, cfg_value, default):
    """Pick the first configured value: CLI > env > config > default."""
    for value in (cli_value, env_value, cfg_value):
        if value is not None:
            return value
    return default


def build_parser():
    parser = argparse.ArgumentParser(
        prog="agiclient",
        description="Asterisk Gateway Interface client",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="FastAGI listen address (default: AGICLIENT_HOST env or {})"
             .format(DEFAULT_HOST),
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="FastAGI listen port (default: AGICLIENT_PORT env or {})"
             .format(DEFAULT_PORT),
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-command timeout in seconds, 0 waits forever "
             "(default: {})".format(DEFAULT_TIMEOUT),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config file (default: client/agiclient.conf)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser(
        "run", help="Run AGI commands over stdin/stdout")
    p_run.add_argument(
        "commands", nargs="+",
        help="Command lines, e.g. ANSWER or 'GET VARIABLE FOO'")

    subparsers.add_parser(
        "vars", help="Print the handshake variables to stderr")

    p_serve = subparsers.add_parser(
        "serve", help="Run a FastAGI server")
    p_serve.add_argument(
        "--script", default=None,
        help="File of command lines to run for every session")

    return parser


def main(argv=None) -> None:
    """Parse arguments and dispatch to the appropriate subcommand."""
    env_host = os.environ.get("AGICLIENT_HOST") or None
    env_port_str = os.environ.get("AGICLIENT_PORT")
    env_port = None
    if env_port_str:
        try:
            env_port = int(env_port_str)
        except ValueError:
            _report("Error: AGICLIENT_PORT must be an integer, got: {!r}"
                    .format(env_port_str))
            sys.exit(1)

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config_path = args.config or _default_config_path()
    file_cfg = _load_config(config_path, bool(args.config))

    cfg = {
        "host": _resolve(args.host, env_host, file_cfg.get("host"),
                         DEFAULT_HOST),
        "port": _resolve(args.port, env_port, file_cfg.get("port"),
                         DEFAULT_PORT),
        "timeout": _resolve(args.timeout, None, file_cfg.get("timeout"),
                            DEFAULT_TIMEOUT),
    }

    dispatch = {
        "run": cmd_run,
        "serve": cmd_serve,
        "vars": cmd_vars,
    }

    try:
        dispatch[args.command](args, cfg)
    except AGIError as e:
        _report("Error: {}".format(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
