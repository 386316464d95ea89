#!/usr/bin/env python3
"""
explain-error - ask the local model what went wrong with the last error

Examples:
  explain-error -- python deploy.py --dry-run
  explain-error --message "$msg" --position "$pos" --script ./build.ps1

From a Python prompt:
  >>> from explain_error import explain
  >>> explain()
"""
import os
import sys
import logging
import argparse
from typing import Iterable, Optional

from error_prompt import build_prompt_for
from generate_stream import MODEL, TIMEOUT, CompletionError, stream_completion
from last_error import ErrorContext, from_exception, from_fields, last_exception, run_command

logger = logging.getLogger("explain_error")

LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


def explain_context(context: ErrorContext, sink=None, timeout: Optional[float] = TIMEOUT):
    """Echo the error, a blank line, then stream the model's analysis."""
    out = sink if sink is not None else sys.stdout
    prompt = build_prompt_for(context)
    logger.debug("prompt length=%d chars, script=%s", len(prompt), context.script_path)

    out.write(context.message + "\n")
    out.write("\n")
    out.flush()
    try:
        stream_completion(MODEL, prompt, sink=out, timeout=timeout)
    finally:
        out.write("\n")
        out.flush()


def explain(exc: Optional[BaseException] = None, sink=None, timeout: Optional[float] = TIMEOUT):
    """Explain `exc`, or the last exception raised at the interactive prompt."""
    if exc is None:
        exc = last_exception()
    explain_context(from_exception(exc), sink=sink, timeout=timeout)


def parse_args(argv: Optional[Iterable[str]] = None):
    ap = argparse.ArgumentParser(
        prog="explain-error",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("-v", dest="verbose", action="count", default=0, help="Increase verbosity (-v, -vv)")
    ap.add_argument("--timeout", type=float, default=TIMEOUT, help="Seconds to wait on the server (default: no limit)")
    ap.add_argument("--message", help="Error message reported by the shell")
    ap.add_argument("--position", help="Where the error happened (line, command, position text)")
    ap.add_argument("--script", help="Path of the script that raised the error")
    ap.add_argument("command", nargs=argparse.REMAINDER, help="Command to run; its failure is explained")
    args = ap.parse_args(argv)

    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.message and not args.command:
        ap.error("give --message or a command to run")
    if args.message and args.command:
        ap.error("--message and a command cannot be combined")
    return args


def _configure_logging(verbose: int):
    level = getattr(logging, LOG_LEVEL.upper(), logging.WARNING)
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s", stream=sys.stderr)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)

    if args.message:
        context = from_fields(args.message, args.position, args.script)
    else:
        context = run_command(args.command)
        if context is None:
            logger.info("command succeeded, nothing to explain")
            return 0

    try:
        explain_context(context, timeout=args.timeout)
    except (CompletionError, OSError, UnicodeDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0 if args.message else 1


if __name__ == "__main__":
    sys.exit(main())
