"""
Collect the most recent error as an ErrorContext (message, position, script).

Three sources are supported: the last exception of a Python session, a shell
command that exits with a failure status, and fields handed over explicitly by
a shell hook (for example PowerShell's $Error[0] or a bash ERR trap).
"""
import os
import sys
import shlex
import logging
import subprocess
import traceback
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

NO_POSITION = "No position information was reported for this error."

_CONSOLE_FILENAMES = {"<stdin>", "<console>", "<string>", "<input>"}


class NoErrorRecorded(LookupError):
    pass


@dataclass(frozen=True)
class ErrorContext:
    message: str
    position: str
    script_path: Optional[str] = None


def last_exception() -> BaseException:
    """Return the last exception left behind by the interactive interpreter."""
    exc = getattr(sys, "last_exc", None) or getattr(sys, "last_value", None)
    if exc is None:
        raise NoErrorRecorded("No error has been raised in this session")
    return exc


def _with_traceback(exc: BaseException) -> BaseException:
    # An exception that was never raised has no position; raise it once to get one
    if exc.__traceback__ is not None:
        return exc
    context = exc.__context__
    try:
        raise exc
    except BaseException as raised:
        # raising inside an except block would chain the handled exception
        raised.__context__ = context
        return raised


def _is_script(path: Optional[str]) -> bool:
    return bool(path) and path not in _CONSOLE_FILENAMES and os.path.isfile(path)


def _position(exc: BaseException) -> str:
    if isinstance(exc, SyntaxError) and exc.filename:
        text = f"At {exc.filename}:{exc.lineno}"
        if exc.text:
            text += "\n+ " + exc.text.rstrip("\n")
        return text
    frames = traceback.extract_tb(exc.__traceback__)
    return "".join(traceback.format_list(frames)).rstrip("\n") or NO_POSITION


def _script_path(exc: BaseException) -> Optional[str]:
    if isinstance(exc, SyntaxError) and _is_script(exc.filename):
        return exc.filename
    frames = traceback.extract_tb(exc.__traceback__)
    if frames and _is_script(frames[0].filename):
        return frames[0].filename
    return None


def from_exception(exc: BaseException) -> ErrorContext:
    # a recaptured traceback only points here, so it names no script
    recaptured = exc.__traceback__ is None
    exc = _with_traceback(exc)
    message = "".join(traceback.format_exception_only(type(exc), exc)).strip()
    script_path = None if recaptured else _script_path(exc)
    return ErrorContext(message=message, position=_position(exc), script_path=script_path)


def from_fields(message: str, position: Optional[str] = None, script_path: Optional[str] = None) -> ErrorContext:
    return ErrorContext(message=message, position=position or NO_POSITION, script_path=script_path or None)


def _command_script(argv: List[str]) -> Optional[str]:
    for arg in argv[1:]:
        if _is_script(arg):
            return arg
    cmd = argv[0]
    if os.sep in cmd and os.path.isfile(cmd) and os.access(cmd, os.R_OK):
        with open(cmd, "rb") as f:
            if f.read(2) == b"#!":
                return cmd
    return None


def run_command(argv: List[str]) -> Optional[ErrorContext]:
    """
    Run a command with stdout passed through and stderr captured (and echoed).
    Returns None when it succeeds, otherwise the error it reported.
    """
    logger.info("running %s", shlex.join(argv))
    try:
        proc = subprocess.run(argv, stderr=subprocess.PIPE, encoding="utf-8", errors="replace")
    except OSError as e:
        # not found, not executable, ...
        return ErrorContext(message=str(e), position=f"Command: {shlex.join(argv)}",
                            script_path=_command_script(argv))
    if proc.stderr:
        sys.stderr.write(proc.stderr)
        sys.stderr.flush()
    if proc.returncode == 0:
        return None

    message = proc.stderr.strip() or f"Command exited with status {proc.returncode}"
    position = f"Command: {shlex.join(argv)}\nExit status: {proc.returncode}"
    return ErrorContext(message=message, position=position, script_path=_command_script(argv))
