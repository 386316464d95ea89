import os
import sys
import json
import logging
import argparse
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Local Ollama server; model and endpoint are fixed for this tool
OLLAMA_GENERATE_URL = "http://localhost:11434/api/generate"
MODEL = "phi3.5"

TIMEOUT = float(os.getenv("TIMEOUT", "0")) or None  # 0 / unset means wait for the server


class CompletionError(RuntimeError):
    """Base class for failures talking to the inference server."""


class RequestFailed(CompletionError):
    def __init__(self, status_code: int, reason: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Request failed: {status_code} {reason}")


class TransportError(CompletionError):
    pass


def build_request(model: str, prompt: str) -> Dict[str, str]:
    return {"model": model, "prompt": prompt}


def extract_fragment(line: Any) -> Optional[str]:
    """
    Return the generated text carried by one streamed line, or None when the
    line has nothing to emit (blank, not JSON, not an object, no "response").
    Extra fields such as "done" or timing stats are ignored.
    """
    if not line or not line.strip():
        return None
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("skipping non-JSON line: %r", line)
        return None
    if not isinstance(obj, dict):
        return None
    fragment = obj.get("response")
    if not isinstance(fragment, str) or not fragment:
        return None
    return fragment


def _session():
    s = requests.Session()
    s.headers.update({
        "Content-Type": "application/json",
        "Accept": "application/x-ndjson",
        "User-Agent": "explain-error/1.0",
    })
    return s


def _emit(sink, fragment: str):
    sink.write(fragment)
    flush = getattr(sink, "flush", None)
    if flush is not None:
        flush()


def stream_completion(model: str, prompt: str, sink=None, url: str = OLLAMA_GENERATE_URL,
                      timeout: Optional[float] = TIMEOUT) -> int:
    """
    POST the prompt to the generate endpoint and write each fragment to `sink`
    as soon as its line arrives. Returns the number of fragments written.

    Raises RequestFailed on a non-success status (the body is never read) and
    TransportError on connection or read failures. The response and session
    are closed on every exit path.
    """
    if sink is None:
        sink = sys.stdout
    payload = build_request(model, prompt)
    logger.debug("POST %s model=%s prompt=%d chars", url, model, len(prompt))

    written = 0
    try:
        with _session() as s, s.post(url, json=payload, stream=True, timeout=timeout) as r:
            logger.debug("response status=%s", r.status_code)
            if not r.ok:
                raise RequestFailed(r.status_code, r.reason)
            # ndjson responses carry no charset; decode incrementally as UTF-8
            if not r.encoding:
                r.encoding = "utf-8"
            for line in r.iter_lines(chunk_size=None, decode_unicode=True):
                fragment = extract_fragment(line)
                if fragment is None:
                    continue
                _emit(sink, fragment)
                written += 1
    except requests.RequestException as e:
        raise TransportError(f"Request to {url} failed: {e}") from e

    logger.debug("stream ended after %d fragments", written)
    return written


def main():
    ap = argparse.ArgumentParser(description="Stream a completion for a raw prompt from the local Ollama server.")
    ap.add_argument("--prompt", required=True)
    ap.add_argument("--timeout", type=float, default=TIMEOUT)
    args = ap.parse_args()

    stream_completion(MODEL, args.prompt, timeout=args.timeout)
    print()  # newline at end


if __name__ == "__main__":
    main()
