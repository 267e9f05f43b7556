"""
input_liveness.py
Checks stream inputs over HTTP and removes (or disables) the dead ones.

Checks run on a thread pool bounded by input_max_conns. Each check only
records its verdict; verdicts are applied in input order once the pool has
drained, so the result does not depend on completion order.
"""

import enum
import errno
import logging
import socket
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta

import requests
import urllib3

from stream_rules import describe


class ErrType(str, enum.Enum):
    NO_SUCH_HOST = "No such host"
    HTTPS_CLIENT_HTTP_SERVER = "HTTP response to HTTPS client"
    REFUSED = "Connection refused"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


class HttpClient:
    """requests session with the timeout and TLS options used by the probe."""

    def __init__(self, timeout=10, verify_tls=False):
        self.timeout = timeout
        self.session = requests.Session()
        self.session.verify = verify_tls
        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def get(self, url):
        # Body is never read; only the status line matters.
        return self.session.get(url, timeout=self.timeout, stream=True, allow_redirects=True)

    def close(self):
        self.session.close()


class ProgressTracker:
    """Track check progress with ETA"""

    def __init__(self, total, lock=None, callback=None, show=False):
        self.total = total
        self.processed = 0
        self.dead = 0
        self.start_time = time.time()
        self.lock = lock or threading.Lock()
        self.callback = callback
        self.show = show

    def mark_processed(self, alive=True):
        """Count a finished check. Caller must hold the lock."""
        self.processed += 1
        if not alive:
            self.dead += 1

    def get_progress(self):
        """Get current progress statistics. Caller must hold the lock."""
        elapsed = time.time() - self.start_time
        rate = self.processed / elapsed if elapsed > 0 else 0
        remaining = self.total - self.processed
        eta_seconds = remaining / rate if rate > 0 else 0
        return {
            'processed': self.processed,
            'total': self.total,
            'dead': self.dead,
            'rate': rate,
            'eta_seconds': int(eta_seconds),
            'percent': (self.processed / self.total * 100) if self.total > 0 else 0
        }

    def report(self):
        stats = self.get_progress()
        if self.callback:
            self.callback(stats)
        if self.show:
            print(f"\r[{stats['processed']}/{stats['total']}] "
                  f"Dead: {stats['dead']} | "
                  f"ETA: {timedelta(seconds=stats['eta_seconds'])} | "
                  f"{stats['percent']:.1f}%",
                  end='', file=sys.stderr, flush=True)


def _iter_causes(exc):
    """Walk an exception, its causes and the errors wrapped by requests/urllib3."""
    stack = [exc]
    seen = set()
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.append(current.__cause__)
        stack.append(current.__context__)
        reason = getattr(current, 'reason', None)
        if isinstance(reason, BaseException):
            stack.append(reason)
        stack.extend(arg for arg in current.args if isinstance(arg, BaseException))


def classify_error(exc):
    """Map a failed request to an ErrType."""
    if isinstance(exc, requests.exceptions.Timeout):
        return ErrType.TIMEOUT

    causes = list(_iter_causes(exc))
    text = " ".join(str(c) for c in causes)

    if isinstance(exc, requests.exceptions.SSLError) and 'certificate' not in text.lower():
        return ErrType.HTTPS_CLIENT_HTTP_SERVER

    for cause in causes:
        if isinstance(cause, (socket.timeout, TimeoutError)):
            return ErrType.TIMEOUT
        if isinstance(cause, socket.gaierror):
            return ErrType.NO_SUCH_HOST
        if isinstance(cause, ConnectionRefusedError):
            return ErrType.REFUSED
        if isinstance(cause, OSError) and cause.errno == errno.ECONNREFUSED:
            return ErrType.REFUSED

    lowered = text.lower()
    if any(marker in lowered for marker in (
        'name or service not known', 'nodename nor servname', 'failed to resolve',
        'temporary failure in name resolution', 'no such host', 'getaddrinfo failed',
    )):
        return ErrType.NO_SUCH_HOST
    if 'connection refused' in lowered or 'actively refused' in lowered:
        return ErrType.REFUSED
    return ErrType.UNKNOWN


def check_input(http_client, url):
    """Return an empty string for a live input, otherwise the reason it is dead."""
    try:
        response = http_client.get(url)
    except requests.exceptions.RequestException as exc:
        err_type = classify_error(exc)
        return str(exc) if err_type == ErrType.UNKNOWN else err_type.value

    try:
        if response.status_code >= 400:
            return f"Responded with: {response.status_code} {response.reason or ''}".rstrip()
        return ""
    finally:
        response.close()


def _should_check(url, settings):
    if not (url.startswith("http://") or url.startswith("https://")):
        return False
    return not any(rx.search(url) for rx in settings.dead_inputs_check_blacklist)


def _find_dead_inputs(streams, settings, http_client, progress_callback=None, max_conns=None):
    """Return {(stream index, input index): reason} for every dead input."""
    tasks = [
        (s_idx, i_idx, url)
        for s_idx, s in enumerate(streams)
        for i_idx, url in enumerate(s.inputs)
        if _should_check(url, settings)
    ]
    dead = {}
    if not tasks:
        return dead

    lock = threading.Lock()
    progress = ProgressTracker(len(tasks), lock=lock, callback=progress_callback)
    workers = max(1, max_conns or settings.input_max_conns)

    def _task(s_idx, i_idx, url):
        s = streams[s_idx]
        logging.debug(
            f'Start checking input: stream ID "{s.id}", stream name "{s.name}", '
            f'stream index "{s_idx}", input "{url}"'
        )
        reason = check_input(http_client, url)
        with lock:
            if reason:
                dead[(s_idx, i_idx)] = reason
            progress.mark_processed(alive=not reason)
            progress.report()
        logging.debug(
            f'End checking input: stream ID "{s.id}", stream name "{s.name}", '
            f'stream index "{s_idx}", input "{url}"'
        )

    logging.info(f"Checking {len(tasks)} inputs with {workers} connections...")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_task, *task): task for task in tasks}
        for future in futures:
            try:
                future.result()
            except Exception as exc:
                _, _, url = futures[future]
                logging.error(f"Checking input {url} generated exception: {exc}")
    return dead


def remove_dead_inputs(streams, settings, http_client, progress_callback=None, max_conns=None):
    """Drop inputs that fail the HTTP check from inputs and disabled inputs."""
    logging.info("Removing dead inputs from streams")
    dead = _find_dead_inputs(streams, settings, http_client, progress_callback, max_conns)
    out = []
    for s_idx, s in enumerate(streams):
        removed = [(url, dead[(s_idx, i_idx)]) for i_idx, url in enumerate(s.inputs) if (s_idx, i_idx) in dead]
        if removed:
            dead_urls = {url for url, _ in removed}
            for url, reason in removed:
                logging.info(f'Removing dead input from stream: {describe(s)}, input "{url}", reason "{reason}"')
            s = replace(
                s,
                inputs=[url for i_idx, url in enumerate(s.inputs) if (s_idx, i_idx) not in dead],
                disabled_inputs=[url for url in s.disabled_inputs if url not in dead_urls],
            )
        out.append(s)
    return out


def disable_dead_inputs(streams, settings, http_client, progress_callback=None, max_conns=None):
    """Move inputs that fail the HTTP check to the end of the disabled inputs."""
    logging.info("Disabling dead inputs of streams")
    dead = _find_dead_inputs(streams, settings, http_client, progress_callback, max_conns)
    out = []
    for s_idx, s in enumerate(streams):
        inputs = []
        disabled = list(s.disabled_inputs)
        for i_idx, url in enumerate(s.inputs):
            reason = dead.get((s_idx, i_idx))
            if reason is None:
                inputs.append(url)
                continue
            logging.info(f'Disabling dead input of stream: {describe(s)}, input "{url}", reason "{reason}"')
            if url not in disabled:
                disabled.append(url)
        if inputs != s.inputs:
            s = replace(s, inputs=inputs, disabled_inputs=disabled)
        out.append(s)
    return out
