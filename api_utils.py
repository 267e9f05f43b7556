"""
api_utils.py
API utilities for Astra control interface interaction
"""

import logging
import os

import requests
from dotenv import load_dotenv

from astra_streams import AstraConfig


class AstraAuthError(Exception):
    """Raised when authentication is missing or invalid."""


class AstraConnectionError(Exception):
    """Raised when Astra cannot be reached."""


class AstraAPIError(Exception):
    """Raised when Astra rejects a command."""


class AstraAPI:
    """API client for the Astra control interface"""

    def __init__(self, base_url=None, username=None, password=None, timeout=30):
        load_dotenv()
        self.base_url = (base_url or os.getenv('ASTRA_ADDR', '')).rstrip('/')
        self.username = username if username is not None else os.getenv('ASTRA_USER', '')
        self.password = password if password is not None else os.getenv('ASTRA_PASS', '')
        self.timeout = timeout

        if not self.base_url:
            raise ValueError("Missing ASTRA_ADDR in environment")

    def _auth(self):
        if not self.username and not self.password:
            return None
        return (self.username, self.password)

    def _request(self, payload, timeout=None):
        url = f"{self.base_url}/control/"
        cmd = payload.get('cmd')

        try:
            response = requests.post(
                url,
                auth=self._auth(),
                headers={'Content-Type': 'application/json'},
                json=payload,
                timeout=timeout or self.timeout
            )
        except requests.exceptions.RequestException as exc:
            raise AstraConnectionError(f"{cmd} command to {url} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AstraAuthError(f"Authentication failed for {url}")

        try:
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise AstraConnectionError(f"{cmd} command to {url} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise AstraAPIError(f"{cmd} command returned invalid JSON: {exc}") from exc

    def _command(self, payload):
        """Send a command that answers with {"<cmd>": "ok"}."""
        data = self._request(payload)
        cmd = payload['cmd']
        if not isinstance(data, dict):
            raise AstraAPIError(f"{cmd} command returned unexpected response: {data!r}")
        if data.get('error'):
            raise AstraAPIError(f"{cmd} command failed: {data['error']}")
        if data.get(cmd) != 'ok':
            raise AstraAPIError(f"{cmd} command returned unexpected response: {data!r}")
        return data

    def fetch_config(self):
        """Fetch the whole server configuration"""
        data = self._request({'cmd': 'load'})
        if not isinstance(data, dict):
            raise AstraAPIError(f"load command returned unexpected response: {data!r}")
        return AstraConfig.from_dict(data)

    def set_stream(self, stream):
        """Create or update a stream"""
        return self._command({'cmd': 'set-stream', 'id': stream.id, 'stream': stream.to_dict()})

    def remove_stream(self, stream):
        """Remove a stream"""
        body = stream.to_dict()
        body['remove'] = True
        return self._command({'cmd': 'set-stream', 'id': stream.id, 'stream': body})

    def set_category(self, index, category):
        """Create (index < 0) or update the category at index"""
        payload = {'cmd': 'set-category', 'category': category.to_dict()}
        if index is not None and index >= 0:
            payload['id'] = index
        return self._command(payload)

    # Bulk helpers: errors are logged per item so the rest is still sent.

    def set_streams(self, streams):
        failed = 0
        for stream in streams:
            try:
                self.set_stream(stream)
                logging.info(f'Stream is set: ID "{stream.id}", name "{stream.name}"')
            except (AstraConnectionError, AstraAuthError, AstraAPIError) as exc:
                failed += 1
                logging.error(f'Failed to set stream: ID "{stream.id}", name "{stream.name}": {exc}')
        return failed

    def remove_streams(self, streams):
        failed = 0
        for stream in streams:
            try:
                self.remove_stream(stream)
                logging.info(f'Stream is removed: ID "{stream.id}", name "{stream.name}"')
            except (AstraConnectionError, AstraAuthError, AstraAPIError) as exc:
                failed += 1
                logging.error(f'Failed to remove stream: ID "{stream.id}", name "{stream.name}": {exc}')
        return failed

    def set_categories(self, changes):
        failed = 0
        for index, category in changes:
            try:
                self.set_category(index, category)
                logging.info(f'Category is set: name "{category.name}"')
            except (AstraConnectionError, AstraAuthError, AstraAPIError) as exc:
                failed += 1
                logging.error(f'Failed to set category: name "{category.name}": {exc}')
        return failed
