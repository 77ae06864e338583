from __future__ import annotations

import email.utils
import json
import logging
import mimetypes
from http import HTTPStatus
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlsplit

from websockets.datastructures import Headers
from websockets.http11 import Request, Response

from .registry import Registry

log = logging.getLogger(__name__)

LANDING_PAGE = "ws-client.html"
STATIC_PREFIX = "/static/"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Origin, X-Requested-With, Content-Type, Accept",
}


def _response(status: HTTPStatus, body: bytes, content_type: str) -> Response:
    headers = Headers()
    headers["Date"] = email.utils.formatdate(usegmt=True)
    headers["Connection"] = "close"
    headers["Content-Type"] = content_type
    headers["Content-Length"] = str(len(body))
    for name, value in CORS_HEADERS.items():
        headers[name] = value
    return Response(status.value, status.phrase, headers, body)


def json_response(obj: Dict[str, Any], status: HTTPStatus = HTTPStatus.OK) -> Response:
    return _response(status, json.dumps(obj).encode("utf-8"), "application/json")


def file_response(path: Path) -> Response:
    content_type, _ = mimetypes.guess_type(path.name)
    if content_type is None:
        content_type = "application/octet-stream"
    elif content_type.startswith("text/") or content_type == "application/javascript":
        content_type += "; charset=utf-8"
    return _response(HTTPStatus.OK, path.read_bytes(), content_type)


class HttpSurface:

    """
    Plain HTTP requests that reach the WebSocket port.

    GET /health        -> registry status
    GET /              -> landing page from the static dir, else a JSON stub
    GET /static/<name> -> files under the static dir
    """

    def __init__(self, registry: Registry, static_dir: str = "static") -> None:
        self.registry = registry
        self.static_dir = Path(static_dir)

    def handle(self, request: Request) -> Response:
        path = unquote(urlsplit(request.path).path)
        log.debug("GET %s", path)

        if path == "/health":
            return json_response({"status": "healthy", **self.registry.stats()})

        if path == "/":
            page = self._static_file(LANDING_PAGE)
            if page is not None:
                return file_response(page)
            return json_response({"message": "Water Quality Monitor API"})

        if path.startswith(STATIC_PREFIX):
            found = self._static_file(path[len(STATIC_PREFIX):])
            if found is not None:
                return file_response(found)

        return json_response({"detail": "Not Found"}, HTTPStatus.NOT_FOUND)

    def _static_file(self, name: str) -> Optional[Path]:
        if not name or not self.static_dir.is_dir():
            return None
        root = self.static_dir.resolve()
        candidate = (root / name).resolve()
        if root not in candidate.parents or not candidate.is_file():
            return None
        return candidate
