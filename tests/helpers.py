"""Test helpers (small, reusable doubles).

Keep this file tiny: it exists so each suite does not hand-roll its own
``httpx.MockTransport`` handler.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import json
from typing import Any

import httpx

CONTENT_URL = "https://n8n.example.com/webhook/content"
OCR_URL = "https://n8n.example.com/webhook/invoice-ocr"
IMAGE_URL = "https://n8n.example.com/webhook/image"

Responder = httpx.Response | Callable[[httpx.Request], httpx.Response]


@dataclass
class WebhookStub:
    """Handler for ``httpx.MockTransport`` that records requests.

    Responses are served from ``responses`` in order; the last one repeats.
    A callable entry is invoked with the request and may raise.
    """

    responses: list[Responder]
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[idx]
        if isinstance(response, httpx.Response):
            return response
        return response(request)

    @property
    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_response(body: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=body)


def text_response(
    text: str, status_code: int = 200, content_type: str = "text/plain"
) -> httpx.Response:
    return httpx.Response(
        status_code, content=text.encode(), headers={"content-type": content_type}
    )


def image_response(data: bytes, content_type: str = "image/png") -> httpx.Response:
    return httpx.Response(200, content=data, headers={"content-type": content_type})
