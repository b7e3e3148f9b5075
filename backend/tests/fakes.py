"""
Test doubles for object storage, SMTP transports and OAuth token endpoints.

WHY: Tests never reach S3, an SMTP server or an identity provider. The
fakes satisfy the interfaces the services call (`get_file`, `send`,
`verify`); the token endpoint plugs into httpx.MockTransport.
"""

from email.message import EmailMessage
from typing import Dict, List, Optional
from urllib.parse import parse_qs

import httpx


class FakeStorage:
    """In-memory stand-in for ObjectStorage."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files = dict(files or {})
        self.requested: List[str] = []

    async def get_file(self, file_key: str) -> Optional[bytes]:
        self.requested.append(file_key)
        return self.files.get(file_key)


class FakeTransport:
    """
    Records messages instead of talking to an SMTP server.

    `error` is raised from send/verify when set.
    """

    def __init__(self, config=None, error: Optional[Exception] = None):
        self.config = config
        self.error = error
        self.sent: List[EmailMessage] = []
        self.access_tokens: List[Optional[str]] = []
        self.verified = 0

    async def send(self, message: EmailMessage, access_token: Optional[str] = None) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        self.access_tokens.append(access_token)
        return message["Message-ID"]

    async def verify(self, access_token: Optional[str] = None) -> None:
        if self.error is not None:
            raise self.error
        self.verified += 1
        self.access_tokens.append(access_token)


class FakeTransportFactory:
    """transport_factory that remembers every transport it built."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.built: List[FakeTransport] = []

    def __call__(self, config) -> FakeTransport:
        transport = FakeTransport(config, error=self.error)
        self.built.append(transport)
        return transport

    @property
    def sent(self) -> List[EmailMessage]:
        return [message for transport in self.built for message in transport.sent]


class TokenEndpoint:
    """Scripted provider token endpoint that records form posts."""

    def __init__(self, status_code=200, payload=None, error=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {
            "access_token": "new-access",
            "expires_in": 3600,
        }
        self.error = error
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)

    def client_factory(self):
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def form(self, index=0) -> dict:
        return {k: v[0] for k, v in parse_qs(self.requests[index].content.decode()).items()}
