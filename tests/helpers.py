"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx


class ScriptedEndpoint:
    """httpx.MockTransport handler that replays scripted outcomes.

    Each outcome is a status code, an httpx.Response, or an exception to
    raise. The last outcome repeats once the script runs out. Every request
    is recorded for later assertions.
    """

    def __init__(self, *outcomes: int | httpx.Response | Exception) -> None:
        self._outcomes = list(outcomes) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(outcome, json={"received": outcome < 300})

    @property
    def calls(self) -> int:
        """Number of requests received."""
        return len(self.requests)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """HTTP client routed through a mock transport."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def wait_for_state(store, delivery_id: str, *states, timeout: float = 2.0):
    """Poll the delivery store until a delivery reaches one of ``states``."""

    async def _poll():
        while True:
            delivery = await store.get_delivery(delivery_id)
            if delivery is not None and delivery.state in states:
                return delivery
            await asyncio.sleep(0.005)

    return await asyncio.wait_for(_poll(), timeout)
