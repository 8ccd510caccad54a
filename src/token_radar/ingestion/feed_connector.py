"""Websocket subscription to the new-token event feed."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import WebSocketException

from ..config.settings import FeedConfig, get_app_config
from ..datalake.schemas import ConnectionStatus
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..utils.constants import utc_now

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class TransportError(RuntimeError):
    """Raised when the feed socket fails or closes underneath us."""


class MalformedEventError(ValueError):
    """Raised for inbound frames that cannot become a record."""


def parse_event(raw: Any) -> Dict[str, Any]:
    """Decode one frame; it must be a JSON object with a non-empty ``uri``."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEventError("frame is not valid UTF-8") from exc
    if not isinstance(raw, str):
        raise MalformedEventError(f"unsupported frame type {type(raw).__name__}")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise MalformedEventError("event is not a JSON object")
    uri = payload.get("uri")
    if not isinstance(uri, str) or not uri.strip():
        raise MalformedEventError("event has no uri")
    payload["uri"] = uri.strip()
    return payload


class FeedConnector:
    """Owns one logical subscription and keeps it alive across failures.

    Transport failures never propagate out of :meth:`run`; they are recorded on
    :attr:`status` and followed by a reconnect after a fixed delay.
    """

    def __init__(
        self,
        handler: EventHandler,
        config: Optional[FeedConfig] = None,
        *,
        connect: Optional[Callable[..., Any]] = None,
        metrics: MetricsRegistry = METRICS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or get_app_config().feed
        self._handler = handler
        self._connect = connect or websockets.connect
        self._metrics = metrics
        self._logger = logger or get_logger(__name__)
        self._status = ConnectionStatus()
        self._stopping = asyncio.Event()
        self._socket: Any = None

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            connected=self._status.connected,
            last_error=self._status.last_error,
            reconnect_attempts=self._status.reconnect_attempts,
            last_message_at=self._status.last_message_at,
        )

    @property
    def subscribe_message(self) -> str:
        return json.dumps({"method": self._config.subscribe_method})

    async def run(self) -> None:
        """Consume the feed until :meth:`stop` is called."""

        while not self._stopping.is_set():
            try:
                await self._session()
            except TransportError as exc:
                if self._stopping.is_set():
                    break
                self._status.last_error = str(exc) or exc.__class__.__name__
                self._status.reconnect_attempts += 1
                self._metrics.increment("feed.reconnects")
                self._logger.warning(
                    "Feed connection lost (%s); reconnecting in %.1fs",
                    self._status.last_error,
                    self._config.reconnect_delay_seconds,
                )
                await self._wait_before_reconnect()
            except Exception as exc:  # noqa: BLE001 - only stop() ends the subscription
                if self._stopping.is_set():
                    break
                self._status.last_error = f"{exc.__class__.__name__}: {exc}"
                self._status.reconnect_attempts += 1
                self._metrics.increment("feed.reconnects")
                self._metrics.increment("feed.session_errors")
                self._logger.exception("Feed session failed unexpectedly; reconnecting")
                await self._wait_before_reconnect()
        self._logger.info("Feed connector stopped")

    async def stop(self) -> None:
        self._stopping.set()
        socket = self._socket
        if socket is not None:
            try:
                await socket.close()
            except (WebSocketException, OSError) as exc:  # pragma: no cover - best effort
                self._logger.debug("Error closing feed socket: %s", exc)

    async def _wait_before_reconnect(self) -> None:
        try:
            await asyncio.wait_for(
                self._stopping.wait(), timeout=self._config.reconnect_delay_seconds
            )
        except asyncio.TimeoutError:
            pass

    async def _session(self) -> None:
        try:
            async with self._connect(
                self._config.url,
                open_timeout=self._config.open_timeout_seconds,
                ping_interval=self._config.ping_interval_seconds,
            ) as socket:
                self._socket = socket
                self._status.connected = True
                self._status.last_error = ""
                await socket.send(self.subscribe_message)
                self._logger.info("Connected to %s and subscribed", self._config.url)
                async for raw in socket:
                    if self._stopping.is_set():
                        return
                    await self._dispatch(raw)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(str(exc)) from exc
        finally:
            self._socket = None
            self._status.connected = False
        if not self._stopping.is_set():
            raise TransportError("connection closed by server")

    async def _dispatch(self, raw: Any) -> None:
        try:
            event = parse_event(raw)
        except MalformedEventError as exc:
            self._metrics.increment("feed.events_malformed")
            self._logger.debug("Dropping feed frame: %s", exc)
            return
        self._metrics.increment("feed.events_received")
        self._status.last_message_at = utc_now()
        try:
            await self._handler(event)
        except Exception:  # noqa: BLE001 - a bad event must not end the subscription
            self._logger.exception("Event handler failed for %s", event.get("uri"))


__all__ = ["EventHandler", "FeedConnector", "MalformedEventError", "TransportError", "parse_event"]
