import asyncio
import json
import re
from typing import Awaitable, Callable, Dict, NamedTuple, Optional
from urllib.parse import urlparse

import websockets
from loguru import logger

from stallbid.core.config import settings
from stallbid.core.exceptions import StallBidError
from stallbid.core.session import SessionContext
from stallbid.schemas.bid import BidRecord
from stallbid.services.bid_service import normalize_bid_record

NULL = "\x00"
_BLANK_LINE = re.compile(r"\r?\n\r?\n")

_ESCAPES = {"\\n": "\n", "\\r": "\r", "\\c": ":", "\\\\": "\\"}


class ChannelError(StallBidError):
    pass


class StompFrame(NamedTuple):
    command: str
    headers: Dict[str, str]
    body: str


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\r", "\\r").replace("\n", "\\n").replace(":", "\\c")


def _unescape(value: str) -> str:
    out, i = [], 0
    while i < len(value):
        pair = value[i:i + 2]
        if pair in _ESCAPES:
            out.append(_ESCAPES[pair])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


def encode_frame(command: str, headers: Optional[Dict[str, str]] = None, body: str = "") -> str:
    lines = [command]
    for key, value in (headers or {}).items():
        # CONNECT headers are sent verbatim
        if command == "CONNECT":
            lines.append(f"{key}:{value}")
        else:
            lines.append(f"{_escape(key)}:{_escape(str(value))}")
    return "\n".join(lines) + "\n\n" + body + NULL


def parse_frame(raw) -> Optional[StompFrame]:
    """Parse one STOMP frame. Heart-beats (bare EOLs) give None."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    raw = raw.lstrip("\r\n")
    if not raw:
        return None

    raw = raw.split(NULL, 1)[0]
    parts = _BLANK_LINE.split(raw, maxsplit=1)
    head, body = parts[0], parts[1] if len(parts) > 1 else ""

    lines = head.replace("\r\n", "\n").split("\n")
    command = lines[0].strip()
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        # repeated headers: the first one wins
        headers.setdefault(_unescape(key), _unescape(value))
    return StompFrame(command, headers, body)


class BidUpdateChannel:
    """
    STOMP subscription to /topic/stall/{id}.

    Each MESSAGE is handed to `on_bid` (None when the payload is not a usable
    bid). Dropped connections are retried after `reconnect_delay` until stop().
    """
    def __init__(
        self,
        stall_id: int,
        on_bid: Callable[[Optional[BidRecord]], Awaitable[object]],
        *,
        ws_url: Optional[str] = None,
        session: Optional[SessionContext] = None,
        reconnect_delay: Optional[float] = None,
        connect=websockets.connect,
    ):
        self.stall_id = stall_id
        self.on_bid = on_bid
        self.ws_url = ws_url or settings.ws_url
        self.session = session
        self.reconnect_delay = settings.ws_reconnect_delay if reconnect_delay is None else reconnect_delay
        self._connect = connect
        self._task: Optional[asyncio.Task] = None
        self._running = asyncio.Event()
        self.connected = False

    @property
    def destination(self) -> str:
        return f"/topic/stall/{self.stall_id}"

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._running.set()
        self._task = asyncio.create_task(self.run(), name=f"stall_{self.stall_id}_channel")

    async def stop(self) -> None:
        self._running.clear()
        if self._task:
            if not self._task.done():
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.connected = False

    def _connect_headers(self) -> Dict[str, str]:
        headers = {
            "accept-version": "1.2",
            "host": urlparse(self.ws_url).hostname or "localhost",
            "heart-beat": "0,0",
        }
        if self.session and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        return headers

    async def _handshake(self, ws) -> None:
        await ws.send(encode_frame("CONNECT", self._connect_headers()))
        while True:
            frame = parse_frame(await ws.recv())
            if frame is None:
                continue
            if frame.command == "CONNECTED":
                break
            if frame.command == "ERROR":
                raise ChannelError(frame.headers.get("message") or frame.body or "STOMP connect refused")
        await ws.send(encode_frame("SUBSCRIBE", {
            "id": f"sub-{self.stall_id}",
            "destination": self.destination,
            "ack": "auto",
        }))
        self.connected = True
        logger.info(f"Subscribed to {self.destination}")

    async def handle_message(self, raw) -> bool:
        """Returns True when the message was a bid update"""
        frame = parse_frame(raw)
        if frame is None:
            return False
        if frame.command == "ERROR":
            raise ChannelError(frame.headers.get("message") or frame.body or "STOMP error")
        if frame.command != "MESSAGE":
            logger.debug(f"Ignoring STOMP {frame.command} frame")
            return False

        try:
            payload = json.loads(frame.body) if frame.body.strip() else None
        except ValueError as e:
            logger.warning(f"Unparseable bid message on {self.destination}: {e}")
            payload = None
        bid = normalize_bid_record(payload, stall_id=self.stall_id) if payload is not None else None
        try:
            await self.on_bid(bid)
        except StallBidError as e:
            logger.warning(f"Bid update handler for stall {self.stall_id} failed: {e.message}")
        return True

    async def run(self) -> None:
        self._running.set()
        while self._running.is_set():
            try:
                async with self._connect(self.ws_url) as ws:
                    await self._handshake(ws)
                    async for message in ws:
                        await self.handle_message(message)
                        if not self._running.is_set():
                            break
                    if self._running.is_set():
                        logger.warning(f"Channel for stall {self.stall_id} closed by server")
            except asyncio.CancelledError:
                raise
            except (OSError, ChannelError, websockets.exceptions.WebSocketException) as e:
                logger.warning(f"Channel for stall {self.stall_id} dropped: {e}")
            finally:
                self.connected = False
            if self._running.is_set():
                await asyncio.sleep(self.reconnect_delay)
