"""Push-channel WebSocket client - connect, receive, reconnect with backoff."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable
from urllib.parse import quote

import structlog
import websockets

log = structlog.get_logger(__name__)


def _parse_message(raw: str | bytes) -> dict[str, Any] | None:
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        return None
    return msg if isinstance(msg, dict) else None


def with_token(ws_url: str, token: str | None) -> str:
    if not token:
        return ws_url
    sep = "&" if "?" in ws_url else "?"
    return f"{ws_url}{sep}token={quote(token, safe='')}"


def next_delay(delay: float, max_delay: float) -> float:
    """Exponential backoff step, capped."""
    return min(delay * 2, max_delay)


async def run_ws_channel(
    ws_url: str,
    on_message: Callable[[dict[str, Any], int], None],
    *,
    token: str | None = None,
    on_status: Callable[[bool], None] | None = None,
    reconnect_base_delay_sec: float = 2.0,
    reconnect_max_delay_sec: float = 30.0,
    reconnect_max_retries: int = 0,
    recv_timeout_sec: float = 30.0,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Connect to a push channel and call on_message(payload_dict, ingest_ts_ms) for each message.
    Inbound only: nothing is sent. Reconnects with exponential backoff; on_status(False) on every
    disconnect so callers can show an indicator while keeping last-known state.
    """
    stop = stop_event or asyncio.Event()
    delay = reconnect_base_delay_sec
    retries = 0
    url = with_token(ws_url, token)

    while not stop.is_set():
        try:
            async with websockets.connect(
                url,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=5,
            ) as ws:
                delay = reconnect_base_delay_sec
                retries = 0
                log.info("ws_connected", url=ws_url)
                if on_status:
                    on_status(True)

                while not stop.is_set():
                    raw = await asyncio.wait_for(ws.recv(), timeout=recv_timeout_sec)
                    ingest_ts = int(time.time() * 1000)
                    msg = _parse_message(raw)
                    if msg is not None:
                        on_message(msg, ingest_ts)
        except asyncio.CancelledError:
            log.info("ws_cancelled", url=ws_url)
            if on_status:
                on_status(False)
            raise
        except Exception as e:
            if on_status:
                on_status(False)
            log.warning("ws_error", url=ws_url, error=str(e), delay=delay)
            if reconnect_max_retries and retries >= reconnect_max_retries:
                log.error("ws_max_retries_reached", url=ws_url)
                break
            retries += 1
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = next_delay(delay, reconnect_max_delay_sec)

    log.info("ws_channel_stopped", url=ws_url)
