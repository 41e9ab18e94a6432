"""Pump.fun log-stream listener via Solana logsSubscribe.

States: STOPPED -> STARTING -> LISTENING -> STOPPING -> STOPPED.

start() opens the WebSocket and confirms the subscription; failing that
is fatal (ListenerStartError). Once listening, disconnects are retried
with exponential backoff (5s doubling to 60s).

Each notification's log lines are scanned in order. A matched
CreateEvent is handed to ``on_create_event`` in its own task so slow
enrichment never blocks receipt of the next batch.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from enum import Enum

import websockets
from loguru import logger
from websockets.asyncio.client import ClientConnection, connect

from src.parsers.metrics import IndexerMetrics
from src.parsers.pumpfun.constants import PROGRAM_DATA_MARKER, PUMP_PROGRAM_ID
from src.parsers.pumpfun.decoder import DecodeStatus, try_decode_create_event
from src.parsers.pumpfun.models import CreateEvent


class ListenerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"


class ListenerStartError(RuntimeError):
    """Could not open or subscribe to the log stream at startup."""


_CONNECTION_ERRORS = (
    websockets.ConnectionClosed,
    websockets.InvalidHandshake,
    ConnectionError,
    OSError,
    TimeoutError,
)


class PumpfunLogsClient:
    """Owns one logsSubscribe subscription filtered to the pump.fun program."""

    def __init__(
        self,
        ws_url: str,
        *,
        program_id: str = PUMP_PROGRAM_ID,
        commitment: str = "confirmed",
        callback_timeout: float = 120.0,
        metrics: IndexerMetrics | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._program_id = program_id
        self._commitment = commitment
        self._callback_timeout = callback_timeout
        self._metrics = metrics

        self._ws: ClientConnection | None = None
        self._state = ListenerState.STOPPED
        self._running = False
        self._reconnect_delay = 5.0
        self._max_reconnect_delay = 60.0
        self._message_count = 0
        self._request_id = 0
        self._subscription_id: int | None = None
        self._listen_task: asyncio.Task | None = None

        self.on_create_event: Callable[[CreateEvent], Awaitable[object]] | None = None
        self._pending_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def message_count(self) -> int:
        return self._message_count

    @property
    def pending_count(self) -> int:
        return len(self._pending_tasks)

    async def start(self) -> None:
        """Connect and subscribe, then keep listening in the background."""
        if self._state is not ListenerState.STOPPED:
            return
        self._state = ListenerState.STARTING
        try:
            self._ws = await self._open()
        except (*_CONNECTION_ERRORS, json.JSONDecodeError) as e:
            self._state = ListenerState.STOPPED
            raise ListenerStartError(f"cannot subscribe to {self._program_id} logs: {e}") from e

        self._running = True
        self._state = ListenerState.LISTENING
        logger.info(
            f"[LISTENER] logsSubscribe active (id={self._subscription_id}, "
            f"commitment={self._commitment})"
        )
        self._listen_task = asyncio.create_task(self._run(), name="pumpfun_logs")

    async def _open(self) -> ClientConnection:
        ws = await connect(
            self._ws_url,
            ping_interval=30,
            ping_timeout=10,
            close_timeout=5,
        )
        try:
            await self._subscribe(ws)
        except BaseException:
            await ws.close()
            raise
        return ws

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _subscribe(self, ws: ClientConnection) -> None:
        """Send logsSubscribe and wait for the subscription id."""
        await ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": "logsSubscribe",
            "params": [
                {"mentions": [self._program_id]},
                {"commitment": self._commitment},
            ],
        }))
        response = json.loads(await asyncio.wait_for(ws.recv(), timeout=10.0))
        if "result" not in response:
            raise ConnectionError(f"logsSubscribe rejected: {response.get('error')}")
        self._subscription_id = response["result"]

    async def _run(self) -> None:
        ws = self._ws
        while self._running:
            try:
                if ws is None:
                    ws = await self._open()
                    self._ws = ws
                    self._reconnect_delay = 5.0
                    logger.info(f"[LISTENER] Reconnected, logsSubscribe id={self._subscription_id}")
                await self._listen(ws)
                raise ConnectionError("log stream closed by server")
            except Exception as e:
                if not self._running:
                    break
                if isinstance(e, (*_CONNECTION_ERRORS, json.JSONDecodeError)):
                    logger.warning(f"[LISTENER] WS disconnected: {e}")
                else:
                    logger.error(f"[LISTENER] Stream error {type(e).__name__}: {e}")
                    if ws is not None:
                        await self._close_quietly(ws)
                ws = None
                self._ws = None
                self._subscription_id = None
                logger.info(f"[LISTENER] Reconnecting in {self._reconnect_delay:.0f}s...")
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)

    async def _close_quietly(self, ws: ClientConnection) -> None:
        try:
            await ws.close()
        except _CONNECTION_ERRORS as e:
            logger.debug(f"[LISTENER] Close failed: {e}")

    async def _listen(self, ws: ClientConnection) -> None:
        async for message in ws:
            self._message_count += 1
            try:
                data = json.loads(message)
            except json.JSONDecodeError:
                continue

            # {"method": "logsNotification", "params": {"result": {"value": {...}}}}
            params = data.get("params") if isinstance(data, dict) else None
            result = params.get("result") if isinstance(params, dict) else None
            value = result.get("value") if isinstance(result, dict) else None
            if not isinstance(value, dict):
                continue
            signature = value.get("signature")
            logs = value.get("logs") or []
            if not isinstance(signature, str) or not isinstance(logs, list):
                continue
            if not signature or not logs:
                continue
            if value.get("err"):
                continue  # failed transactions emit no real tokens

            self.dispatch_logs(signature, logs)

    def dispatch_logs(self, signature: str, logs: list[str]) -> int:
        """Decode one notification's lines and schedule matched events.

        Returns the number of events handed to ``on_create_event``.
        """
        if self._metrics:
            self._metrics.record_log_batch()

        dispatched = 0
        for line in logs:
            if not isinstance(line, str) or PROGRAM_DATA_MARKER not in line:
                continue

            result = try_decode_create_event(line)
            if result.status is DecodeStatus.MALFORMED:
                logger.warning(f"[DECODER] Malformed CreateEvent in {signature[:16]}: {result.error}")
                if self._metrics:
                    self._metrics.record_decode_error()
                continue
            if not result.matched or result.event is None:
                continue

            if self._metrics:
                self._metrics.record_event_matched()
            logger.info(
                f"[LISTENER] CreateEvent {result.event.symbol} mint={result.event.mint[:12]} "
                f"sig={signature[:16]}"
            )
            if self.on_create_event:
                task = asyncio.create_task(self._safe_callback(self.on_create_event, result.event))
                self._pending_tasks.add(task)
                task.add_done_callback(self._pending_tasks.discard)
                dispatched += 1
        return dispatched

    async def _safe_callback(
        self, callback: Callable[[CreateEvent], Awaitable[object]], event: CreateEvent
    ) -> None:
        """Run one event's pipeline; nothing escapes into the listener."""
        try:
            await asyncio.wait_for(callback(event), timeout=self._callback_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[LISTENER] Pipeline timed out for {event.mint[:12]}")
            if self._metrics:
                self._metrics.record_event_failure()
        except Exception as e:
            logger.error(f"[LISTENER] Pipeline error for {event.mint[:12]}: {e}")
            if self._metrics:
                self._metrics.record_event_failure()

    async def wait_pending(self, timeout: float | None = None) -> None:
        """Wait for in-flight event pipelines to finish."""
        if not self._pending_tasks:
            return
        logger.info(f"[LISTENER] Waiting for {len(self._pending_tasks)} in-flight events")
        _done, pending = await asyncio.wait(set(self._pending_tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"[LISTENER] Cancelled {len(pending)} unfinished events")

    async def stop(self) -> None:
        """Unsubscribe and close the stream. Pending events are left running."""
        if self._state is ListenerState.STOPPED:
            return
        self._state = ListenerState.STOPPING
        self._running = False

        ws = self._ws
        if ws is not None:
            if self._subscription_id is not None:
                try:
                    await ws.send(json.dumps({
                        "jsonrpc": "2.0",
                        "id": self._next_id(),
                        "method": "logsUnsubscribe",
                        "params": [self._subscription_id],
                    }))
                except _CONNECTION_ERRORS as e:
                    logger.debug(f"[LISTENER] logsUnsubscribe not sent: {e}")
            await ws.close()
            self._ws = None
            self._subscription_id = None

        if self._listen_task is not None:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None

        self._state = ListenerState.STOPPED
        logger.info("[LISTENER] Stopped")
