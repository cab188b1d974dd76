"""
MODULE OVERVIEW:
The client-side SSE connection state machine.
This file is the heartbeat of the library. It owns exactly one transport handle at a
time, turns transport notifications into state transitions, and recovers from failures
with exponential backoff.

WHAT IS HAPPENING HERE:
Everything runs on one asyncio event loop, so transitions are applied one at a time.
Every handle we open is tagged with a generation number. `connect()` and
`disconnect()` bump the generation, and each notification carries the generation
it was created for. A late callback from a handle we already threw away is dropped,
so it can never overwrite the state of the connection that replaced it. The same
tag guards the reconnect timer.

    idle ──connect──> connecting ──opened──> connected ──closed──> disconnected
                          │                      │
                          └──errored──> error <──┘
                                          │ auto_reconnect
                                          v
                                     reconnecting ──delay──> connecting
"""
import asyncio
import functools
from typing import Optional, Tuple

from loguru import logger

from sse_manager.client.message_log import DEFAULT_CAPACITY, MessageLog
from sse_manager.client.transport import HttpxTransport, Transport, TransportHandle, TransportListener
from sse_manager.shared.errors import (
    MaxAttemptsExceeded,
    StreamError,
    StreamTimeoutError,
    TransportError,
    ValidationError,
)
from sse_manager.shared.events import EventDispatcher
from sse_manager.shared.models import (
    ConnectionSnapshot,
    ConnectionState,
    EventKind,
    LogRecord,
    StreamConfig,
    StreamEvent,
)
from sse_manager.shared.reconnect import ReconnectPolicy

SUPPORTED_SCHEMES = ("http://", "https://")


class ConnectionManager:
    def __init__(
        self,
        transport: Optional[Transport] = None,
        dispatcher: Optional[EventDispatcher] = None,
        message_log: Optional[MessageLog] = None,
        log_capacity: int = DEFAULT_CAPACITY,
    ):
        self.transport: Transport = transport or HttpxTransport()
        self.dispatcher = dispatcher or EventDispatcher()
        self.message_log = message_log or MessageLog(log_capacity)

        self._state = ConnectionState.IDLE
        self._config: Optional[StreamConfig] = None
        self._handle: Optional[TransportHandle] = None
        self._generation = 0
        self._attempts = 0
        self._in_flight = False
        self._retry_timer: Optional[asyncio.TimerHandle] = None
        self._retry_delay: Optional[float] = None

        self._last_event: Optional[StreamEvent] = None
        self._last_error: Optional[BaseException] = None
        self._last_event_id: Optional[str] = None

    # ==========================
    # READ SURFACE
    # ==========================
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def config(self) -> Optional[StreamConfig]:
        return self._config

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def last_event(self) -> Optional[StreamEvent]:
        return self._last_event

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def last_event_id(self) -> Optional[str]:
        return self._last_event_id

    @property
    def messages(self) -> Tuple[LogRecord, ...]:
        return self.message_log.snapshot()

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def retry_delay(self) -> Optional[float]:
        """Seconds the pending automatic retry was scheduled with, or None."""
        return self._retry_delay if self._retry_timer is not None else None

    def snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(
            state=self._state,
            reconnect_attempts=self._attempts,
            last_event=self._last_event,
            last_error=self._last_error,
        )

    def clear_messages(self) -> None:
        self.message_log.clear()

    def on(self, kind: EventKind, listener) -> None:
        self.dispatcher.subscribe(kind, listener)

    def off(self, kind: EventKind, listener=None) -> None:
        self.dispatcher.unsubscribe(kind, listener)

    # ==========================
    # CALLER OPERATIONS
    # ==========================
    def connect(self, config: Optional[StreamConfig] = None) -> None:
        """
        Start a connection attempt and return immediately.
        The outcome arrives later as `opened` / `errored` events.
        """
        if self._in_flight:
            logger.debug(f"generation={self._generation} event=connect_ignored reason=attempt_in_flight")
            return
        # A manual connect always gets a fresh retry budget
        self._attempts = 0
        self._start(config or self._config)

    def disconnect(self) -> None:
        self._cancel_retry()
        self._generation += 1
        self._release_handle()
        self._in_flight = False
        self._attempts = 0
        self._set_state(ConnectionState.DISCONNECTED)

    def reconnect(self) -> None:
        """Drop the current connection and dial again right away. No backoff."""
        config = self._config
        if config is None:
            # Nothing to reconnect to; the state is left alone
            self._fail_validation("No stream configuration to reconnect with", change_state=False)
            return
        self.disconnect()
        self.connect(config)

    # ==========================
    # ATTEMPTS
    # ==========================
    def _start(self, config: Optional[StreamConfig]) -> None:
        if config is None:
            self._fail_validation("No stream configuration supplied")
            return
        self._config = config

        self._cancel_retry()
        self._release_handle()
        self._generation += 1
        generation = self._generation

        if not config.address or not config.address.startswith(SUPPORTED_SCHEMES):
            self._fail_validation(
                f"Invalid address {config.address!r}. Must start with http:// or https://"
            )
            return

        if self._state != ConnectionState.RECONNECTING:
            self._set_state(ConnectionState.CONNECTING)
        self._in_flight = True

        listener = TransportListener(
            on_opened=functools.partial(self._on_opened, generation),
            on_message=functools.partial(self._on_message, generation),
            on_error=functools.partial(self._on_error, generation),
            on_closed=functools.partial(self._on_closed, generation),
        )
        last_event_id = self._last_event_id if config.send_last_event_id else None
        logger.info(
            f"generation={generation} event=connect address={config.address} "
            f"method={config.method} attempt={self._attempts}"
        )
        try:
            self._handle = self.transport.open(config, listener, last_event_id)
        except Exception as e:
            # Opening must never raise across connect(); route it like any transport failure
            self._on_error(generation, str(e) or type(e).__name__, e)

    def _fail_validation(self, message: str, change_state: bool = True) -> None:
        error = ValidationError(message)
        logger.warning(f"generation={self._generation} event=invalid_config reason='{message}'")
        self._last_error = error
        if change_state:
            self._in_flight = False
            self._set_state(ConnectionState.ERROR)
        self._emit(StreamEvent(kind=EventKind.ERRORED, message=message, error=error))

    def _release_handle(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.close()

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    # ==========================
    # TRANSPORT NOTIFICATIONS
    # ==========================
    def _is_stale(self, generation: int, what: str) -> bool:
        if generation != self._generation:
            logger.debug(
                f"generation={generation} event={what}_dropped reason=stale current={self._generation}"
            )
            return True
        return False

    def _on_opened(self, generation: int) -> None:
        if self._is_stale(generation, "opened"):
            return
        self._in_flight = False
        self._attempts = 0
        self._last_error = None
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"generation={generation} event=opened address={self._config.address}")
        self._emit(StreamEvent(kind=EventKind.OPENED, url=self._config.address))

    def _on_message(self, generation: int, data: str, event_id: Optional[str] = None,
                    event_name: str = "message") -> None:
        if self._is_stale(generation, "message"):
            return
        if event_id is not None:
            # An empty id resets the resume position
            self._last_event_id = event_id or None
        self._emit(
            StreamEvent(
                kind=EventKind.MESSAGE,
                data=data,
                event_id=event_id,
                event_name=event_name,
                url=self._config.address,
            )
        )

    def _on_error(self, generation: int, message: str, fault: Optional[BaseException] = None) -> None:
        if self._is_stale(generation, "error"):
            return
        self._in_flight = False
        self._handle = None

        if isinstance(fault, StreamTimeoutError):
            self._emit(StreamEvent(kind=EventKind.TIMED_OUT, message=message, error=fault))
            error: BaseException = fault
        elif fault is None or isinstance(fault, StreamError):
            error = fault or TransportError(message)
        else:
            logger.opt(exception=fault).error(f"generation={generation} event=transport_exception")
            self._emit(StreamEvent(kind=EventKind.TRANSPORT_EXCEPTION, message=message, error=fault))
            error = TransportError(message)
            error.__cause__ = fault

        logger.warning(f"generation={generation} event=errored reason='{message}'")
        self._last_error = error
        self._set_state(ConnectionState.ERROR)
        self._emit(StreamEvent(kind=EventKind.ERRORED, message=message, error=error))

        # A listener may already have called connect() or disconnect()
        if generation != self._generation:
            return
        if self._config is not None and self._config.auto_reconnect:
            self._schedule_reconnect()

    def _on_closed(self, generation: int) -> None:
        if self._is_stale(generation, "closed"):
            return
        self._in_flight = False
        self._handle = None
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"generation={generation} event=closed")
        self._emit(StreamEvent(kind=EventKind.CLOSED, url=self._config.address))

    # ==========================
    # AUTOMATIC RECOVERY
    # ==========================
    def _schedule_reconnect(self) -> None:
        policy = ReconnectPolicy.from_config(self._config)
        self._attempts += 1

        if not policy.should_retry(self._attempts):
            error = MaxAttemptsExceeded(self._attempts, policy.max_attempts)
            logger.error(
                f"generation={self._generation} event=give_up attempts={self._attempts} "
                f"max_attempts={policy.max_attempts}"
            )
            self._last_error = error
            self._set_state(ConnectionState.ERROR)
            self._emit(StreamEvent(kind=EventKind.ERRORED, message=str(error), error=error))
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            error = TransportError("No running event loop to schedule a reconnect on")
            logger.error(f"generation={self._generation} event=give_up reason=no_event_loop")
            self._last_error = error
            self._set_state(ConnectionState.ERROR)
            self._emit(StreamEvent(kind=EventKind.ERRORED, message=str(error), error=error))
            return

        delay = policy.delay_for(self._attempts)
        self._set_state(ConnectionState.RECONNECTING)
        logger.warning(
            f"generation={self._generation} event=reconnect_scheduled attempt={self._attempts} "
            f"delay={delay:.2f}s"
        )
        self._retry_delay = delay
        self._retry_timer = loop.call_later(delay, self._retry, self._generation)

    def _retry(self, generation: int) -> None:
        if self._is_stale(generation, "retry"):
            return
        self._retry_timer = None
        self._start(self._config)

    # ==========================
    # FAN-OUT
    # ==========================
    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state and self._config is not None and self._config.debug:
            logger.debug(f"generation={self._generation} event=transition from={self._state.value} to={state.value}")
        self._state = state

    def _emit(self, event: StreamEvent) -> None:
        self._last_event = event
        self.message_log.append(event)
        self.dispatcher.publish(event.kind, event)
