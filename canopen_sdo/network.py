import asyncio
import collections
import logging
import threading
from typing import Deque, Dict, List, NamedTuple, Optional, Union

import can

from canopen_sdo.exceptions import DeviceRemovedError, NotConnectedError, RequestFailedError
from canopen_sdo.sdo import codec
from canopen_sdo.sdo.base import SdoRequest, SdoWriteRequest
from canopen_sdo.sdo.constants import MAX_NODE_ID, MIN_NODE_ID, RESPONSE_COB_BASE, RESPONSE_COB_LAST
from canopen_sdo.sdo.exceptions import SdoError, SdoSocketError, SdoTimeoutError


logger = logging.getLogger(__name__)


class ReadCommand(NamedTuple):
    request: SdoRequest
    future: asyncio.Future


class WriteCommand(NamedTuple):
    request: SdoWriteRequest
    future: asyncio.Future


class RegisterCommand(NamedTuple):
    node_id: int
    timeout: Optional[float]
    future: asyncio.Future


class UnregisterCommand(NamedTuple):
    node_id: int
    future: asyncio.Future


class SubscribeCommand(NamedTuple):
    subscription: "FrameSubscription"
    future: asyncio.Future


Command = Union[ReadCommand, WriteCommand, RegisterCommand, UnregisterCommand,
                SubscribeCommand]


def _fail(future: asyncio.Future, exc: Exception):
    if not future.done():
        future.set_exception(exc)


def _resolve(future: asyncio.Future, result):
    if not future.done():
        future.set_result(result)


class CommandChannel:
    """Unbounded FIFO from device handles to the connection manager.

    Once closed, every attempt to submit raises :class:`RequestFailedError`.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Command]" = asyncio.Queue()
        self.closed = False

    def put(self, command: Command):
        if self.closed:
            raise RequestFailedError("Connection manager is not running")
        self._queue.put_nowait(command)

    async def get(self) -> Command:
        return await self._queue.get()

    def close(self) -> List[Command]:
        """Stop accepting commands and return the ones not yet processed."""
        self.closed = True
        remaining = []
        while not self._queue.empty():
            remaining.append(self._queue.get_nowait())
        return remaining


class PendingOperation:
    """A read or write waiting for, or being served by, a device."""

    def __init__(self, command: Union[ReadCommand, WriteCommand]):
        self.request = command.request
        self.future = command.future
        self.is_read = isinstance(command, ReadCommand)
        #: Loop time when the operation expires, set on dispatch
        self.deadline: Optional[float] = None

    def encode(self) -> can.Message:
        if self.is_read:
            return codec.upload_request(self.request)
        return codec.download_request(self.request)

    def complete(self, data: bytes):
        """Decode a response and hand the outcome to the waiter."""
        try:
            if self.is_read:
                result = codec.parse_upload_response(data, self.request)
            else:
                result = codec.parse_download_response(data, self.request)
        except SdoError as exc:
            _fail(self.future, exc)
        else:
            _resolve(self.future, result)

    def __repr__(self):
        return "<%s %s of %s on node %d>" % (
            type(self).__name__, "read" if self.is_read else "write",
            self.request.address, self.request.node_id)


class DeviceSession:
    """Per device state: one active operation and a FIFO of queued ones."""

    def __init__(self, node_id: int, timeout: float):
        self.node_id = node_id
        self.timeout = timeout
        self.queue: Deque[PendingOperation] = collections.deque()
        self.active: Optional[PendingOperation] = None

    def fail_all(self, exc_factory):
        if self.active is not None:
            _fail(self.active.future, exc_factory())
            self.active = None
        while self.queue:
            _fail(self.queue.popleft().future, exc_factory())


class FrameSubscription:
    """Stream of every frame received by a :class:`Network`.

    Iterate with ``async for``. Iteration ends once the subscription is
    closed and all buffered frames have been consumed.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "asyncio.Queue[Optional[can.Message]]" = asyncio.Queue(maxsize)
        self.closed = False

    def push(self, msg: can.Message) -> bool:
        """Queue a frame.

        :return: ``False`` if the subscriber is gone or can not keep up.
        """
        if self.closed:
            return False
        try:
            self._queue.put_nowait(msg)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        """Stop receiving frames."""
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def get(self, timeout: Optional[float] = None) -> Optional[can.Message]:
        """Wait for the next frame.

        :return: The frame or ``None`` when closed.
        :raises asyncio.TimeoutError: No frame within *timeout*.
        """
        if self.closed and self._queue.empty():
            return None
        return await asyncio.wait_for(self._queue.get(), timeout)

    def __aiter__(self):
        return self

    async def __anext__(self) -> can.Message:
        msg = await self.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class Network:
    """Connection manager for one CAN bus.

    All SDO traffic to the registered devices goes through a single
    asyncio task, so at most one request per device is on the bus at any
    time and requests to the same device are served in submission order.
    """

    #: Default SDO response timeout in seconds
    DEFAULT_TIMEOUT = 1.0
    #: Period of the timeout check in seconds
    TICK_INTERVAL = 0.01
    #: Reader back-off when no frame is available
    IDLE_SLEEP = 0.001

    def __init__(self, bus: Optional[can.BusABC] = None,
                 default_timeout: Optional[float] = None):
        """
        :param bus:
            A python-can bus instance to re-use.
        :param default_timeout:
            SDO response timeout for devices registered without one.
        """
        #: A python-can :class:`can.BusABC` instance which is set after
        #: :meth:`connect` is called
        self.bus = bus
        if default_timeout is None:
            default_timeout = self.DEFAULT_TIMEOUT
        self.default_timeout = default_timeout
        #: Serializes access to the bus between reading and sending
        self.bus_lock = threading.Lock()
        #: Last exception raised by the bus while reading
        self.bus_fault: Optional[Exception] = None
        self.sessions: Dict[int, DeviceSession] = {}
        self.subscriptions: List[FrameSubscription] = []
        self.channel: Optional[CommandChannel] = None
        self._frames: "Optional[asyncio.Queue[can.Message]]" = None
        self._runner: Optional[asyncio.Task] = None
        self._reader: Optional[asyncio.Task] = None

    async def connect(self, *args, **kwargs) -> "Network":
        """Connect to CAN bus using python-can and start the manager.

        Arguments are passed directly to :class:`can.Bus`. Typically these
        may include:

        :param channel:
            Backend specific channel for the CAN interface.
        :param str interface:
            Name of the interface. See
            `python-can manual <https://python-can.readthedocs.io/en/latest/configuration.html#interface-names>`__
            for full list of supported interfaces.
        :param int bitrate:
            Bitrate in bit/s.

        :raises SdoSocketError:
            When connection fails.
        """
        try:
            self.bus = can.Bus(*args, **kwargs)
        except (can.CanError, OSError, ValueError) as exc:
            logger.error("Failed to open CAN bus: %s", exc)
            raise SdoSocketError("Failed to open CAN bus: %s" % exc) from exc
        logger.info("Connected to '%s'", self.bus.channel_info)
        await self.start()
        return self

    async def start(self):
        """Start the manager on an already opened bus."""
        assert self.bus is not None, "Not connected to CAN bus"
        if self.running:
            return
        self.channel = CommandChannel()
        self._frames = asyncio.Queue()
        self._reader = asyncio.create_task(self._read_frames())
        self._runner = asyncio.create_task(self._run())

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def disconnect(self):
        """Stop the manager and shut down the CAN bus.

        Every operation still queued or in progress fails with
        :class:`RequestFailedError`.
        """
        await self._stop()
        if self.bus is not None:
            self.bus.shutdown()
            self.bus = None

    async def _stop(self):
        tasks = [task for task in (self._runner, self._reader) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._runner = self._reader = None
        self._shutdown()

    def _shutdown(self):
        def stopped():
            return RequestFailedError("Connection manager stopped")

        if self.channel is not None:
            for command in self.channel.close():
                _fail(command.future, stopped())
        for session in self.sessions.values():
            session.fail_all(stopped)
        self.sessions.clear()
        for subscription in self.subscriptions:
            subscription.close()
        self.subscriptions.clear()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    def _submit(self, command: Command):
        if self.channel is None:
            raise RequestFailedError("Connection manager is not running")
        self.channel.put(command)

    async def register_device(self, node_id: int,
                              timeout: Optional[float] = None) -> "DeviceHandle":
        """Start managing a device.

        Registering an ID again replaces the session and fails anything
        still pending for the old one with :class:`DeviceRemovedError`.

        :param node_id:
            Node ID in range 1 to 127.
        :param timeout:
            SDO response timeout in seconds, defaults to
            :attr:`default_timeout`.
        """
        if not MIN_NODE_ID <= node_id <= MAX_NODE_ID:
            raise ValueError("Node ID must be in range %d to %d, not %r" % (
                MIN_NODE_ID, MAX_NODE_ID, node_id))
        future = asyncio.get_running_loop().create_future()
        self._submit(RegisterCommand(node_id, timeout, future))
        return await future

    async def unregister_device(self, node_id: int):
        """Stop managing a device.

        Operations still queued or in progress fail with
        :class:`DeviceRemovedError`.
        """
        future = asyncio.get_running_loop().create_future()
        self._submit(UnregisterCommand(node_id, future))
        await future

    async def subscribe_raw_frames(self, maxsize: int = 0) -> FrameSubscription:
        """Get a stream of every frame received from now on.

        :param maxsize:
            Bound of the subscription queue. A subscriber that falls behind
            this many frames is dropped. Zero means unbounded.
        """
        subscription = FrameSubscription(maxsize)
        future = asyncio.get_running_loop().create_future()
        self._submit(SubscribeCommand(subscription, future))
        await future
        return subscription

    async def listen_tpdo(self, config) -> "TpdoListener":
        """Start listening for one TPDO.

        :param canopen_sdo.pdo.TpdoConfig config:
            TPDO to decode.
        """
        from canopen_sdo.pdo.tpdo import TpdoListener
        listener = TpdoListener(self, config)
        await listener.start()
        return listener

    @property
    def devices(self) -> List[int]:
        """IDs of the registered devices."""
        return sorted(self.sessions)

    def check(self):
        """Raise the last error from reading the bus, if any.

        The error is cleared afterwards.

        :raises SdoSocketError:
            Wrapping the original exception.
        """
        fault = self.bus_fault
        if fault is not None:
            self.bus_fault = None
            logger.error("CAN bus read failed: %s", fault)
            raise SdoSocketError("CAN bus read failed: %s" % fault) from fault

    def send_message(self, msg: can.Message):
        """Send a frame on the bus.

        :raises SdoSocketError:
            When the frame fails to be transmitted.
        """
        assert self.bus, "Not connected to CAN bus"
        try:
            with self.bus_lock:
                self.bus.send(msg)
        except (can.CanError, OSError) as exc:
            raise SdoSocketError("Failed to send frame: %s" % exc) from exc

    async def _read_frames(self):
        # Polled rather than driven by can.Notifier so that reads and sends
        # share bus_lock
        while True:
            try:
                with self.bus_lock:
                    msg = self.bus.recv(0)
            except (can.CanError, OSError) as exc:
                if self.bus_fault is None or str(self.bus_fault) != str(exc):
                    logger.error("Error reading from CAN bus: %s", exc)
                self.bus_fault = exc
                msg = None
            if msg is None:
                await asyncio.sleep(self.IDLE_SLEEP)
                continue
            if msg.is_error_frame or msg.is_remote_frame:
                continue
            self._frames.put_nowait(msg)
            # Let the manager run between bursts
            await asyncio.sleep(0)

    async def _run(self):
        get_command = asyncio.ensure_future(self.channel.get())
        get_frame = asyncio.ensure_future(self._frames.get())
        try:
            while True:
                done, _ = await asyncio.wait(
                    (get_command, get_frame), timeout=self.TICK_INTERVAL,
                    return_when=asyncio.FIRST_COMPLETED)
                if get_command in done:
                    self._handle_command(get_command.result())
                    get_command = asyncio.ensure_future(self.channel.get())
                if get_frame in done:
                    self._on_frame(get_frame.result())
                    get_frame = asyncio.ensure_future(self._frames.get())
                self._check_timeouts()
                self._dispatch()
        except Exception:
            logger.exception("Connection manager failed")
            self._shutdown()
            raise
        finally:
            get_command.cancel()
            get_frame.cancel()

    def _handle_command(self, command: Command):
        if isinstance(command, (ReadCommand, WriteCommand)):
            node_id = command.request.node_id
            session = self.sessions.get(node_id)
            if session is None:
                _fail(command.future, NotConnectedError(node_id))
            else:
                session.queue.append(PendingOperation(command))
        elif isinstance(command, RegisterCommand):
            from canopen_sdo.device import DeviceHandle
            old = self.sessions.get(command.node_id)
            if old is not None:
                logger.info("Replacing session of node %d", command.node_id)
                old.fail_all(lambda: DeviceRemovedError(command.node_id))
            timeout = command.timeout
            if timeout is None:
                timeout = self.default_timeout
            self.sessions[command.node_id] = DeviceSession(command.node_id, timeout)
            logger.info("Registered node %d (timeout %.3f s)", command.node_id, timeout)
            _resolve(command.future, DeviceHandle(command.node_id, self.channel))
        elif isinstance(command, UnregisterCommand):
            session = self.sessions.pop(command.node_id, None)
            if session is not None:
                session.fail_all(lambda: DeviceRemovedError(command.node_id))
                logger.info("Unregistered node %d", command.node_id)
            _resolve(command.future, None)
        elif isinstance(command, SubscribeCommand):
            self.subscriptions.append(command.subscription)
            _resolve(command.future, command.subscription)

    def _on_frame(self, msg: can.Message):
        logger.debug("Received 0x%03X: %s", msg.arbitration_id, msg.data.hex())
        for subscription in list(self.subscriptions):
            if not subscription.push(msg):
                if not subscription.closed:
                    logger.warning("Dropping subscriber that fell behind")
                    subscription.close()
                self.subscriptions.remove(subscription)

        can_id = msg.arbitration_id
        if msg.is_extended_id or not RESPONSE_COB_BASE <= can_id <= RESPONSE_COB_LAST:
            return
        session = self.sessions.get(can_id - RESPONSE_COB_BASE)
        if session is None or session.active is None:
            return
        operation = session.active
        session.active = None
        operation.complete(msg.data)

    def _check_timeouts(self):
        now = asyncio.get_running_loop().time()
        for session in self.sessions.values():
            operation = session.active
            if operation is not None and now >= operation.deadline:
                logger.debug("Timeout of %r", operation)
                session.active = None
                _fail(operation.future, SdoTimeoutError())

    def _dispatch(self):
        loop = asyncio.get_running_loop()
        for session in self.sessions.values():
            while session.active is None and session.queue:
                operation = session.queue.popleft()
                if operation.future.done():
                    # Waiter gave up
                    continue
                try:
                    self.send_message(operation.encode())
                except SdoError as exc:
                    _fail(operation.future, exc)
                    continue
                logger.debug("Dispatched %r", operation)
                operation.deadline = loop.time() + session.timeout
                session.active = operation


async def open_network(channel, default_timeout: Optional[float] = None,
                       interface: str = "socketcan", **kwargs) -> Network:
    """Open a CAN bus and start a :class:`Network` on it.

    :param channel:
        Backend specific channel, e.g. ``"vcan0"``.
    :param default_timeout:
        SDO response timeout in seconds.
    :param interface:
        python-can interface name.

    :raises SdoSocketError:
        When the bus can not be opened.
    """
    network = Network(default_timeout=default_timeout)
    return await network.connect(channel=channel, interface=interface, **kwargs)
