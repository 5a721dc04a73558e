"""
The version / verack exchange with a single peer.

An attempt runs these steps in order, each one a suspension point:

    INIT -> VERSION_SENT -> VERSION_RECEIVED -> VERACK_SENT -> COMPLETED

Any failure moves the attempt to FAILED and ends it. Nothing is retried,
trying another peer is up to the caller. Every attempt produces exactly one
outcome: `Success` with the negotiated protocol version, or `Failure` with
the stage it died in and the error that killed it.
"""
import enum
import logging
from collections import namedtuple

from p2p_handshake.errors import (
    HandshakeError,
    SelfConnection,
    SendFailed,
    UnexpectedCommand,
    VersionTooOld,
)
from p2p_handshake.msg import (
    NODE_NONE,
    VERACK_COMMAND,
    VERSION_COMMAND,
    VerackMessage,
    VersionMessage,
    is_verack,
    is_version,
)
from p2p_handshake.params import DEFAULT_TIMEOUT, MAINNET
from p2p_handshake.wire import decode, encode

logger = logging.getLogger(__name__)


class State(enum.Enum):
    INIT = "init"
    VERSION_SENT = "version sent"
    VERSION_RECEIVED = "version received"
    VERACK_SENT = "verack sent"
    COMPLETED = "completed"
    FAILED = "failed"


class Stage(enum.Enum):
    CONNECTING = "connecting"
    SENDING_VERSION = "sending version"
    AWAITING_VERSION = "awaiting version"
    SENDING_VERACK = "sending verack"
    AWAITING_VERACK = "awaiting verack"


# the step that was running when the attempt failed in a given state
STAGE_FOR_STATE = {
    State.INIT: Stage.SENDING_VERSION,
    State.VERSION_SENT: Stage.AWAITING_VERSION,
    State.VERSION_RECEIVED: Stage.SENDING_VERACK,
    State.VERACK_SENT: Stage.AWAITING_VERACK,
}


class Success(namedtuple("Success", ["negotiated_version", "remote"])):
    __slots__ = ()

    ok = True

    def explain(self):
        return f"handshake completed, negotiated version {self.negotiated_version}"


class Failure(namedtuple("Failure", ["reason", "stage"])):
    __slots__ = ()

    ok = False

    def explain(self):
        return (
            f"handshake failed at stage {self.stage.name}, "
            f"caused by: {self.reason}"
        )


class HandshakeSession:
    """Everything one attempt learns along the way. Not shared between attempts."""

    def __init__(self, local_version):
        self.local_version = local_version
        self.nonce = None
        self.remote_version = None
        self.remote = None
        self.state = State.INIT

    @property
    def negotiated_version(self):
        return min(self.local_version, self.remote_version)

    def __repr__(self):
        return f"<HandshakeSession state={self.state.name} nonce={self.nonce}>"


class Handshake:
    def __init__(
        self,
        local_addr,
        remote_addr,
        params=MAINNET,
        timeout=DEFAULT_TIMEOUT,
        version=None,
        services=NODE_NONE,
        user_agent=None,
        start_height=0,
        relay=True,
    ):
        self.local_addr = local_addr
        self.remote_addr = remote_addr
        self.params = params
        self.timeout = timeout
        self.version = version if version is not None else params.protocol_version
        self.services = services
        self.user_agent = user_agent if user_agent is not None else params.user_agent
        self.start_height = start_height
        self.relay = relay

    async def run(self, stream):
        """Drive one attempt over `stream`. Handshake errors never escape."""
        session = HandshakeSession(self.version)
        try:
            await self.send_version(stream, session)
            await self.receive_version(stream, session)
            await self.send_verack(stream, session)
            await self.receive_verack(stream, session)
        except HandshakeError as e:
            stage = STAGE_FOR_STATE[session.state]
            session.state = State.FAILED
            logger.info(
                "handshake with %s failed at %s: %s", self.remote_addr, stage.name, e
            )
            return Failure(e, stage)
        session.state = State.COMPLETED
        return Success(session.negotiated_version, session.remote)

    async def send(self, stream, command, payload):
        try:
            await stream.sendall(encode(command, payload, self.params))
        except OSError as e:
            raise SendFailed(f"could not send {command!r}: {e}") from e

    async def send_version(self, stream, session):
        msg = VersionMessage.create(
            local_version=self.version,
            local_services=self.services,
            local_addr=self.local_addr,
            remote_addr=self.remote_addr,
            user_agent=self.user_agent,
            start_height=self.start_height,
            relay=self.relay,
        )
        session.nonce = msg.nonce
        await self.send(stream, msg.command, msg.to_bytes())
        session.state = State.VERSION_SENT
        logger.info("version sent to %s (version %d)", self.remote_addr, self.version)

    async def receive_version(self, stream, session):
        command, payload = await decode(stream, self.timeout, self.params)
        if not is_version(command):
            raise UnexpectedCommand(VERSION_COMMAND, command)
        remote = VersionMessage.from_bytes(payload)
        if remote.nonce == session.nonce:
            raise SelfConnection(remote.nonce)
        if remote.version < self.params.min_version:
            raise VersionTooOld(remote.version, self.params.min_version)
        session.remote = remote
        session.remote_version = remote.version
        session.state = State.VERSION_RECEIVED
        logger.info(
            "version received from %s (version %d, %s)",
            self.remote_addr,
            remote.version,
            remote.user_agent,
        )
        logger.debug("remote version message:\n%s", remote)

    async def send_verack(self, stream, session):
        await self.send(stream, VerackMessage.command, VerackMessage.build())
        session.state = State.VERACK_SENT
        logger.info("verack sent to %s", self.remote_addr)

    async def receive_verack(self, stream, session):
        command, _ = await decode(stream, self.timeout, self.params)
        if not is_verack(command):
            raise UnexpectedCommand(VERACK_COMMAND, command)
        logger.info("verack received from %s", self.remote_addr)


async def handshake(stream, local_addr, remote_addr, **kwargs):
    return await Handshake(local_addr, remote_addr, **kwargs).run(stream)
