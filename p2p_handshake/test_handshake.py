import errno
import functools
import time
from io import BytesIO

import curio

import test_data
from p2p_handshake.errors import (
    ConnectionClosed,
    MagicMismatch,
    SelfConnection,
    SendFailed,
    Timeout,
    UnexpectedCommand,
    VersionTooOld,
)
from p2p_handshake.handshake import (
    STAGE_FOR_STATE,
    Failure,
    HandshakeSession,
    Stage,
    State,
    Success,
    handshake,
)
from p2p_handshake.msg import Address, VersionMessage
from p2p_handshake.params import TESTNET
from p2p_handshake.wire import encode

local = Address(0, "7.7.7.7", 8333)
remote = Address(1, "6.6.6.6", 8333)


class MemoryStream:
    """One end of an in-memory byte pipe, see `memory_pipe`"""

    def __init__(self):
        self.inbox = bytearray()
        self.ready = curio.Event()
        self.peer = None
        self.closed = False

    async def recv(self, n):
        while not self.inbox:
            if self.closed:
                return b""
            self.ready.clear()
            await self.ready.wait()
        data = bytes(self.inbox[:n])
        del self.inbox[:n]
        return data

    async def sendall(self, data):
        self.peer.inbox += data
        await self.peer.ready.set()

    async def close(self):
        self.peer.closed = True
        await self.peer.ready.set()


def memory_pipe():
    a, b = MemoryStream(), MemoryStream()
    a.peer, b.peer = b, a
    return a, b


class ScriptedStream:
    """Answers with canned bytes no matter what is sent, then goes quiet or hangs up"""

    def __init__(self, response, hang=True):
        self.response = BytesIO(response)
        self.hang = hang
        self.sent = b""

    async def recv(self, n):
        data = self.response.read(n)
        if not data and self.hang:
            await curio.sleep(3600)
        return data

    async def sendall(self, data):
        self.sent += data


class EchoStream:
    """Sends back whatever it receives, like a node connected to itself"""

    def __init__(self):
        self.buffer = bytearray()

    async def recv(self, n):
        data = bytes(self.buffer[:n])
        del self.buffer[:n]
        return data

    async def sendall(self, data):
        self.buffer += data


class BrokenStream:
    async def recv(self, n):
        return b""

    async def sendall(self, data):
        raise BrokenPipeError(32, "Broken pipe")


class UnreachableStream:
    def __init__(self, error):
        self.error = error

    async def recv(self, n):
        raise self.error

    async def sendall(self, data):
        pass


def peer_version(version=70015, **kwargs):
    msg = VersionMessage.create(version, 1, remote, local, "/Satoshi:0.16.0/", 533645)
    return encode(msg.command, msg.to_bytes(), **kwargs)


def run_scripted(response, timeout=1.0, hang=True, **kwargs):
    stream = ScriptedStream(response, hang=hang)
    outcome = curio.run(functools.partial(handshake, stream, local, remote, timeout=timeout, **kwargs))
    return outcome, stream


async def both_sides(local_version, remote_version):
    a, b = memory_pipe()
    task_a = await curio.spawn(functools.partial(handshake, a, local, remote, version=local_version))
    task_b = await curio.spawn(functools.partial(handshake, b, remote, local, version=remote_version))
    return await task_a.join(), await task_b.join()


def test_end_to_end():
    outcome_a, outcome_b = curio.run(both_sides, 70015, 70015)
    assert isinstance(outcome_a, Success)
    assert isinstance(outcome_b, Success)
    assert outcome_a.negotiated_version == outcome_b.negotiated_version == 70015
    assert outcome_a.remote.addr_from == remote
    assert outcome_b.remote.addr_from == local
    assert outcome_a.remote.nonce != outcome_b.remote.nonce


def test_negotiated_version_is_remote_when_lower():
    outcome_a, outcome_b = curio.run(both_sides, 70015, 70002)
    assert outcome_a.negotiated_version == 70002
    assert outcome_b.negotiated_version == 70002


def test_negotiated_version_is_local_when_lower():
    outcome_a, outcome_b = curio.run(both_sides, 70000, 70015)
    assert outcome_a.negotiated_version == 70000
    assert outcome_b.negotiated_version == 70000


def test_scripted_peer():
    outcome, stream = run_scripted(peer_version(70002) + test_data.verack_packet)
    assert outcome.ok
    assert outcome.negotiated_version == 70002
    assert outcome.remote.user_agent == "/Satoshi:0.16.0/"
    # our version then our verack
    assert stream.sent[4:11] == b"version"
    assert stream.sent.endswith(test_data.verack_packet)


def test_timeout_awaiting_version():
    start = time.monotonic()
    outcome, stream = run_scripted(b"", timeout=0.2)
    elapsed = time.monotonic() - start
    assert isinstance(outcome, Failure)
    assert outcome.stage == Stage.AWAITING_VERSION
    assert isinstance(outcome.reason, Timeout)
    assert 0.19 <= elapsed < 1.0
    # version went out before we started waiting
    assert stream.sent[4:11] == b"version"


def test_timeout_awaiting_verack():
    outcome, _ = run_scripted(peer_version(), timeout=0.2)
    assert outcome.stage == Stage.AWAITING_VERACK
    assert isinstance(outcome.reason, Timeout)
    assert outcome.explain() == (
        "handshake failed at stage AWAITING_VERACK, "
        "caused by: deadline elapsed after 200ms"
    )


def test_version_instead_of_verack():
    outcome, _ = run_scripted(peer_version() + peer_version())
    assert not outcome.ok
    assert outcome.stage == Stage.AWAITING_VERACK
    assert isinstance(outcome.reason, UnexpectedCommand)
    assert outcome.reason.received == b"version"


def test_verack_instead_of_version():
    outcome, _ = run_scripted(test_data.verack_packet)
    assert outcome.stage == Stage.AWAITING_VERSION
    assert isinstance(outcome.reason, UnexpectedCommand)
    assert outcome.reason.expected == b"version"


def test_foreign_network():
    outcome, _ = run_scripted(peer_version(params=TESTNET))
    assert outcome.stage == Stage.AWAITING_VERSION
    assert isinstance(outcome.reason, MagicMismatch)


def test_peer_hangs_up():
    outcome, _ = run_scripted(peer_version(), hang=False)
    assert outcome.stage == Stage.AWAITING_VERACK
    assert isinstance(outcome.reason, ConnectionClosed)


def test_old_peer():
    outcome, _ = run_scripted(peer_version(106) + test_data.verack_packet)
    assert outcome.stage == Stage.AWAITING_VERSION
    assert isinstance(outcome.reason, VersionTooOld)


def test_self_connection():
    outcome = curio.run(handshake, EchoStream(), local, local)
    assert outcome.stage == Stage.AWAITING_VERSION
    assert isinstance(outcome.reason, SelfConnection)


def test_send_failed():
    outcome = curio.run(handshake, BrokenStream(), local, remote)
    assert outcome.stage == Stage.SENDING_VERSION
    assert isinstance(outcome.reason, SendFailed)
    assert isinstance(outcome.reason.__cause__, BrokenPipeError)


def test_recv_errors_become_failures():
    errors = [
        OSError(errno.EHOSTUNREACH, "No route to host"),
        TimeoutError(errno.ETIMEDOUT, "Connection timed out"),
    ]
    for error in errors:
        outcome = curio.run(handshake, UnreachableStream(error), local, remote)
        assert isinstance(outcome, Failure)
        assert outcome.stage == Stage.AWAITING_VERSION
        assert isinstance(outcome.reason, ConnectionClosed)
        assert outcome.reason.__cause__ is error


def test_outcomes_are_immutable():
    outcome = Success(70015, None)
    try:
        outcome.negotiated_version = 1
    except AttributeError:
        pass
    else:
        raise AssertionError("Success should be immutable")


def test_session():
    session = HandshakeSession(70015)
    assert session.state == State.INIT
    session.remote_version = 70001
    assert session.negotiated_version == 70001
    assert STAGE_FOR_STATE[State.VERACK_SENT] == Stage.AWAITING_VERACK
