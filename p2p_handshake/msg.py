import io
import os
import time

from tabulate import tabulate

from p2p_handshake.errors import MalformedPayload
from p2p_handshake.utils import (
    bool_to_bytes,
    bytes_to_int,
    bytes_to_var_str,
    fmt,
    int_to_bytes,
    ip_to_bytes,
    port_to_bytes,
    read_bool,
    read_int,
    read_ip,
    read_port,
    read_services,
    read_var_str,
    remaining,
    services_to_bytes,
)

VERSION_COMMAND = b"version"
VERACK_COMMAND = b"verack"

NODE_NONE = 0
ADDRESS_LENGTH = 8 + 16 + 2
# version, services, timestamp, addr_recv, addr_from, nonce
MIN_VERSION_PAYLOAD_LENGTH = 4 + 8 + 8 + ADDRESS_LENGTH + ADDRESS_LENGTH + 8

DEFAULT_USER_AGENT = ""
DEFAULT_START_HEIGHT = 0
DEFAULT_RELAY = True


def random_nonce():
    # bitcoind doesn't like zero nonces
    while True:
        nonce = bytes_to_int(os.urandom(8))
        if nonce != 0:
            return nonce


class Address:
    """A network address as embedded in a version message (no timestamp)"""

    __slots__ = ("services", "ip", "port")

    def __init__(self, services, ip, port):
        object.__setattr__(self, "services", services)
        object.__setattr__(self, "ip", ip)
        object.__setattr__(self, "port", port)

    def __setattr__(self, name, value):
        raise AttributeError(f"{self.__class__.__name__} is immutable")

    @classmethod
    def from_bytes(cls, bytes_):
        stream = io.BytesIO(bytes_)
        return cls.from_stream(stream)

    @classmethod
    def from_stream(cls, stream):
        services = read_services(stream)
        ip = read_ip(stream)
        port = read_port(stream)
        return cls(services, ip, port)

    def to_bytes(self):
        result = services_to_bytes(self.services)
        result += ip_to_bytes(self.ip)
        result += port_to_bytes(self.port)
        return result

    def __eq__(self, other):
        if not isinstance(other, Address):
            return NotImplemented
        return (self.services, self.ip, self.port) == (
            other.services,
            other.ip,
            other.port,
        )

    def __hash__(self):
        return hash((self.services, self.ip, self.port))

    def __str__(self):
        if ":" in self.ip:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"

    def __repr__(self):
        return f"<Address {self}>"


class VersionMessage:

    command = VERSION_COMMAND

    def __init__(
        self,
        version,
        services,
        time,
        addr_recv,
        addr_from,
        nonce,
        user_agent=DEFAULT_USER_AGENT,
        start_height=DEFAULT_START_HEIGHT,
        relay=DEFAULT_RELAY,
        raw_user_agent=None,
    ):
        self.version = version
        self.services = services
        self.time = time
        self.addr_recv = addr_recv
        self.addr_from = addr_from
        self.nonce = nonce
        self.user_agent = user_agent
        self.start_height = start_height
        self.relay = relay
        # original bytes of a user agent that is not utf-8
        self.raw_user_agent = raw_user_agent

    @classmethod
    def create(
        cls,
        local_version,
        local_services,
        local_addr,
        remote_addr,
        user_agent,
        start_height,
        relay=True,
    ):
        """Our version message, stamped with the current time and a fresh nonce"""
        return cls(
            version=local_version,
            services=local_services,
            time=int(time.time()),
            addr_recv=remote_addr,
            addr_from=local_addr,
            nonce=random_nonce(),
            user_agent=user_agent,
            start_height=start_height,
            relay=relay,
        )

    @classmethod
    def build(cls, *args, **kwargs):
        return cls.create(*args, **kwargs).to_bytes()

    @classmethod
    def from_bytes(cls, payload):
        if len(payload) < MIN_VERSION_PAYLOAD_LENGTH:
            raise MalformedPayload(
                f"version payload is {len(payload)} bytes, "
                f"needs at least {MIN_VERSION_PAYLOAD_LENGTH}"
            )
        stream = io.BytesIO(payload)
        version = read_int(stream, 4, signed=True)
        services = read_services(stream)
        time_ = read_int(stream, 8, signed=True)
        addr_recv = Address.from_stream(stream)
        addr_from = Address.from_stream(stream)
        nonce = read_int(stream, 8)
        msg = cls(version, services, time_, addr_recv, addr_from, nonce)

        # everything after the nonce was added in later protocol versions
        # and is filled with defaults once the payload runs out
        if remaining(stream) == 0:
            return msg
        raw = read_var_str(stream)
        msg.user_agent = decode_user_agent(raw)
        if msg.user_agent.encode("utf-8") != raw:
            msg.raw_user_agent = raw
        if remaining(stream) < 4:
            return msg
        msg.start_height = read_int(stream, 4, signed=True)
        if remaining(stream) < 1:
            return msg
        msg.relay = read_bool(stream)
        return msg

    def to_bytes(self):
        msg = int_to_bytes(self.version, 4, signed=True)
        msg += services_to_bytes(self.services)
        msg += int_to_bytes(self.time, 8, signed=True)
        msg += self.addr_recv.to_bytes()
        msg += self.addr_from.to_bytes()
        msg += int_to_bytes(self.nonce, 8)
        msg += bytes_to_var_str(self.user_agent_bytes())
        msg += int_to_bytes(self.start_height, 4, signed=True)
        msg += bool_to_bytes(self.relay)
        return msg

    def user_agent_bytes(self):
        if self.raw_user_agent is not None:
            return self.raw_user_agent
        return self.user_agent.encode("utf-8")

    def __str__(self):
        headers = ["VersionMessage", ""]
        attrs = [
            "version",
            "services",
            "time",
            "addr_recv",
            "addr_from",
            "nonce",
            "user_agent",
            "start_height",
            "relay",
        ]
        rows = [[attr, fmt(getattr(self, attr))] for attr in attrs]
        return tabulate(rows, headers, tablefmt="grid")

    def __eq__(self, other):
        return self.__dict__ == other.__dict__

    def __repr__(self):
        return f"<VersionMessage version={self.version} user_agent={self.user_agent!r}>"


def decode_user_agent(raw):
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return "0x" + raw.hex()


class VerackMessage:

    command = VERACK_COMMAND

    @classmethod
    def build(cls):
        return b""

    def __repr__(self):
        return "<Verack>"


def is_verack(command):
    return command == VERACK_COMMAND


def is_version(command):
    return command == VERSION_COMMAND
