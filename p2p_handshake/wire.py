import curio
from tabulate import tabulate

from p2p_handshake.errors import (
    ChecksumMismatch,
    ConnectionClosed,
    MagicMismatch,
    MalformedPayload,
    Timeout,
)
from p2p_handshake.params import MAINNET
from p2p_handshake.utils import (
    bytes_to_int,
    compute_checksum,
    decode_command,
    encode_command,
    fmt,
    int_to_bytes,
)

HEADER_LENGTH = 4 + 12 + 4 + 4
# bitcoind refuses anything bigger than this
MAX_PAYLOAD_LENGTH = 32 * 1024 * 1024


class MessageHeader:
    def __init__(self, magic, command, length, checksum):
        self.magic = magic
        self.command = command
        self.length = length
        self.checksum = checksum

    @classmethod
    def from_bytes(cls, raw):
        magic = bytes_to_int(raw[:4])
        command = decode_command(raw[4:16])
        length = bytes_to_int(raw[16:20])
        checksum = raw[20:24]
        return cls(magic, command, length, checksum)

    def to_bytes(self):
        result = int_to_bytes(self.magic, 4)
        result += encode_command(self.command)
        result += int_to_bytes(self.length, 4)
        result += self.checksum
        return result

    def check(self, params):
        if self.magic != params.magic:
            raise MagicMismatch(params.magic, self.magic)
        if self.length > MAX_PAYLOAD_LENGTH:
            raise MalformedPayload(
                f"{self.command!r} payload of {self.length} bytes is too large"
            )

    def check_payload(self, payload):
        calculated_checksum = compute_checksum(payload)
        if calculated_checksum != self.checksum:
            raise ChecksumMismatch(self.command, calculated_checksum, self.checksum)

    def __repr__(self):
        return f"<MessageHeader command={self.command} length={self.length}>"


def encode(command, payload, params=MAINNET):
    header = MessageHeader(
        params.magic, command, len(payload), compute_checksum(payload)
    )
    return header.to_bytes() + payload


async def recv_exactly(stream, n):
    data = b""
    while len(data) < n:
        try:
            packet = await stream.recv(n - len(data))
        except OSError as e:
            raise ConnectionClosed(n, len(data)) from e
        if not packet:
            raise ConnectionClosed(n, len(data))
        data += packet
    return data


async def read_message(stream, params=MAINNET):
    raw_header = await recv_exactly(stream, HEADER_LENGTH)
    header = MessageHeader.from_bytes(raw_header)
    header.check(params)
    payload = await recv_exactly(stream, header.length)
    header.check_payload(payload)
    return header.command, payload


async def decode(stream, timeout, params=MAINNET):
    """Read one framed message, header and payload both inside `timeout` seconds"""
    try:
        return await curio.timeout_after(timeout, read_message, stream, params)
    except curio.TaskTimeout:
        raise Timeout(timeout) from None


class Packet:
    def __init__(self, command, payload=b""):
        self.command = command
        self.payload = payload

    @classmethod
    def from_bytes(cls, raw, params=MAINNET):
        if len(raw) < HEADER_LENGTH:
            raise ConnectionClosed(HEADER_LENGTH, len(raw))
        header = MessageHeader.from_bytes(raw[:HEADER_LENGTH])
        header.check(params)
        payload = raw[HEADER_LENGTH : HEADER_LENGTH + header.length]
        if len(payload) != header.length:
            raise ConnectionClosed(HEADER_LENGTH + header.length, len(raw))
        header.check_payload(payload)
        return cls(header.command, payload)

    @classmethod
    async def read(cls, stream, params=MAINNET):
        command, payload = await read_message(stream, params)
        return cls(command, payload)

    def to_bytes(self, params=MAINNET):
        return encode(self.command, self.payload, params)

    def __eq__(self, other):
        return (self.command, self.payload) == (other.command, other.payload)

    def __str__(self):
        headers = ["Packet", ""]
        rows = [["command", fmt(self.command)], ["payload", fmt(self.payload)]]
        return tabulate(rows, headers, tablefmt="grid")

    def __repr__(self):
        return f"<Packet command={self.command}>"
