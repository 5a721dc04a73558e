import hashlib
import re
from ipaddress import IPv6Address, ip_address

from p2p_handshake.errors import MalformedPayload

IPV4_PREFIX = b"\x00" * 10 + b"\xff" * 2
COMMAND_LENGTH = 12

SERVICE_BITS = {
    "NODE_NETWORK": 0,  # 1 = 2**0
    "NODE_GETUTXO": 1,  # 2 = 2**1
    "NODE_BLOOM": 2,  # 4 = 2**2
    "NODE_WITNESS": 3,  # 8 = 2**3
    "NODE_COMPACT_FILTERS": 6,  # 64 = 2**6
    "NODE_NETWORK_LIMITED": 10,  # 1024 = 2**10
}


def fmt(bytestr):
    string = str(bytestr)
    maxlen = 500
    msg = string[:maxlen]
    if len(string) > maxlen:
        msg += "..."
    return re.sub("(.{80})", "\\1\n", msg, 0, re.DOTALL)


def double_sha256(b):
    first_round = hashlib.sha256(b).digest()
    second_round = hashlib.sha256(first_round).digest()
    return second_round


def compute_checksum(payload_bytes):
    return double_sha256(payload_bytes)[:4]


def bytes_to_int(b, byte_order="little", signed=False):
    return int.from_bytes(b, byte_order, signed=signed)


def int_to_bytes(i, length, byte_order="little", signed=False):
    return int.to_bytes(i, length, byte_order, signed=signed)


def read_exactly(stream, n):
    b = stream.read(n)
    if len(b) != n:
        raise MalformedPayload(f"wanted {n} bytes, only {len(b)} left")
    return b


def read_int(stream, n, byte_order="little", signed=False):
    b = read_exactly(stream, n)
    return bytes_to_int(b, byte_order, signed)


def remaining(stream):
    """Number of unread bytes in a BytesIO"""
    return len(stream.getbuffer()) - stream.tell()


def encode_command(cmd):
    # commands longer than the field are cut, shorter ones NUL padded
    cmd = cmd[:COMMAND_LENGTH]
    padding_needed = COMMAND_LENGTH - len(cmd)
    return cmd + b"\x00" * padding_needed


def decode_command(raw):
    # remove empty bytes
    return raw.rstrip(b"\x00")


def read_var_int(stream):
    i = read_int(stream, 1)
    if i == 0xFF:
        return read_int(stream, 8)
    elif i == 0xFE:
        return read_int(stream, 4)
    elif i == 0xFD:
        return read_int(stream, 2)
    else:
        return i


def int_to_var_int(i):
    """encodes an integer as a varint"""
    if i < 0xFD:
        return bytes([i])
    elif i < 0x10000:
        return b"\xfd" + int_to_bytes(i, 2)
    elif i < 0x100000000:
        return b"\xfe" + int_to_bytes(i, 4)
    elif i < 0x10000000000000000:
        return b"\xff" + int_to_bytes(i, 8)
    else:
        raise ValueError("integer too large: {}".format(i))


def read_var_str(stream):
    length = read_var_int(stream)
    if length > remaining(stream):
        raise MalformedPayload(
            f"string declares {length} bytes, only {remaining(stream)} left"
        )
    return stream.read(length)


def bytes_to_var_str(b):
    return int_to_var_int(len(b)) + b


def check_bit(number, index):
    """See if the bit at `index` in binary representation of `number` is on"""
    mask = 1 << index
    return bool(number & mask)


def services_to_names(services):
    return [key for key, bit in SERVICE_BITS.items() if check_bit(services, bit)]


def services_to_bytes(services):
    return int_to_bytes(services, 8)


def read_services(stream):
    return read_int(stream, 8)


def read_port(stream):
    return read_int(stream, 2, byte_order="big")


def port_to_bytes(port):
    return int_to_bytes(port, 2, byte_order="big")


def bool_to_bytes(boolean):
    return int_to_bytes(int(boolean), 1)


def read_bool(stream):
    return bool(read_int(stream, 1))


def bytes_to_ip(b):
    ipv6 = IPv6Address(bytes(b))
    if ipv6.ipv4_mapped:
        return str(ipv6.ipv4_mapped)
    return str(ipv6)


def ip_to_bytes(ip):
    address = ip_address(ip)
    if address.version == 4:
        return IPV4_PREFIX + address.packed
    return address.packed


def read_ip(stream):
    return bytes_to_ip(read_exactly(stream, 16))
