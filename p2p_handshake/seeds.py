"""
Where candidate peers come from: the DNS seeds baked into Bitcoin Core,
or a snapshot of reachable nodes published by bitnodes.io.
"""
import logging
import socket
from ipaddress import ip_address

import curio.socket as curio_socket
import requests

from p2p_handshake.errors import DnsLookupError
from p2p_handshake.msg import NODE_NONE, Address
from p2p_handshake.params import MAINNET

logger = logging.getLogger(__name__)

BITNODES_URL = "https://bitnodes.io/api/v1/snapshots/latest/"


def dns_seed_at_index(i, params=MAINNET):
    if 0 <= i < len(params.dns_seeds):
        return params.dns_seeds[i]
    return None


def parse_peer(text, default_port=MAINNET.default_port):
    """Parse "1.2.3.4", "1.2.3.4:8333", "::1" or "[::1]:8333" into an Address"""
    text = text.strip()
    if text.startswith("["):
        host, _, port = text[1:].partition("]")
        port = port.lstrip(":")
    elif text.count(":") == 1:
        host, port = text.split(":")
    else:
        host, port = text, ""
    try:
        ip = str(ip_address(host))
        port = int(port) if port else default_port
    except ValueError:
        raise ValueError(f"Not a peer address: {text!r}") from None
    if not 0 < port < 2 ** 16:
        raise ValueError(f"Port out of range: {text!r}")
    return Address(NODE_NONE, ip, port)


def unique(addresses):
    seen = set()
    result = []
    for address in addresses:
        if address not in seen:
            seen.add(address)
            result.append(address)
    return result


async def resolve_seed(seed, port=MAINNET.default_port):
    try:
        infos = await curio_socket.getaddrinfo(seed, port, type=socket.SOCK_STREAM)
    except OSError as e:
        raise DnsLookupError(
            f"Failed to lookup dns seeds by URL {(seed, port)!r}"
        ) from e
    addresses = [
        Address(NODE_NONE, sockaddr[0], sockaddr[1])
        for family, _, _, _, sockaddr in infos
        if family in (socket.AF_INET, socket.AF_INET6)
        # scoped link-local addresses like fe80::1%eth0 have no wire form
        and "%" not in sockaddr[0]
    ]
    logger.debug("%s resolved to %d addresses", seed, len(addresses))
    return unique(addresses)


async def resolve_seed_at_index(i, params=MAINNET):
    seed = dns_seed_at_index(i, params)
    if seed is None:
        raise DnsLookupError(f"Bad DNS seed index: {i}")
    return await resolve_seed(seed, params.default_port)


async def resolve_default_seeds(params=MAINNET):
    """Every address of every seed that answers. Seeds that fail are skipped."""
    addresses = []
    for seed in params.dns_seeds:
        try:
            addresses.extend(await resolve_seed(seed, params.default_port))
        except DnsLookupError as e:
            logger.warning("%s", e)
    return unique(addresses)


def get_nodes(url=BITNODES_URL, timeout=10):
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.json()["nodes"]


def nodes_to_addresses(nodes):
    addresses = []
    for address_string in nodes.keys():
        try:
            addresses.append(parse_peer(address_string))
        except ValueError:
            # onion and i2p hosts
            continue
    return addresses


def get_bitnodes_addresses(url=BITNODES_URL):
    nodes = get_nodes(url)
    return nodes_to_addresses(nodes)
