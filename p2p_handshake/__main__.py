import argparse
import logging
import sys

import curio
import requests
from tabulate import tabulate

from p2p_handshake._logger import get_logging_level_from_int, setup_logger
from p2p_handshake.errors import DnsLookupError
from p2p_handshake.manager import HandshakeManager
from p2p_handshake.params import DEFAULT_TIMEOUT, NETWORKS, get_params
from p2p_handshake.seeds import (
    get_bitnodes_addresses,
    parse_peer,
    resolve_default_seeds,
    resolve_seed_at_index,
)
from p2p_handshake.utils import services_to_names


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="p2p-handshake",
        description="Perform the version/verack handshake with a Bitcoin node",
    )
    parser.add_argument(
        "-n", "--network", choices=sorted(NETWORKS), default="mainnet",
        help="network whose magic, port and seeds to use",
    )
    parser.add_argument(
        "-t", "--timeout", type=float, default=DEFAULT_TIMEOUT,
        help="seconds to wait for each message from the peer",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="-v for progress, -vv for message dumps",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seeds", help="list the DNS seeds")

    resolve = sub.add_parser("resolve", help="list peers returned by a DNS seed")
    resolve.add_argument("seed", type=int, help="DNS seed index, see `seeds`")

    sub.add_parser("bitnodes", help="list peers from the latest bitnodes snapshot")

    connect = sub.add_parser("connect", help="handshake with a peer by address")
    connect.add_argument("peer", help="HOST:PORT, [IPV6]:PORT or bare ip")

    connect_seed = sub.add_parser(
        "connect-seed", help="handshake with a peer picked by seed and peer index"
    )
    connect_seed.add_argument("seed", type=int, help="DNS seed index")
    connect_seed.add_argument("peer", type=int, help="peer index, see `resolve`")

    first = sub.add_parser(
        "first", help="try resolved peers in order until one handshake succeeds"
    )
    first.add_argument(
        "seed", type=int, nargs="?", default=None,
        help="DNS seed index, all seeds when omitted",
    )
    return parser.parse_args(argv)


def print_seeds(params):
    rows = list(enumerate(params.dns_seeds))
    print(tabulate(rows, ["#", "DNS seed"]))


def print_addresses(addresses):
    rows = [[i, str(address)] for i, address in enumerate(addresses)]
    print(tabulate(rows, ["#", "peer"]))


def print_outcome(peer, outcome):
    if outcome.ok:
        print(f"Handshake with remote peer established: {peer}")
        print(outcome.explain())
        print(outcome.remote)
        names = services_to_names(outcome.remote.services)
        print(f"services: {', '.join(names) or 'none'}")
    else:
        print(f"Handshake with remote peer {peer} failed", file=sys.stderr)
        print(outcome.explain(), file=sys.stderr)


async def run(args, params):
    manager = HandshakeManager(params=params, timeout=args.timeout)

    if args.command == "seeds":
        print_seeds(params)
        return 0

    if args.command == "resolve":
        print_addresses(await resolve_seed_at_index(args.seed, params))
        return 0

    if args.command == "bitnodes":
        print_addresses(await curio.run_in_thread(get_bitnodes_addresses))
        return 0

    if args.command == "connect":
        peer = parse_peer(args.peer, params.default_port)
        outcome = await manager.establish_handshake(peer)
        print_outcome(peer, outcome)
        return 0 if outcome.ok else 1

    if args.command == "connect-seed":
        peers = await resolve_seed_at_index(args.seed, params)
        if not 0 <= args.peer < len(peers):
            print(
                f"Bad peer index {args.peer}, seed returned {len(peers)} peers",
                file=sys.stderr,
            )
            return 1
        peer = peers[args.peer]
        outcome = await manager.establish_handshake(peer)
        print_outcome(peer, outcome)
        return 0 if outcome.ok else 1

    if args.command == "first":
        if args.seed is None:
            peers = await resolve_default_seeds(params)
        else:
            peers = await resolve_seed_at_index(args.seed, params)
        peer, outcome = await manager.first_successful(peers)
        print(manager.report())
        if peer is None:
            print(f"No handshake succeeded with {len(peers)} peers", file=sys.stderr)
            return 1
        print_outcome(peer, outcome)
        return 0

    raise ValueError(f"Unknown command {args.command}")


def main(argv=None):
    args = parse_args(argv)
    level = get_logging_level_from_int(args.verbose)
    setup_logger(logging.getLogger("p2p_handshake"), level)
    params = get_params(args.network)
    try:
        return curio.run(run, args, params)
    except (DnsLookupError, ValueError, requests.RequestException) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
