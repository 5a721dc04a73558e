import logging

import curio
from tabulate import tabulate

from p2p_handshake.errors import ConnectFailed, HandshakeError, Timeout
from p2p_handshake.handshake import Failure, Stage, handshake
from p2p_handshake.msg import NODE_NONE, Address
from p2p_handshake.params import DEFAULT_TIMEOUT, MAINNET

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0


async def connect(peer, timeout=CONNECT_TIMEOUT):
    try:
        return await curio.timeout_after(
            timeout, curio.open_connection, peer.ip, peer.port
        )
    except curio.TaskTimeout:
        raise Timeout(timeout) from None
    except OSError as e:
        raise ConnectFailed(f"could not connect to {peer}: {e}") from e


class HandshakeManager:
    """Connects to peers one at a time and remembers how each handshake went"""

    def __init__(
        self,
        params=MAINNET,
        local_addr=None,
        timeout=DEFAULT_TIMEOUT,
        connect_timeout=CONNECT_TIMEOUT,
        user_agent=None,
    ):
        self.params = params
        if local_addr is None:
            local_addr = Address(NODE_NONE, "0.0.0.0", params.default_port)
        self.local_addr = local_addr
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.user_agent = user_agent
        self.results = {}

    async def establish_handshake(self, peer):
        logger.info("Handshake with peer: %s", peer)
        try:
            sock = await connect(peer, self.connect_timeout)
        except HandshakeError as e:
            outcome = Failure(e, Stage.CONNECTING)
        else:
            # a timed out read leaves the socket in an unknown state, never reuse it
            async with sock:
                outcome = await handshake(
                    sock,
                    self.local_addr,
                    peer,
                    params=self.params,
                    timeout=self.timeout,
                    user_agent=self.user_agent,
                )
        if outcome.ok:
            logger.info("handshake completed successfully with node: %s", peer)
        else:
            logger.error(
                "Handshake with remote peer %s failed: %s", peer, outcome.explain()
            )
        self.record_handshake(peer, outcome)
        return outcome

    def record_handshake(self, peer, outcome):
        self.results[peer] = outcome

    def succeeded(self):
        return [peer for peer, outcome in self.results.items() if outcome.ok]

    async def first_successful(self, peers):
        """Try `peers` in order, stop at the first completed handshake"""
        for peer in peers:
            outcome = await self.establish_handshake(peer)
            if outcome.ok:
                return peer, outcome
        return None, None

    def report(self):
        headers = ["peer", "result", "details"]
        rows = [
            [str(peer), "ok" if outcome.ok else "failed", outcome.explain()]
            for peer, outcome in self.results.items()
        ]
        return tabulate(rows, headers, tablefmt="grid")
