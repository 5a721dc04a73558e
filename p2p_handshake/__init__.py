"""
p2p-handshake - the Bitcoin version/verack handshake with a single peer.
"""

__version__ = "0.1.0"

from p2p_handshake.errors import (
    ChecksumMismatch,
    ConnectFailed,
    ConnectionClosed,
    DnsLookupError,
    HandshakeError,
    MagicMismatch,
    MalformedPayload,
    SelfConnection,
    SendFailed,
    Timeout,
    UnexpectedCommand,
    VersionTooOld,
)
from p2p_handshake.handshake import (
    Failure,
    Handshake,
    HandshakeSession,
    Stage,
    State,
    Success,
    handshake,
)
from p2p_handshake.manager import HandshakeManager, connect
from p2p_handshake.msg import Address, VerackMessage, VersionMessage, is_verack
from p2p_handshake.params import MAINNET, REGTEST, TESTNET, NetworkParams, get_params
from p2p_handshake.wire import Packet, decode, encode
