class HandshakeError(Exception):
    """Base class for everything that can end a handshake attempt"""


class Timeout(HandshakeError):
    def __init__(self, timeout):
        self.timeout = timeout
        super().__init__(f"deadline elapsed after {round(timeout * 1000)}ms")


class ConnectionClosed(HandshakeError):
    def __init__(self, expected, received):
        self.expected = expected
        self.received = received
        super().__init__(
            f"connection closed after {received} of {expected} expected bytes"
        )


class MagicMismatch(HandshakeError):
    def __init__(self, expected, received):
        self.expected = expected
        self.received = received
        super().__init__(
            f'Network magic "{received:#010x}" is wrong, expected "{expected:#010x}"'
        )


class ChecksumMismatch(HandshakeError):
    def __init__(self, command, expected, received):
        self.command = command
        self.expected = expected
        self.received = received
        super().__init__(
            f"Checksums don't match for {command!r}: "
            f"header says {received.hex()}, payload hashes to {expected.hex()}"
        )


class MalformedPayload(HandshakeError):
    pass


class UnexpectedCommand(HandshakeError):
    def __init__(self, expected, received):
        self.expected = expected
        self.received = received
        super().__init__(f"expected {expected!r} message, received {received!r}")


class SendFailed(HandshakeError):
    pass


class SelfConnection(HandshakeError):
    def __init__(self, nonce):
        self.nonce = nonce
        super().__init__(f"peer echoed our own nonce {nonce}, connected to ourselves")


class VersionTooOld(HandshakeError):
    def __init__(self, version, min_version):
        self.version = version
        self.min_version = min_version
        super().__init__(
            f"peer protocol version {version} is below minimum {min_version}"
        )


class DnsLookupError(Exception):
    pass


class ConnectFailed(HandshakeError):
    pass
