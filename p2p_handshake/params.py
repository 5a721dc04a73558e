from collections import namedtuple

PROTOCOL_VERSION = 70015
# oldest version that still sends verack after version
MIN_PROTOCOL_VERSION = 209
USER_AGENT = "/p2p-handshake:0.1.0/"

# seconds allowed for each receive step of the handshake
DEFAULT_TIMEOUT = 2.0

NetworkParams = namedtuple(
    "NetworkParams",
    [
        "name",
        "magic",
        "default_port",
        "protocol_version",
        "min_version",
        "user_agent",
        "dns_seeds",
    ],
)

# https://github.com/bitcoin/bitcoin/blob/v24.0.1/src/chainparams.cpp#L123
MAINNET_DNS_SEEDS = (
    "seed.bitcoin.sipa.be.",
    "dnsseed.bluematt.me.",
    "dnsseed.bitcoin.dashjr.org.",
    "seed.bitcoinstats.com.",
    "seed.bitcoin.jonasschnelli.ch.",
    "seed.btc.petertodd.org.",
    "seed.bitcoin.sprovoost.nl.",
    "dnsseed.emzy.de.",
    "seed.bitcoin.wiz.biz.",
)

TESTNET_DNS_SEEDS = (
    "testnet-seed.bitcoin.jonasschnelli.ch.",
    "seed.tbtc.petertodd.org.",
    "seed.testnet.bitcoin.sprovoost.nl.",
    "testnet-seed.bluematt.me.",
)

# magic values are the little endian reading of the 4 bytes on the wire
MAINNET = NetworkParams(
    name="mainnet",
    magic=0xD9B4BEF9,
    default_port=8333,
    protocol_version=PROTOCOL_VERSION,
    min_version=MIN_PROTOCOL_VERSION,
    user_agent=USER_AGENT,
    dns_seeds=MAINNET_DNS_SEEDS,
)

TESTNET = NetworkParams(
    name="testnet",
    magic=0x0709110B,
    default_port=18333,
    protocol_version=PROTOCOL_VERSION,
    min_version=MIN_PROTOCOL_VERSION,
    user_agent=USER_AGENT,
    dns_seeds=TESTNET_DNS_SEEDS,
)

REGTEST = NetworkParams(
    name="regtest",
    magic=0xDAB5BFFA,
    default_port=18444,
    protocol_version=PROTOCOL_VERSION,
    min_version=MIN_PROTOCOL_VERSION,
    user_agent=USER_AGENT,
    dns_seeds=(),
)

NETWORKS = {params.name: params for params in (MAINNET, TESTNET, REGTEST)}


def get_params(name):
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(
            f"Unknown network {name!r}, expected one of {', '.join(NETWORKS)}"
        ) from None
