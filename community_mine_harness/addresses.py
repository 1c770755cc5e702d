"""Fixed Arbitrum One addresses of protocol contracts the harness attaches to"""

from eth_utils import to_checksum_address

MAGIC = to_checksum_address("0x539bde0d7dbd336b79148aa742883198bbf60342")
ATLAS_MINE = to_checksum_address("0xA0A89db1C899c49F98E6326b764BAFcf167fC2CE")
WETH = to_checksum_address("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1")
TREASURE_MARKETPLACE = to_checksum_address("0x2E3b85F85628301a0Bce300Dee3A6B04195A15Ee")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Holder impersonated by the sanity scenario
WETH_HOLDER = to_checksum_address("0xC643Fc22FCde1d2C75bC19BE5b992c6E52f6724a")
