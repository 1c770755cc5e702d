"""Minimal ABIs for the pre-existing contracts the harness attaches to"""

MAX_UINT256 = 2**256 - 1


def _view(name, inputs=(), output="address"):
    return {
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"name": "", "type": output}],
        "stateMutability": "view",
        "type": "function",
    }


def _send(name, inputs=(), outputs=()):
    return {
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": "nonpayable",
        "type": "function",
    }


ERC20_ABI = [
    _view("name", output="string"),
    _view("symbol", output="string"),
    _view("decimals", output="uint8"),
    _view("totalSupply", output="uint256"),
    _view("balanceOf", [("account", "address")], "uint256"),
    _view("allowance", [("owner", "address"), ("spender", "address")], "uint256"),
    _send("approve", [("spender", "address"), ("amount", "uint256")], ["bool"]),
    _send("transfer", [("recipient", "address"), ("amount", "uint256")], ["bool"]),
    _send("transferFrom", [("sender", "address"), ("recipient", "address"), ("amount", "uint256")], ["bool"]),
]

ATLAS_MINE_ABI = [
    _view("magic"),
    _view("treasure"),
    _view("legion"),
    _view("totalRewardsEarned", output="uint256"),
    _view("utilization", output="uint256"),
    _view("isLegion1_1", [("_tokenId", "uint256")], "bool"),
    _send("deposit", [("_amount", "uint256"), ("_lock", "uint8")]),
    _send("withdrawPosition", [("_depositId", "uint256"), ("_amount", "uint256")], ["bool"]),
    _send("harvestAll"),
    _send("stakeLegion", [("_tokenId", "uint256")]),
    _send("unstakeLegion", [("_tokenId", "uint256")]),
]

TREASURE_MARKETPLACE_ABI = [
    _view("owner"),
    _view("feeReceipient"),
    _view("fee", output="uint256"),
]
