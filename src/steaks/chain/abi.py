"""ABI fragments for the Mint Club lockup contract and ERC-20 balance reads."""

LOCKUP_ABI = [
    {
        "name": "lockUpCount",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "name": "getLockUpIdsByToken",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "start", "type": "uint256"},
            {"name": "stop", "type": "uint256"},
        ],
        "outputs": [{"name": "ids", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "name": "lockUps",
        "inputs": [{"name": "", "type": "uint256"}],
        "outputs": [
            {"name": "token", "type": "address"},
            {"name": "isERC20", "type": "bool"},
            {"name": "unlockTime", "type": "uint40"},
            {"name": "unlocked", "type": "bool"},
            {"name": "amount", "type": "uint256"},
            {"name": "receiver", "type": "address"},
            {"name": "title", "type": "string"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "lockUpId", "type": "uint256"},
            {"indexed": True, "name": "token", "type": "address"},
            {"indexed": True, "name": "receiver", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "unlockTime", "type": "uint40"},
            {"indexed": False, "name": "title", "type": "string"},
        ],
        "name": "LockUpCreated",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "lockUpId", "type": "uint256"},
            {"indexed": True, "name": "token", "type": "address"},
            {"indexed": True, "name": "receiver", "type": "address"},
        ],
        "name": "Unlock",
        "type": "event",
    },
]

ERC20_ABI = [
    {
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]
