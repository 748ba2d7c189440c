"""Engine constants - header names, storage keys, windows and sentinels."""

# HTTP headers
PAYMENT_REQUIRED_HEADER = "Payment-Required"
PAYMENT_RESPONSE_HEADER = "Payment-Response"
X_PAYMENT_RESPONSE_HEADER = "X-Payment-Response"

# Status code that triggers capture
PAYMENT_REQUIRED_STATUS = 402

# Persisted storage keys
WALLET_STORAGE_KEY = "veyrun_wallet"
RECEIPTS_STORAGE_KEY = "veyrun_receipts"

# Freshness window for captured 402 events (seconds)
EVENT_TTL_SECONDS = 5 * 60

# Cooldown windows (seconds)
OPERATOR_COOLDOWN_SECONDS = 3.0
DIRECT_COOLDOWN_SECONDS = 15.0

# Synthesized requirement expiry (seconds)
DEFAULT_EXPIRY_SECONDS = 10 * 60

# Nonce prefix for requirements that arrive without one
SYNTHETIC_NONCE_PREFIX = "x402-"

# Default token decimals for USDC
DEFAULT_DECIMALS = 6

# ERC-20 decimals() is a uint8
MAX_TOKEN_DECIMALS = 255
DEFAULT_ASSET_SYMBOL = "USDC"

# Proof value carried by receipts from the demo server's mock payment path
MOCK_PROOF = "mock-proof"

# Last-resort amount for testnet receipts that carry no amount at all
DEMO_TESTNET_AMOUNT = "0.001"

# Base Sepolia defaults
BASE_SEPOLIA_CHAIN_ID = 84532
BASE_SEPOLIA_NAME = "Base Sepolia"
DEFAULT_RPC_URL = "https://sepolia.base.org"
USDC_BASE_SEPOLIA = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

# Where the confirmation surface sends users with an empty wallet
DEFAULT_TOPUP_URL = "https://faucet.circle.com/"

# Confirmation window geometry
CONFIRM_WINDOW_WIDTH = 360
CONFIRM_WINDOW_HEIGHT = 560
CONFIRM_WINDOW_MARGIN = 16

# Minimal ERC-20 ABI for balance reads
ERC20_BALANCE_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Shown for receipts persisted without a description
DEFAULT_RECEIPT_DESCRIPTION = "x402 Payment"
