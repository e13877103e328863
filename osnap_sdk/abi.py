"""
Contract ABIs used by the oSnap SDK.

Only the fragments the SDK reads or writes are included.
"""

_TRANSACTION_COMPONENTS = [
    {"internalType": "address", "name": "to", "type": "address"},
    {"internalType": "enum Enum.Operation", "name": "operation", "type": "uint8"},
    {"internalType": "uint256", "name": "value", "type": "uint256"},
    {"internalType": "bytes", "name": "data", "type": "bytes"}
]


def _view(name, output_type, inputs=None):
    return {
        "inputs": inputs or [],
        "name": name,
        "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
        "stateMutability": "view",
        "type": "function"
    }


# ABI for the optimistic governor module
MODULE_ABI = [
    _view("avatar", "address"),
    _view("optimisticOracle", "address"),
    _view("rules", "string"),
    _view("bondAmount", "uint256"),
    _view("liveness", "uint64"),
    _view("collateral", "address"),
    _view("proposalHashes", "uint256", inputs=[{"internalType": "bytes32", "name": "", "type": "bytes32"}]),
    {
        "inputs": [
            {
                "components": _TRANSACTION_COMPONENTS,
                "internalType": "struct OptimisticGovernor.Transaction[]",
                "name": "_transactions",
                "type": "tuple[]"
            },
            {"internalType": "bytes", "name": "_explanation", "type": "bytes"}
        ],
        "name": "proposeTransactions",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {
                "components": _TRANSACTION_COMPONENTS,
                "internalType": "struct OptimisticGovernor.Transaction[]",
                "name": "_transactions",
                "type": "tuple[]"
            }
        ],
        "name": "executeProposal",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "proposer", "type": "address"},
            {"indexed": True, "internalType": "uint256", "name": "proposalTime", "type": "uint256"},
            {
                "components": [
                    {
                        "components": _TRANSACTION_COMPONENTS,
                        "internalType": "struct OptimisticGovernor.Transaction[]",
                        "name": "transactions",
                        "type": "tuple[]"
                    },
                    {"internalType": "uint256", "name": "requestTime", "type": "uint256"}
                ],
                "indexed": False,
                "internalType": "struct OptimisticGovernor.Proposal",
                "name": "proposal",
                "type": "tuple"
            },
            {"indexed": False, "internalType": "bytes32", "name": "proposalHash", "type": "bytes32"},
            {"indexed": False, "internalType": "bytes", "name": "explanation", "type": "bytes"},
            {"indexed": False, "internalType": "uint256", "name": "challengeWindowEnds", "type": "uint256"}
        ],
        "name": "TransactionsProposed",
        "type": "event"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "bytes32", "name": "proposalHash", "type": "bytes32"},
            {"indexed": True, "internalType": "uint256", "name": "proposalTime", "type": "uint256"}
        ],
        "name": "ProposalExecuted",
        "type": "event"
    }
]

# ABI for the optimistic oracle (V2)
ORACLE_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "requester", "type": "address"},
            {"internalType": "bytes32", "name": "identifier", "type": "bytes32"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"internalType": "bytes", "name": "ancillaryData", "type": "bytes"}
        ],
        "name": "getRequest",
        "outputs": [
            {
                "components": [
                    {"internalType": "address", "name": "proposer", "type": "address"},
                    {"internalType": "address", "name": "disputer", "type": "address"},
                    {"internalType": "contract IERC20", "name": "currency", "type": "address"},
                    {"internalType": "bool", "name": "settled", "type": "bool"},
                    {
                        "components": [
                            {"internalType": "bool", "name": "eventBased", "type": "bool"},
                            {"internalType": "bool", "name": "refundOnDispute", "type": "bool"},
                            {"internalType": "bool", "name": "callbackOnPriceProposed", "type": "bool"},
                            {"internalType": "bool", "name": "callbackOnPriceDisputed", "type": "bool"},
                            {"internalType": "bool", "name": "callbackOnPriceSettled", "type": "bool"},
                            {"internalType": "uint256", "name": "bond", "type": "uint256"},
                            {"internalType": "uint256", "name": "customLiveness", "type": "uint256"}
                        ],
                        "internalType": "struct OptimisticOracleV2Interface.RequestSettings",
                        "name": "requestSettings",
                        "type": "tuple"
                    },
                    {"internalType": "int256", "name": "proposedPrice", "type": "int256"},
                    {"internalType": "int256", "name": "resolvedPrice", "type": "int256"},
                    {"internalType": "uint256", "name": "expirationTime", "type": "uint256"},
                    {"internalType": "uint256", "name": "reward", "type": "uint256"},
                    {"internalType": "uint256", "name": "finalFee", "type": "uint256"}
                ],
                "internalType": "struct OptimisticOracleV2Interface.Request",
                "name": "",
                "type": "tuple"
            }
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "requester", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "proposer", "type": "address"},
            {"indexed": False, "internalType": "bytes32", "name": "identifier", "type": "bytes32"},
            {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"indexed": False, "internalType": "bytes", "name": "ancillaryData", "type": "bytes"},
            {"indexed": False, "internalType": "int256", "name": "proposedPrice", "type": "int256"},
            {"indexed": False, "internalType": "uint256", "name": "expirationTimestamp", "type": "uint256"},
            {"indexed": False, "internalType": "address", "name": "currency", "type": "address"}
        ],
        "name": "ProposePrice",
        "type": "event"
    }
]

# Field positions in the getRequest() Request tuple
REQUEST_DISPUTER = 1
REQUEST_SETTLED = 3
REQUEST_RESOLVED_PRICE = 6
REQUEST_EXPIRATION_TIME = 7

ERC20_ABI = [
    _view("symbol", "string"),
    _view("decimals", "uint8"),
    _view(
        "allowance",
        "uint256",
        inputs=[
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"}
        ]
    ),
    _view("balanceOf", "uint256", inputs=[{"internalType": "address", "name": "account", "type": "address"}]),
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]
