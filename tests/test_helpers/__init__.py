"""
Shared helpers for the oSnap SDK tests.
"""
from .fake_chain import (
    FakeChainReader,
    make_chain,
    add_proposal,
    make_batch,
    request_tuple,
    MODULE,
    ORACLE,
    TOKEN,
    AVATAR,
    ACCOUNT,
    DISPUTER,
    TARGET,
    IDENTIFIER,
    BOND,
    LIVENESS,
    NOW,
)
