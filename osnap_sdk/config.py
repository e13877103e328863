"""
Network configuration for the oSnap SDK.
"""
import importlib.resources
import json
import logging
import os
import urllib.parse
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def validate_rpc_url(url: str) -> None:
    """
    Reject RPC URLs that do not use https.

    Raises:
        ValueError: If the URL doesn't use https (unless it's localhost/127.0.0.1)
    """
    parsed = urllib.parse.urlparse(url)
    # Check if it's a localhost or 127.0.0.1 address (with or without port)
    host = parsed.hostname or ''
    is_local = host in ('localhost', '127.0.0.1')
    if parsed.scheme != 'https' and not is_local:
        raise ValueError(f"rpc_url must use https:// for security (got: {parsed.scheme}://)")


class NetworkConfig:
    """
    Per-network settings, loaded from the packaged networks.json.

    Networks are keyed by chain id as a string ("1", "11155111", ...). Each
    entry has ``chainId`` and ``rpc``, and optionally ``fromBlock`` (first
    block to search for module/oracle logs) or ``eventLookbackBlocks``
    (search only that many blocks back from the latest one).
    """

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """Load and cache the network table"""
        if cls._networks_cache is None:
            resource = importlib.resources.files("osnap_sdk").joinpath("networks.json")
            with resource.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
            logger.debug(f"Loaded {len(cls._networks_cache)} networks")
        return cls._networks_cache

    @classmethod
    def find_network(cls, network: str) -> Optional[Dict[str, Any]]:
        """Return the settings for a network, or None if it is unknown"""
        return cls.load_networks().get(str(network))

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        """
        Return the settings for a network

        Raises:
            ValueError: If the network is not configured
        """
        settings = cls.find_network(network)
        if settings is None:
            available = ", ".join(sorted(cls.load_networks()))
            raise ValueError(f"Network '{network}' not found. Available networks: {available}")
        return settings

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC URL for a network

        Precedence: ``override``, then the ``OSNAP_RPC_URL_<network>``
        environment variable, then the packaged table.
        """
        if override:
            return override
        env_var = f"OSNAP_RPC_URL_{str(network).upper().replace('-', '_')}"
        from_env = os.environ.get(env_var)
        if from_env:
            logger.debug(f"Using RPC URL from {env_var}")
            return from_env
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_from_block(cls, network: str) -> Optional[int]:
        settings = cls.find_network(network) or {}
        value = settings.get("fromBlock")
        return int(value) if value is not None else None

    @classmethod
    def get_event_lookback(cls, network: str) -> Optional[int]:
        settings = cls.find_network(network) or {}
        value = settings.get("eventLookbackBlocks")
        return int(value) if value is not None else None
