"""All constants for the project"""

import os

from dotenv import load_dotenv

from taas_explorer.shared.exceptions import ConfigurationException
from taas_explorer.shared.types import ChainConfig

load_dotenv()


def _env_flag(name: str):
    """Read a tri-state boolean env var: unset -> None."""
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.strip().lower() not in ("0", "false", "no", "off")


class AttestationConstants:
    """Event and function names of the Attestations contract"""

    ABI_NAME = "Attestations"

    DATA_EVENT = "AttestedToData"
    RISK_EVENT = "AttestedToRisk"

    # Risk group queried by getRiskRecord when none is given
    DEFAULT_RISK_GROUP_ID = 1


class StorageKeys:
    """Keys used in the persisted storage backend"""

    PROOFS_CACHE = "taas-proofs-cache"
    PROOFS_CURRENT_PAGE = "taas-proofs-current-page"
    LATEST_ACTIVE_BLOCK_PREFIX = "latestActiveBlock"


class PaginationConfig:
    """Page sizes used by the proofs pagination"""

    DEFAULT_ROWS = 25
    MAX_ROWS = 100


class GlobalConstants:
    """Global class constants, read from the environment"""

    RPC_URL = os.getenv("TAAS_RPC_URL")
    ATTESTATION_ADDRESS = os.getenv("TAAS_ATTESTATION_ADDRESS")

    DEFAULT_GRAPHQL_ENDPOINT = os.getenv(
        "TAAS_GRAPHQL_ENDPOINT",
        "https://api.studio.thegraph.com/query/taas/attestations/version/latest",
    )
    USE_GRAPHQL = _env_flag("TAAS_USE_GRAPHQL")

    # Widest inclusive window sent in a single eth_getLogs request
    BLOCK_STEP_SIZE = int(os.getenv("TAAS_BLOCK_STEP_SIZE", "10000"))
    GRAPHQL_PAGE_SIZE = int(os.getenv("TAAS_GRAPHQL_PAGE_SIZE", "100"))

    # Latest active block cache lifetime (10 minutes, in ms)
    LATEST_BLOCK_TTL_MS = 10 * 60 * 1000

    CACHE_DIR = os.getenv("TAAS_CACHE_DIR", ".cache")

    @classmethod
    def get_chain_config(
        cls,
        rpc_url: str = None,
        attestation_address: str = None,
        use_graphql: bool = None,
    ) -> ChainConfig:
        """Build a ChainConfig from explicit values, falling back to env"""
        rpc_url = rpc_url or cls.RPC_URL
        attestation_address = attestation_address or cls.ATTESTATION_ADDRESS

        if not rpc_url:
            raise ConfigurationException(
                "RPC URL is not set (pass --rpc-url or set TAAS_RPC_URL)"
            )
        if not attestation_address:
            raise ConfigurationException(
                "Attestation address is not set (pass --address or set "
                "TAAS_ATTESTATION_ADDRESS)"
            )

        return ChainConfig(
            rpc_url=rpc_url,
            attestation_address=attestation_address,
            graphql_endpoint=cls.DEFAULT_GRAPHQL_ENDPOINT,
            use_graphql=cls.USE_GRAPHQL if use_graphql is None else use_graphql,
        )
