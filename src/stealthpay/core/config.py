"""
Per-network chain configuration: validation and default lookup.

A ChainConfig is immutable and validated when constructed. Integrators either
pass an explicit config (a ChainConfig or a dict of its fields) or a bare chain
id, which is looked up in the built-in table of deployments.

Usage:
    config = resolve_chain_config(1)
    config = resolve_chain_config({
        "contract_address": "0x...",
        "start_block": 12_000_000,
        "announcement_source": None,   # read announcements from ledger logs
    })
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Any, Mapping

from stealthpay.core.address import validate_address


class ConfigError(ValueError):
    """Raised for malformed or unsupported chain configuration."""
    pass


class _Undefined:
    """Marker for a config field the caller never supplied."""

    def __repr__(self) -> str:
        return "undefined"

    __str__ = __repr__


UNDEFINED: Any = _Undefined()

# Deployed stealth payment contract and key registry (same address on every chain)
DEFAULT_CONTRACT_ADDRESS = "0xFb2dc580Eed955B528407b4d36FfaFe3da685401"
DEFAULT_REGISTRY_ADDRESS = "0x31fe56609C65Cd0C510E7125f051D440424D38f3"

_SUBGRAPH_BASE = "https://api.thegraph.com/subgraphs/name/scopelift"


@dataclass(frozen=True)
class ChainConfig:
    """
    Network parameters shared read-only by every component.

    Attributes:
        contract_address: stealth payment contract
        start_block: first block that can contain announcements
        announcement_source: indexer URL, or None to scan ledger logs directly
        chain_id: network id; None means "ask the ledger"
        registry_address: stealth key registry, if deployed
    """
    contract_address: str = UNDEFINED
    start_block: int = UNDEFINED
    announcement_source: str | None = UNDEFINED
    chain_id: int | None = None
    registry_address: str | None = None

    def __post_init__(self) -> None:
        start_block = self.start_block
        if not _is_int(start_block) or start_block < 0:
            raise ConfigError(
                f"Invalid start block provided in chain config. Got '{start_block}'"
            )

        if self.chain_id is not None and not _is_int(self.chain_id):
            raise ConfigError(
                f"Invalid chain id provided in chain config. Got '{self.chain_id}'"
            )

        source = self.announcement_source
        if source is not None and not _is_http_url(source):
            raise ConfigError(
                f"Invalid announcement source provided in chain config. Got '{source}'"
            )

        object.__setattr__(
            self, "contract_address",
            validate_address(self.contract_address, "contract_address"),
        )
        if self.registry_address is not None:
            object.__setattr__(
                self, "registry_address",
                validate_address(self.registry_address, "registry_address"),
            )

    @property
    def uses_indexer(self) -> bool:
        """True when announcements come from an indexing service rather than logs."""
        return self.announcement_source is not None


_DEFAULTS: Mapping[int, Mapping[str, Any]] = MappingProxyType({
    1: MappingProxyType({
        "start_block": 12_343_914,
        "announcement_source": f"{_SUBGRAPH_BASE}/umbramainnet",
    }),
    4: MappingProxyType({
        "start_block": 8_505_089,
        "announcement_source": None,
    }),
    10: MappingProxyType({
        "start_block": 4_069_556,
        "announcement_source": f"{_SUBGRAPH_BASE}/umbraoptimism",
    }),
    137: MappingProxyType({
        "start_block": 20_717_318,
        "announcement_source": f"{_SUBGRAPH_BASE}/umbrapolygon",
    }),
    1337: MappingProxyType({
        "start_block": 8_505_089,
        "announcement_source": None,
    }),
    42161: MappingProxyType({
        "start_block": 7_285_883,
        "announcement_source": f"{_SUBGRAPH_BASE}/umbraarbitrumone",
    }),
})

SUPPORTED_CHAIN_IDS: tuple[int, ...] = tuple(sorted(_DEFAULTS))


def default_chain_config(chain_id: int) -> ChainConfig:
    """
    Return the built-in deployment config for a chain id.

    Raises:
        ConfigError: if the chain id has no known deployment
    """
    if not _is_int(chain_id):
        raise ConfigError(f"Invalid chain id provided in chain config. Got '{chain_id}'")
    entry = _DEFAULTS.get(chain_id)
    if entry is None:
        raise ConfigError(f"Unsupported chain id provided: {chain_id}")
    return ChainConfig(
        contract_address=DEFAULT_CONTRACT_ADDRESS,
        start_block=entry["start_block"],
        announcement_source=entry["announcement_source"],
        chain_id=chain_id,
        registry_address=DEFAULT_REGISTRY_ADDRESS,
    )


def resolve_chain_config(config: ChainConfig | Mapping[str, Any] | int | None) -> ChainConfig:
    """
    Resolve an explicit config or a bare chain id to a validated ChainConfig.

    Args:
        config: ChainConfig, dict of ChainConfig fields, or chain id

    Raises:
        ConfigError: missing, malformed or unsupported configuration
        AddressFormatError: malformed contract or registry address
    """
    if config is None:
        raise ConfigError("chain config not provided")
    if isinstance(config, ChainConfig):
        return config
    if isinstance(config, Mapping):
        known = {f.name for f in fields(ChainConfig)}
        unknown = set(config) - known
        if unknown:
            raise ConfigError(f"Unknown chain config fields: {sorted(unknown)}")
        return ChainConfig(**dict(config))
    if _is_int(config):
        return default_chain_config(config)
    raise ConfigError(f"Invalid chain config provided. Got '{config}'")


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_http_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    lowered = value.lower()
    return (lowered.startswith("http://") or lowered.startswith("https://")) and len(value) > 8
