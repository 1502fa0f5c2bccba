"""Chain configuration: fork schedule and the rules active at a block."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields

__all__ = [
    "ChainConfig",
    "Rules",
    "is_forked",
    "new_rules",
    "config_from_json",
    "MAINNET_RULES",
    "CLIQUE_RULES",
    "DEV_RULES",
]


@dataclass
class ChainConfig:
    """Fork schedule of a chain; a block of None means the fork never happens."""

    chain_name: str = ""
    chain_id: int | None = None
    homestead_block: int | None = None
    dao_fork_block: int | None = None
    dao_fork_support: bool = False
    eip150_block: int | None = None
    eip155_block: int | None = None
    eip158_block: int | None = None
    byzantium_block: int | None = None
    constantinople_block: int | None = None
    petersburg_block: int | None = None
    istanbul_block: int | None = None
    muir_glacier_block: int | None = None
    berlin_block: int | None = None
    london_block: int | None = None
    catalyst_block: int | None = None


_JSON_NAMES = {
    "chain_name": "ChainName",
    "chain_id": "chainId",
    "homestead_block": "homesteadBlock",
    "dao_fork_block": "daoForkBlock",
    "dao_fork_support": "daoForkSupport",
    "eip150_block": "eip150Block",
    "eip155_block": "eip155Block",
    "eip158_block": "eip158Block",
    "byzantium_block": "byzantiumBlock",
    "constantinople_block": "constantinopleBlock",
    "petersburg_block": "petersburgBlock",
    "istanbul_block": "istanbulBlock",
    "muir_glacier_block": "muirGlacierBlock",
    "berlin_block": "berlinBlock",
    "london_block": "londonBlock",
    "catalyst_block": "catalystBlock",
}
_FIELD_BY_JSON_KEY = {name.lower(): field for field, name in _JSON_NAMES.items()}


def _convert(field: str, value: object) -> object:
    if field == "chain_name":
        if not isinstance(value, str):
            raise ValueError(f"{_JSON_NAMES[field]}: expected a string, got {value!r}")
        return value
    if field == "dao_fork_support":
        if not isinstance(value, bool):
            raise ValueError(f"{_JSON_NAMES[field]}: expected a boolean, got {value!r}")
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{_JSON_NAMES[field]}: expected an integer, got {value!r}")
    return value


def config_from_json(data: str | bytes) -> ChainConfig:
    """Parse a chain configuration from its JSON form; raises ValueError on bad input."""
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise ValueError(f"invalid JSON: {err}") from err
    config = ChainConfig()
    if raw is None:
        return config
    if not isinstance(raw, dict):
        raise ValueError(f"chain config must be a JSON object, got {type(raw).__name__}")
    for key, value in raw.items():
        field = _FIELD_BY_JSON_KEY.get(key.lower())
        if field is None or value is None:
            continue
        setattr(config, field, _convert(field, value))
    return config


def is_forked(fork_block: int | None, head: int) -> bool:
    """Whether a fork scheduled at fork_block is active at block head."""
    return fork_block is not None and fork_block <= head


@dataclass(frozen=True)
class Rules:
    """Which forks are active at one particular block."""

    is_homestead: bool = False
    is_eip150: bool = False
    is_eip155: bool = False
    is_eip158: bool = False
    is_byzantium: bool = False
    is_constantinople: bool = False
    is_petersburg: bool = False
    is_istanbul: bool = False
    is_berlin: bool = False
    is_london: bool = False
    is_catalyst: bool = False

    def changed(self, config: ChainConfig, num: int) -> bool:
        """Whether the rules at block num differ from these."""
        return new_rules(config, num) != self


_RULE_SOURCES = {
    "is_homestead": "homestead_block",
    "is_eip150": "eip150_block",
    "is_eip155": "eip155_block",
    "is_eip158": "eip158_block",
    "is_byzantium": "byzantium_block",
    "is_constantinople": "constantinople_block",
    "is_petersburg": "petersburg_block",
    "is_istanbul": "istanbul_block",
    "is_berlin": "berlin_block",
    "is_london": "london_block",
    "is_catalyst": "catalyst_block",
}


def new_rules(config: ChainConfig, num: int) -> Rules:
    """Compute the rules active at block num."""
    return Rules(
        **{
            rule.name: is_forked(getattr(config, _RULE_SOURCES[rule.name]), num)
            for rule in fields(Rules)
        }
    )


MAINNET_RULES = Rules(
    is_homestead=True,
    is_eip150=True,
    is_eip155=True,
    is_eip158=True,
    is_byzantium=True,
    is_constantinople=True,
    is_petersburg=True,
    is_istanbul=True,
    is_berlin=True,
    is_london=True,
    is_catalyst=False,
)
CLIQUE_RULES = Rules(
    is_homestead=True,
    is_eip150=True,
    is_eip155=True,
    is_eip158=True,
    is_byzantium=True,
    is_constantinople=True,
    is_petersburg=True,
    is_istanbul=True,
    is_berlin=True,
    is_london=False,
    is_catalyst=False,
)
DEV_RULES = CLIQUE_RULES