import os
from enum import Enum
from functools import cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./flowgraph.db"
_DEFAULT_MAX_PARALLEL_NODES = 4


class ConditionPolicy(str, Enum):
    """What to do with an edge condition the evaluator does not recognize."""
    FAIL_OPEN = "fail_open"      # follow the edge
    FAIL_CLOSED = "fail_closed"  # do not follow the edge


def _get_env_var(suffix, default=None):
    for prefix in ("FLOWGRAPH", "WORKFLOW"):
        if value := os.getenv(f"{prefix}_{suffix}", ""):
            return value
    return default


@cache
def get_database_url() -> str:
    return _get_env_var("DATABASE_URL", _DEFAULT_DATABASE_URL)


@cache
def get_max_parallel_nodes() -> int:
    value = int(_get_env_var("MAX_PARALLEL_NODES", _DEFAULT_MAX_PARALLEL_NODES))
    return max(1, value)


@cache
def get_condition_policy() -> ConditionPolicy:
    return ConditionPolicy(_get_env_var("CONDITION_POLICY", ConditionPolicy.FAIL_OPEN.value))


@cache
def get_default_node_timeout() -> Optional[float]:
    value = _get_env_var("NODE_TIMEOUT")
    return float(value) if value else None


@cache
def use_structured_logs() -> bool:
    return str(_get_env_var("STRUCTURED_LOGS", "false")).lower() in ("1", "true", "yes")


class EngineConfig(BaseModel):
    """Runtime knobs for one DAG execution. Unset fields come from the environment."""
    max_parallel_nodes: int = Field(default_factory=get_max_parallel_nodes, ge=1)
    condition_policy: ConditionPolicy = Field(default_factory=get_condition_policy)
    default_node_timeout: Optional[float] = Field(default_factory=get_default_node_timeout, gt=0)


def get_engine_config(**overrides) -> EngineConfig:
    """Build an EngineConfig from the environment, applying non-None overrides."""
    return EngineConfig(**{k: v for k, v in overrides.items() if v is not None})
