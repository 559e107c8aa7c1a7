"""Operator configuration management.

Configuration is loaded from multiple sources with the following precedence:
1. Explicitly passed parameters
2. Environment variables (CLUSTERWARD_<FIELD>)
3. Configuration files
4. Default values
"""
import logging
import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, WithJsonSchema, field_validator, model_validator

from ...utils import parse_duration
from ..cluster.models import SecretCertificate

logger = logging.getLogger("clusterward.config")

ENV_PREFIX = "CLUSTERWARD_"

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/clusterward/config.yaml"),
    Path("~/.config/clusterward/config.yaml").expanduser(),
    Path("clusterward.yaml").absolute(),
]

# Seconds, accepting numbers or strings such as "90s", "1h30m" or "720h"
Duration = Annotated[
    float,
    BeforeValidator(parse_duration),
    WithJsonSchema({"anyOf": [{"type": "number", "minimum": 0}, {"type": "string"}]}),
]


class OperatorConfig(BaseModel):
    """Operator configuration."""
    model_config = ConfigDict(extra="ignore")

    # Dead nodes
    node_unreachable_toleration: Duration = Field(
        default=3600.0,
        description="How long a node may be unreachable before it is considered dead"
    )
    min_ready_master_nodes: int = Field(
        default=2, ge=0,
        description="Never purge a master if fewer ready masters would remain"
    )
    min_ready_worker_nodes: int = Field(
        default=0, ge=0,
        description="Never purge a worker if fewer ready workers would remain"
    )
    purge_dead_nodes: bool = Field(default=False, description="Purge nodes that are dead")
    clear_dead_nodes: bool = Field(default=False, description="Force delete terminating pods on dead nodes")

    # Rook/Ceph
    maintain_rook_storage_nodes: bool = Field(
        default=False,
        description="Add ready nodes to the CephCluster and scale pool replication"
    )
    rook_storage_nodes_label: str = Field(
        default="",
        description="Only nodes with this key=value label are used for storage"
    )
    ceph_block_pool: str = Field(default="replicapool", description="CephBlockPool to manage")
    ceph_filesystem: str = Field(default="rook-shared-fs", description="CephFilesystem to manage")
    ceph_object_store: str = Field(default="replicated", description="CephObjectStore to manage")
    min_ceph_pool_replication: int = Field(default=1, ge=1, description="Minimum pool replication factor")
    max_ceph_pool_replication: int = Field(default=3, ge=1, description="Maximum pool replication factor")
    rook_priority_class: str = Field(
        default="",
        description="Priority class for the Rook agent and Ceph daemons; empty leaves them unchanged"
    )
    certificates_dir: str = Field(
        default="/etc/kubernetes/pki",
        description="Directory holding the etcd client certificates"
    )

    # Control loop
    reconcile_interval: Duration = Field(default=60.0, description="Time between reconciles")
    full_reconcile_every: int = Field(
        default=60, ge=1,
        description="Every Nth reconcile re-applies state even when nothing changed"
    )

    # Certificates
    rotate_certs: bool = Field(default=True, description="Rotate certificates before they expire")
    rotate_certs_namespace: str = Field(default="kurl", description="Namespace for rotation pods and marker")
    rotate_certs_image: str = Field(default="clusterward:latest", description="Image for rotation pods")
    rotate_certs_check_interval: Duration = Field(
        default=86400.0,
        description="Minimum time between certificate rotation sweeps"
    )
    rotate_certs_ttl: Duration = Field(
        default=2592000.0,
        description="Renew certificates expiring within this time"
    )
    secret_certificates: List[SecretCertificate] = Field(
        default_factory=list,
        description="Certificates stored in Secrets to renew"
    )

    # Host tasks
    host_task_namespace: str = Field(default="kurl", description="Namespace for host task pods")
    host_task_image: str = Field(default="clusterward:latest", description="Image for host task pods")
    host_task_binary: str = Field(default="clusterward", description="Command run inside host task pods")
    host_task_poll_interval: Duration = Field(default=2.0, description="How often to poll host task pods")
    host_task_node_delay: Duration = Field(default=5.0, description="Delay between nodes in a host task batch")

    # Internal load balancer
    enable_internal_load_balancer: bool = Field(default=False, description="Manage the haproxy internal load balancer")
    internal_load_balancer_haproxy_image: str = Field(default="haproxy:2.8", description="haproxy image")

    scale_prometheus: bool = Field(
        default=False,
        description="Scale Prometheus and Alertmanager replicas with the node count"
    )

    auto_approve_kubelet_csrs: bool = Field(
        default=False,
        description="Approve kubelet serving certificate signing requests from nodes"
    )

    @field_validator("rook_storage_nodes_label")
    @classmethod
    def check_label(cls, v: str) -> str:
        """Labels are key=value; a bare key matches any value."""
        key = v.partition("=")[0]
        if v and not key:
            raise ValueError(f"invalid label {v!r}")
        return v

    @model_validator(mode="after")
    def check_replication_bounds(self) -> "OperatorConfig":
        if self.min_ceph_pool_replication > self.max_ceph_pool_replication:
            raise ValueError(
                f"min_ceph_pool_replication ({self.min_ceph_pool_replication}) is greater than "
                f"max_ceph_pool_replication ({self.max_ceph_pool_replication})"
            )
        return self

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None, **overrides: Any) -> "OperatorConfig":
        """Load configuration from file, environment variables and overrides."""
        config_data: Dict[str, Any] = {}

        # Try to load from explicit path if provided
        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            config_data = cls._load_config_file(config_path)
        else:
            # Try default paths
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        config_data.update(cls._load_env())
        config_data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load config from %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: expected a mapping", path)
            return {}
        logger.debug("Loaded config from %s", path)
        return data

    @classmethod
    def _load_env(cls) -> Dict[str, Any]:
        """Read CLUSTERWARD_<FIELD> variables, parsing values as YAML scalars."""
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            try:
                value = yaml.safe_load(raw)
            except yaml.YAMLError:
                value = None
            values[name] = raw if value is None else value
        return values

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)


# Global configuration instance
_config: Optional[OperatorConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> OperatorConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = OperatorConfig.load(config_path)
    return _config


def set_config(config: Optional[OperatorConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
