"""Configuration model used by the labelers and the allocation logic."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

DEFAULT_CDI_ANNOTATION_PREFIX = "cdi.k8s.io/"
IMEX_CHANNEL_ENV_VAR = "NVIDIA_IMEX_CHANNELS"


class SharingStrategy(str, Enum):
    """How a resource is shared between containers."""

    NONE = "none"
    TIME_SLICING = "time-slicing"
    MPS = "mps"

    def __str__(self):
        return self.value


@dataclass
class ReplicatedResource:
    """A resource that is advertised with a number of replicas."""

    name: str = ""
    rename: str = ""
    replicas: int = 0


@dataclass
class ReplicatedResources:
    """A set of replicated resources."""

    resources: List[ReplicatedResource] = field(default_factory=list)


def _is_replicated(resources):
    return resources is not None and any(r.replicas > 1 for r in resources.resources)


@dataclass
class Sharing:
    """Sharing settings: time-slicing and, optionally, MPS."""

    time_slicing: ReplicatedResources = field(default_factory=ReplicatedResources)
    mps: Optional[ReplicatedResources] = None

    def sharing_strategy(self):
        """Return the effective sharing strategy."""
        if _is_replicated(self.mps):
            return SharingStrategy.MPS
        if _is_replicated(self.time_slicing):
            return SharingStrategy.TIME_SLICING
        return SharingStrategy.NONE

    def replicated_resources(self):
        """Return the replicated resources of the configured sharing mechanism."""
        if self.mps is not None:
            return self.mps
        return self.time_slicing


@dataclass
class ImexConfig:
    """IMEX channel selection."""

    channel_ids: List[int] = field(default_factory=list)
    required: bool = False


@dataclass
class Config:
    """Settings for labelling and device allocation."""

    mig_strategy: str = "none"
    machine_type_file: str = ""
    no_timestamp: bool = False
    output_file: str = ""
    use_node_feature_api: bool = False
    container_driver_root: Optional[str] = None
    nvidia_dev_root: str = "/"
    device_id_strategy: str = "uuid"
    pass_device_specs: bool = False
    gds_enabled: bool = False
    mofed_enabled: bool = False
    cdi_annotation_prefix: str = DEFAULT_CDI_ANNOTATION_PREFIX
    imex: ImexConfig = field(default_factory=ImexConfig)
    sharing: Sharing = field(default_factory=Sharing)