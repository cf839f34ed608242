"""Labelers describing full GPU and MIG device resources."""

import re
from dataclasses import dataclass
from typing import Optional

from .config import Sharing, SharingStrategy
from .labels import Empty, Labels, merge

FULL_GPU_RESOURCE_NAME = "nvidia.com/gpu"

_UNWANTED = re.compile(r"[^A-Za-z0-9\-_. ]")


def _format_value(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class ResourceLabeler:
    """Builds labels keyed by a fully qualified resource name.

    A sharing of None means sharing is disabled for the resource.
    """

    resource_name: str
    sharing: Optional[Sharing] = None

    def key(self, suffix):
        """Return the label key <resource-name>.<suffix>."""
        return f"{self.resource_name}.{suffix}"

    def single(self, suffix, value):
        """Return a single label for the resource."""
        return self.labels({suffix: value})

    def labels(self, suffix_values):
        """Return labels for each suffix and value of the mapping."""
        result = Labels()
        for suffix, value in suffix_values.items():
            self.update_label(result, suffix, value)
        return result

    def update_label(self, labels, suffix, value):
        """Set <resource-name>.<suffix> in labels to the formatted value."""
        labels[self.key(suffix)] = _format_value(value)

    def base_labeler(self, count, *parts):
        """Return the product, count, replicas and sharing-strategy labels."""
        replicas = self.replicas()
        strategy = SharingStrategy.NONE
        if self.sharing is not None and replicas > 1:
            strategy = self.sharing.sharing_strategy()
        return self.labels(
            {
                "product": self.product_name(*parts),
                "count": count,
                "replicas": replicas,
                "sharing-strategy": strategy,
            }
        )

    def product_label(self, *parts):
        """Return the product label alone, or no labels if the name is empty."""
        name = self.product_name(*parts)
        if not name:
            return Labels()
        return self.single("product", name)

    def product_name(self, *parts):
        """Join the sanitised non-empty parts, marking shared resources."""
        stripped = [sanitise(p) for p in parts if p]
        if not stripped:
            return ""
        if self.is_shared() and not self.is_renamed():
            stripped.append("SHARED")
        return "-".join(stripped)

    def replicas(self):
        """Return the replica count: 0 without sharing, otherwise at least 1."""
        if self.sharing is None:
            return 0
        info = self.replication_info()
        if info is not None and info.replicas > 0:
            return info.replicas
        return 1

    def is_shared(self):
        info = self.replication_info()
        return info is not None and info.replicas > 1

    def is_renamed(self):
        info = self.replication_info()
        return info is not None and bool(info.rename)

    def replication_info(self):
        """Return the replicated resource entry for this resource, if any."""
        if self.sharing is None:
            return None
        for resource in self.sharing.replicated_resources().resources:
            if resource.name == self.resource_name:
                return resource
        return None


def _new_resource_labeler(resource_name, config):
    sharing = config.sharing if config is not None else None
    return ResourceLabeler(resource_name=resource_name, sharing=sharing)


def new_gpu_resource_labeler_without_sharing(device, count):
    """Return a labeler for a full GPU that applies no sharing information."""
    return new_gpu_resource_labeler(None, device, count)


def new_gpu_resource_labeler(config, device, count):
    """Return a labeler for count full GPUs like the given device."""
    if count == 0:
        return Empty()

    model = device.get_name()
    total_memory_mb = device.get_total_memory_mb()
    labeler = _new_resource_labeler(FULL_GPU_RESOURCE_NAME, config)
    architecture = _architecture_labels(labeler, device)

    memory = Empty()
    if total_memory_mb != 0:
        memory = labeler.single("memory", total_memory_mb)

    return merge(labeler.base_labeler(count, model), memory, architecture)


def new_mig_resource_labeler(resource_name, config, device, count):
    """Return a labeler for count MIG devices like the given one."""
    if count == 0:
        return Empty()

    parent = device.get_device_handle_from_mig_device_handle()
    model = parent.get_name()
    mig_profile = device.get_name()
    labeler = _new_resource_labeler(resource_name, config)
    attributes = labeler.labels(device.get_attributes())

    return merge(labeler.base_labeler(count, model, "MIG", mig_profile), attributes)


def _architecture_labels(labeler, device):
    major, minor = device.get_cuda_compute_capability()
    if major == 0:
        return Labels()
    return labeler.labels(
        {
            "family": get_arch_family(major, minor),
            "compute.major": major,
            "compute.minor": minor,
        }
    )


_FAMILIES = {
    1: "tesla",
    2: "fermi",
    3: "kepler",
    5: "maxwell",
    6: "pascal",
    8: "ampere",
    9: "hopper",
}


def get_arch_family(compute_major, compute_minor):
    """Return the architecture family name for a CUDA compute capability."""
    if compute_major == 7:
        return "volta" if compute_minor < 5 else "turing"
    return _FAMILIES.get(compute_major, "undefined")


def sanitise(text):
    """Drop unsupported characters and join the remaining words with '-'."""
    return "-".join(_UNWANTED.sub("", text).split())