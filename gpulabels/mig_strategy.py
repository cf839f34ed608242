"""Resource labelers that depend on the configured MIG strategy."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .labels import Empty, LabelerList, Labels, merge, mig_strategy_labeler
from .mig import DeviceInfo
from .resource import (
    FULL_GPU_RESOURCE_NAME,
    ResourceLabeler,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
)

log = logging.getLogger(__name__)


class MigStrategy(str, Enum):
    """How MIG devices are exposed as resources."""

    NONE = "none"
    SINGLE = "single"
    MIXED = "mixed"

    def __str__(self):
        return self.value


@dataclass
class _MigResource:
    """A MIG device type: its resource name, a representative device and a count."""

    name: str
    device: Any
    count: int = 0


def new_resource_labeler(manager, config):
    """Return a labeler for the GPU resources of the manager.

    This covers full GPUs and, unless the MIG strategy is 'none', the labels
    specific to the configured MIG strategy.
    """
    if not manager.get_devices():
        return Empty()

    full_gpu_labeler = new_gpu_labelers(manager, config)
    if config.mig_strategy == MigStrategy.NONE:
        return full_gpu_labeler

    return merge(full_gpu_labeler, new_mig_labeler(manager, config))


def new_mig_labeler(manager, config):
    """Return a labeler for MIG devices according to the configured strategy."""
    strategy = config.mig_strategy
    if strategy == MigStrategy.NONE:
        labeler = Empty()
    elif strategy == MigStrategy.SINGLE:
        labeler = _new_mig_strategy_single_labeler(manager, config)
    elif strategy == MigStrategy.MIXED:
        labeler = _new_mig_strategy_mixed_labeler(manager, config)
    else:
        raise ValueError(f"unknown strategy: {strategy}")

    return merge(mig_strategy_labeler(str(strategy)), labeler)


def new_gpu_labelers(manager, config):
    """Return the labels for the full GPUs of the manager.

    MIG-enabled GPUs are labelled without sharing information; full GPUs of
    the same model override them.
    """
    devices_map = DeviceInfo(manager).get_devices_map()
    if not devices_map:
        raise RuntimeError("no GPU devices detected")

    counts = {}
    mig_enabled_devices = {}
    for device in devices_map.get(True, []):
        name = device.get_name()
        mig_enabled_devices[name] = device
        counts[name] = counts.get(name, 0) + 1

    full_gpus = {}
    for device in devices_map.get(False, []):
        name = device.get_name()
        full_gpus[name] = device
        counts[name] = counts.get(name, 0) + 1

    if len(counts) > 1:
        log.warning("Multiple device types detected: %s", list(counts))

    labelers = LabelerList()
    for name, device in mig_enabled_devices.items():
        labelers.append(new_gpu_resource_labeler_without_sharing(device, counts[name]))
    for name, device in full_gpus.items():
        labelers.append(new_gpu_resource_labeler(config, device, counts[name]))

    return labelers.labels()


def _collect_mig_resources(migs, resource_name_for):
    resources = {}
    for mig in migs:
        name = mig.get_name()
        resource = resources.get(name)
        if resource is None:
            resource = _MigResource(name=resource_name_for(name), device=mig)
            resources[name] = resource
        resource.count += 1
    return resources


def _new_mig_strategy_single_labeler(manager, config):
    device_info = DeviceInfo(manager)
    mig_enabled = device_info.get_devices_with_mig_enabled()
    if not mig_enabled:
        return Empty()

    if device_info.any_mig_enabled_device_is_empty():
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "at least one MIG device is enabled but empty"
        )

    if device_info.get_devices_with_mig_disabled():
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "devices with MIG enabled and disable detected"
        )

    resources = _collect_mig_resources(
        device_info.get_all_mig_devices(), lambda _name: FULL_GPU_RESOURCE_NAME
    )
    if len(resources) != 1:
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "more than one MIG device type present on node"
        )

    return _new_mig_device_labelers(resources, config)


def new_invalid_mig_strategy_labeler(device, reason):
    """Return the labels that mark an invalid configuration for mig-strategy=single."""
    log.warning("Invalid configuration detected for mig-strategy=single: %s", reason)

    model = device.get_name()
    labeler = ResourceLabeler(resource_name=FULL_GPU_RESOURCE_NAME)
    labels = labeler.product_label(model, "MIG", "INVALID")
    labeler.update_label(labels, "count", 0)
    labeler.update_label(labels, "replicas", 0)
    labeler.update_label(labels, "sharing-strategy", "")
    labeler.update_label(labels, "memory", 0)
    return labels


def _new_mig_strategy_mixed_labeler(manager, config):
    # Devices with MIG enabled but no MIG devices configured are ignored here.
    resources = _collect_mig_resources(
        DeviceInfo(manager).get_all_mig_devices(),
        lambda name: "nvidia.com/mig-" + name,
    )
    return _new_mig_device_labelers(resources, config)


def _new_mig_device_labelers(resources, config):
    return LabelerList(
        new_mig_resource_labeler(r.name, config, r.device, r.count)
        for r in resources.values()
    )


__all__ = [
    "MigStrategy",
    "new_resource_labeler",
    "new_mig_labeler",
    "new_gpu_labelers",
    "new_invalid_mig_strategy_labeler",
    "Labels",
]