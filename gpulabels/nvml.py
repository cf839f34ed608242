"""Labelers built from the devices reported by a resource manager."""

import contextlib
import logging

from .config import SharingStrategy
from .imex_labels import new_imex_labeler
from .labels import Empty, Labels, merge, new_machine_type_labeler
from .mig_strategy import new_resource_labeler

log = logging.getLogger(__name__)

PCI_VGA_CONTROLLER_CLASS = 0x030000
PCI_3D_CONTROLLER_CLASS = 0x030200


class MPSSharingNotSupportedError(RuntimeError):
    """MPS sharing was requested where it cannot be used."""


def _bool_label(value):
    return "true" if value else "false"


def new_device_labeler(manager, config):
    """Return the combined labeler for all devices of the manager.

    The manager is initialised for the duration of the call and shut down
    afterwards.
    """
    manager.init()
    try:
        devices = manager.get_devices()
        if not devices:
            return Empty()
        return merge(
            new_machine_type_labeler(config.machine_type_file),
            new_version_labeler(manager),
            new_mig_capability_labeler(manager),
            new_sharing_labeler(manager, config),
            new_resource_labeler(manager, config),
            new_gpu_mode_labeler(devices),
            new_imex_labeler(config, devices),
        )
    finally:
        with contextlib.suppress(Exception):
            manager.shutdown()


def new_version_labeler(manager):
    """Return the driver and CUDA version labels."""
    driver_version = manager.get_driver_version()
    parts = driver_version.split(".")
    if not 2 <= len(parts) <= 3:
        raise ValueError(
            f'error getting driver version: Version "{driver_version}" '
            'does not match format "X.Y[.Z]"'
        )
    major, minor = parts[0], parts[1]
    revision = parts[2] if len(parts) > 2 else ""

    cuda_major, cuda_minor = manager.get_cuda_driver_version()
    return Labels(
        {
            "nvidia.com/cuda.driver.major": major,
            "nvidia.com/cuda.driver.minor": minor,
            "nvidia.com/cuda.driver.rev": revision,
            "nvidia.com/cuda.runtime.major": str(cuda_major),
            "nvidia.com/cuda.runtime.minor": str(cuda_minor),
            "nvidia.com/cuda.driver-version.major": major,
            "nvidia.com/cuda.driver-version.minor": minor,
            "nvidia.com/cuda.driver-version.revision": revision,
            "nvidia.com/cuda.driver-version.full": driver_version,
            "nvidia.com/cuda.runtime-version.major": str(cuda_major),
            "nvidia.com/cuda.runtime-version.minor": str(cuda_minor),
            "nvidia.com/cuda.runtime-version.full": f"{cuda_major}.{cuda_minor}",
        }
    )


def new_mig_capability_labeler(manager):
    """Return the mig.capable label: true if any device is MIG capable."""
    devices = manager.get_devices()
    if not devices:
        return Empty()
    capable = any(device.is_mig_capable() for device in devices)
    return Labels({"nvidia.com/mig.capable": _bool_label(capable)})


def new_sharing_labeler(manager, config):
    """Return the mps.capable label for the configured sharing strategy."""
    if config is None or config.sharing.sharing_strategy() != SharingStrategy.MPS:
        return Labels({"nvidia.com/mps.capable": "false"})
    return Labels({"nvidia.com/mps.capable": _bool_label(is_mps_capable(manager))})


def is_mps_capable(manager):
    """Return True if MPS can be used; raise if any device has MIG enabled."""
    for device in manager.get_devices():
        if device.is_mig_enabled():
            raise MPSSharingNotSupportedError("MPS sharing is not supported for mig devices")
    return True


def new_gpu_mode_labeler(devices):
    """Return the gpu.mode label: graphics, compute or unknown."""
    classes = list(dict.fromkeys(device.get_pci_class() for device in devices))
    return Labels({"nvidia.com/gpu.mode": get_mode_for_classes(classes)})


def get_mode_for_classes(classes):
    """Return the GPU mode shared by all PCI classes, or 'unknown'."""
    if not classes:
        return "unknown"
    first = classes[0]
    if any(cls != first for cls in classes):
        log.info(
            "Not all GPU devices belong to the same class %s",
            [f"{cls:#06x}" for cls in classes],
        )
        return "unknown"
    if first == PCI_VGA_CONTROLLER_CLASS:
        return "graphics"
    if first == PCI_3D_CONTROLLER_CLASS:
        return "compute"
    return "unknown"