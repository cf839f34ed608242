"""Labels describing vGPU devices on the node."""

import logging

from .labels import Labeler, Labels

log = logging.getLogger(__name__)


class VGPULabeler(Labeler):
    """Produces vGPU labels from a vGPU library exposing devices()."""

    def __init__(self, lib):
        self.lib = lib

    def labels(self):
        """Return the vGPU labels; no labels if the devices cannot be listed."""
        try:
            devices = self.lib.devices()
        except Exception as err:  # the library may fail in any way
            log.error("unable to get vGPU devices: %s", err)
            return Labels()

        labels = Labels({"nvidia.com/vgpu.present": "true" if devices else "false"})
        for device in devices:
            try:
                info = device.get_info()
            except Exception as err:
                raise RuntimeError(f"error getting vGPU device info: {err}") from err
            labels["nvidia.com/vgpu.host-driver-version"] = info.host_driver_version
            labels["nvidia.com/vgpu.host-driver-branch"] = info.host_driver_branch
        return labels

    def __repr__(self):
        return f"VGPULabeler({self.lib!r})"