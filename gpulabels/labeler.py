"""Construction of the complete set of node labelers."""

from .labels import merge
from .nvml import new_device_labeler
from .vgpu import VGPULabeler


def new_labelers(manager, vgpu, config):
    """Return the device and vGPU labelers combined into one."""
    return merge(new_device_labeler(manager, config), VGPULabeler(vgpu))