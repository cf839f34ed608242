"""MIG device discovery helpers."""

import logging
import re

log = logging.getLogger(__name__)

NVIDIA_PROC_DRIVER_PATH = "/proc/driver/nvidia"
NVIDIA_CAPABILITIES_PATH = NVIDIA_PROC_DRIVER_PATH + "/capabilities"
NVCAPS_PROC_DRIVER_PATH = "/proc/driver/nvidia-caps"
NVCAPS_MIG_MINORS_PATH = NVCAPS_PROC_DRIVER_PATH + "/mig-minors"
NVCAPS_DEVICE_PATH = "/dev/nvidia-caps"


class DeviceInfo:
    """Information about the devices of a resource manager, split by MIG mode."""

    def __init__(self, manager):
        self._manager = manager
        self._devices_map = None

    def get_devices_map(self):
        """Return devices keyed by whether MIG is enabled; built on first use."""
        if self._devices_map is not None:
            return self._devices_map
        devices_map = {}
        for device in self._manager.get_devices():
            devices_map.setdefault(bool(device.is_mig_enabled()), []).append(device)
        self._devices_map = devices_map
        return devices_map

    def get_devices_with_mig_enabled(self):
        return list(self.get_devices_map().get(True, []))

    def get_devices_with_mig_disabled(self):
        return list(self.get_devices_map().get(False, []))

    def any_mig_enabled_device_is_empty(self):
        """Whether some MIG-enabled device has no MIG devices; true if there are none."""
        enabled = self.get_devices_map().get(True, [])
        if not enabled:
            return True
        return any(not device.get_mig_devices() for device in enabled)

    def get_all_mig_devices(self):
        """Return the MIG devices of all MIG-enabled devices."""
        return [
            mig
            for device in self.get_devices_map().get(True, [])
            for mig in device.get_mig_devices()
        ]


_INT = r"([+-]?\d+)"
_CI_ACCESS = re.compile(rf"gpu{_INT}/gi{_INT}/ci{_INT}/access\s*{_INT}")
_GI_ACCESS = re.compile(rf"gpu{_INT}/gi{_INT}/access\s*{_INT}")
_CONFIG = re.compile(rf"config\s*{_INT}")
_MONITOR = re.compile(rf"monitor\s*{_INT}")


def _parse_minors_line(line):
    match = _CI_ACCESS.match(line)
    if match:
        gpu, gi, ci, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/ci{ci}/access", minor
    match = _GI_ACCESS.match(line)
    if match:
        gpu, gi, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/access", minor
    match = _CONFIG.match(line)
    if match:
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/config", int(match.group(1))
    match = _MONITOR.match(line)
    if match:
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/monitor", int(match.group(1))
    raise ValueError(f"unparsable line: {line}")


def get_mig_capability_device_paths(minors_path=NVCAPS_MIG_MINORS_PATH):
    """Map MIG capability paths to their device node paths.

    A missing minors file means the machine is not MIG capable and yields
    an empty mapping.
    """
    try:
        with open(minors_path, encoding="utf-8") as minors_file:
            lines = minors_file.read().splitlines()
    except FileNotFoundError:
        return {}
    except OSError as err:
        raise OSError(f"error opening MIG minors file: {err}") from err

    paths = {}
    for line in lines:
        try:
            cap_path, minor = _parse_minors_line(line)
        except ValueError as err:
            log.error("Skipping line in MIG minors file: %s", err)
            continue
        paths[cap_path] = f"{NVCAPS_DEVICE_PATH}/nvidia-cap{minor}"
    return paths