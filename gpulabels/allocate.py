"""Building container allocation responses for requested devices."""

import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import DEFAULT_CDI_ANNOTATION_PREFIX, IMEX_CHANNEL_ENV_VAR, Config

DEVICE_LIST_ENV_VAR = "NVIDIA_VISIBLE_DEVICES"
DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH = "/dev/null"
DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT = "/var/run/nvidia-container-devices"
DEVICE_PLUGIN_PATH = "/var/lib/kubelet/device-plugins/"
CDI_PLUGIN_NAME = "nvidia-device-plugin"

_MAX_ANNOTATION_NAME_LEN = 63
_ANNOTATION_NAME_CHARS = re.compile(r"^[A-Za-z0-9_.\-]+$")
_QUALIFIED_NAME = re.compile(r"^[^/=]+/[^/=]+=[^=]+$")


class DeviceListStrategy(str, Enum):
    """How the list of allocated devices is passed to a container."""

    ENVVAR = "envvar"
    VOLUME_MOUNTS = "volume-mounts"
    CDI_ANNOTATIONS = "cdi-annotations"
    CDI_CRI = "cdi-cri"

    def __str__(self):
        return self.value

    @property
    def is_cdi(self):
        return self in (DeviceListStrategy.CDI_ANNOTATIONS, DeviceListStrategy.CDI_CRI)


class DeviceListStrategies:
    """A set of device list strategies."""

    def __init__(self, strategies=()):
        selected = set()
        for strategy in strategies:
            try:
                selected.add(DeviceListStrategy(strategy))
            except ValueError:
                raise ValueError(f"invalid strategy: {strategy}") from None
        self._strategies = frozenset(selected)

    def includes(self, strategy):
        """Whether the given strategy is selected."""
        try:
            return DeviceListStrategy(strategy) in self._strategies
        except ValueError:
            return False

    def any_cdi_enabled(self):
        """Whether at least one CDI strategy is selected."""
        return any(s.is_cdi for s in self._strategies)

    def all_cdi_enabled(self):
        """Whether strategies are selected and all of them are CDI strategies."""
        return bool(self._strategies) and all(s.is_cdi for s in self._strategies)

    def __iter__(self):
        return iter(sorted(self._strategies, key=lambda s: s.value))

    def __len__(self):
        return len(self._strategies)

    def __eq__(self, other):
        if not isinstance(other, DeviceListStrategies):
            return NotImplemented
        return self._strategies == other._strategies

    def __hash__(self):
        return hash(self._strategies)

    def __repr__(self):
        return f"DeviceListStrategies({[s.value for s in self]!r})"


@dataclass
class Mount:
    """A host path mounted into the container."""

    container_path: str
    host_path: str


@dataclass
class CDIDevice:
    """A fully qualified CDI device name passed through the CRI."""

    name: str


@dataclass
class ContainerAllocateResponse:
    """What a container needs to use its allocated devices."""

    envs: Dict[str, str] = field(default_factory=dict)
    mounts: List[Mount] = field(default_factory=list)
    devices: List[Any] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)
    cdi_devices: List[CDIDevice] = field(default_factory=list)


def get_plugin_socket_path(resource_name):
    """Return the socket path of the plugin serving the resource."""
    name = str(resource_name).rpartition("/")[2]
    return posixpath.join(DEVICE_PLUGIN_PATH, "nvidia-" + name) + ".sock"


def _validate_annotation_name(name):
    if len(name) > _MAX_ANNOTATION_NAME_LEN:
        raise ValueError(f"invalid plugin+deviceID {name!r}, too long")
    if not name[0].isalnum() or not name[-1].isalnum():
        raise ValueError(
            f"invalid name {name!r}, should start and end with an alphanumeric character"
        )
    if not _ANNOTATION_NAME_CHARS.match(name):
        raise ValueError(f"invalid name {name!r}, contains invalid characters")


def update_annotations(annotations, plugin_name, device_id, devices):
    """Add the CDI annotation requesting the devices and return the annotations."""
    if not plugin_name:
        raise ValueError("invalid plugin name, empty")
    if not device_id:
        raise ValueError("invalid deviceID, empty")
    name = plugin_name + "_" + device_id.replace("/", "_")
    _validate_annotation_name(name)
    for device in devices:
        if not _QUALIFIED_NAME.match(device):
            raise ValueError(f"invalid qualified device name {device!r}")
    result = dict(annotations or {})
    result[DEFAULT_CDI_ANNOTATION_PREFIX + name] = ",".join(devices)
    return result


@dataclass
class AllocationResponder:
    """Fills in allocation responses according to the configured strategies.

    The CDI handler is any object with a qualified_name(kind, name) method.
    Each IMEX channel needs an id and a path.
    """

    config: Config = field(default_factory=Config)
    cdi_handler: Optional[Any] = None
    device_list_strategies: DeviceListStrategies = field(default_factory=DeviceListStrategies)
    cdi_annotation_prefix: str = DEFAULT_CDI_ANNOTATION_PREFIX
    imex_channels: List[Any] = field(default_factory=list)

    def _qualified_name(self, kind, name):
        if self.cdi_handler is None:
            raise ValueError("no CDI handler configured")
        return self.cdi_handler.qualified_name(kind, name)

    def update_response_for_cdi(self, response, response_id, *device_ids):
        """Add the CDI annotations or CDI devices requesting the devices."""
        devices = [self._qualified_name("gpu", i) for i in device_ids]
        devices += [self._qualified_name("imex-channel", c.id) for c in self.imex_channels]
        if self.config.gds_enabled:
            devices.append(self._qualified_name("gds", "all"))
        if self.config.mofed_enabled:
            devices.append(self._qualified_name("mofed", "all"))

        if not devices:
            return

        if self.device_list_strategies.includes(DeviceListStrategy.CDI_ANNOTATIONS):
            response.annotations = self.cdi_device_annotations(response_id, *devices)
        if self.device_list_strategies.includes(DeviceListStrategy.CDI_CRI):
            response.cdi_devices.extend(CDIDevice(name=d) for d in devices)

    def cdi_device_annotations(self, response_id, *devices):
        """Return the CDI annotations for the devices under the configured prefix."""
        try:
            annotations = update_annotations({}, CDI_PLUGIN_NAME, response_id, list(devices))
        except ValueError as err:
            raise ValueError(f"failed to add CDI annotations: {err}") from err

        if self.cdi_annotation_prefix == DEFAULT_CDI_ANNOTATION_PREFIX:
            return annotations

        def strip(key):
            if key.startswith(DEFAULT_CDI_ANNOTATION_PREFIX):
                return key[len(DEFAULT_CDI_ANNOTATION_PREFIX):]
            return key

        return {self.cdi_annotation_prefix + strip(k): v for k, v in annotations.items()}

    def update_response_for_device_list_env_var(self, response, *device_ids):
        """Set the visible-devices variable to the requested devices."""
        response.envs[DEVICE_LIST_ENV_VAR] = ",".join(device_ids)

    def update_response_for_imex_channels_env_var(self, response):
        """Set the IMEX channels variable if any channels are selected."""
        channel_ids = [c.id for c in self.imex_channels]
        if channel_ids:
            response.envs[IMEX_CHANNEL_ENV_VAR] = ",".join(channel_ids)

    def update_response_for_device_mounts(self, response, *device_ids):
        """Request the devices and IMEX channels through volume mounts."""
        self.update_response_for_device_list_env_var(
            response, DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT
        )
        root = DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT
        response.mounts.extend(
            Mount(
                container_path=posixpath.normpath(posixpath.join(root, i)),
                host_path=DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH,
            )
            for i in device_ids
        )
        response.mounts.extend(
            Mount(
                container_path=posixpath.normpath(posixpath.join(root, "imex", c.id)),
                host_path=DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH,
            )
            for c in self.imex_channels
        )