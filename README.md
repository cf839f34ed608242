# gpulabels

`gpulabels` builds Kubernetes node labels that describe the GPUs on a node.
It also fills in the allocation responses that a device plugin returns for
containers that request those GPUs.

## What it does

- **Node labels.** `gpulabels` takes a resource manager that lists the
  node's devices and produces labels from it:
  - `nvidia.com/gpu.product`, `nvidia.com/gpu.count`, `nvidia.com/gpu.replicas`,
    `nvidia.com/gpu.memory` and `nvidia.com/gpu.family`
  - CUDA driver and runtime versions (`gpulabels.nvml.new_version_labeler`)
  - MIG capability and MPS capability
  - GPU mode, either graphics or compute (`gpulabels.nvml.new_gpu_mode_labeler`)
  - IMEX clique and domain (`gpulabels.imex_labels.new_imex_labeler`)
  - vGPU host driver details (`gpulabels.vgpu.VGPULabeler`)
  - machine type (`gpulabels.labels.new_machine_type_labeler`)
  - a timestamp (`gpulabels.labels.new_timestamp_labeler`)
- **MIG strategies.** The `none`, `single` and `mixed` strategies
  (`gpulabels.mig_strategy.MigStrategy`) decide how MIG devices are reported.
  If a configuration is not valid for the `single` strategy, the product
  label ends in `MIG-INVALID`.
- **Sharing.** Time-slicing and MPS replication settings
  (`gpulabels.config.Sharing`) change three things:
  - the replica count
  - the `sharing-strategy` label
  - the `-SHARED` suffix on the product name, which renamed resources do not get
- **Output.** Labels are written as `key=value` lines, either to a stream
  (`gpulabels.output.ToWriter`) or to a file (`gpulabels.output.ToFile`).
  A file is replaced atomically.
- **Allocation responses.** `gpulabels.allocate.AllocationResponder` fills a
  `ContainerAllocateResponse` with any of the following:
  - CDI annotations, with a configurable annotation prefix
  - CDI devices
  - the `NVIDIA_VISIBLE_DEVICES` variable
  - volume mounts under `/var/run/nvidia-container-devices`
  - the `NVIDIA_IMEX_CHANNELS` variable

  The response depends on the selected `DeviceListStrategies`.
- **Helpers.**
  - `gpulabels.mig.get_mig_capability_device_paths` reads the MIG minors file.
  - `gpulabels.imex.get_channels` selects the configured IMEX channels that
    exist as character devices.
  - `gpulabels.version.get_version_string` reports the version.

## Installation

From a checkout of the package:

```
pip install .
```

The package has no dependencies outside the standard library. It requires
Python 3.10 or later.

## Usage

Every labeler has one method, `.labels()`, which returns a `Labels` mapping.
`merge` combines labelers into one. When two labelers set the same key, the
later one wins.

```python
from gpulabels.labels import Labels, merge, mig_strategy_labeler
from gpulabels.output import to_file

labeler = merge(
    Labels({"nvidia.com/gpu.machine": "example-machine"}),
    mig_strategy_labeler("single"),
)
to_file("").output(labeler.labels())   # an empty path writes to standard output
```

Product names are cleaned before they are used in label values:

```python
from gpulabels.resource import sanitise

sanitise("NVIDIA-TITAN-X-(Pascal)")   # "NVIDIA-TITAN-X-Pascal"
```

`gpulabels.labeler.new_labelers(manager, vgpu, config)` produces the full set
of node labels. The caller supplies all three arguments:

- **`manager`** provides these methods:
  - `init()` and `shutdown()`
  - `get_devices()`
  - `get_driver_version()`
  - `get_cuda_driver_version()`
- **Each device** provides these methods:
  - `get_name()` and `get_total_memory_mb()`
  - `get_cuda_compute_capability()`
  - `is_mig_enabled()`, `is_mig_capable()` and `get_mig_devices()`
  - `get_pci_class()`
  - `is_fabric_attached()` and `get_fabric_ids()`
  - MIG devices also provide `get_attributes()` and
    `get_device_handle_from_mig_device_handle()`
- **`vgpu`** provides `devices()`. Each of its devices has `get_info()`,
  which returns an object with `host_driver_version` and
  `host_driver_branch`.
- **`config`** is a `gpulabels.config.Config`.

For the IMEX domain label, `gpulabels` looks for the nodes configuration
file `/etc/nvidia-imex/nodes_config.cfg` under each of these roots:

- `/`
- `/config`
- the configured `container_driver_root`

The domain identifier is a name-based UUID computed from the sorted IP
addresses in that file (`gpulabels.imex_labels.generate_content_uuid`).

## What it does not do

- It does not discover devices. It has no bindings to the GPU management
  library, and the resource manager and device objects come from the caller.
- It runs no device plugin server. There is no gRPC service, no
  registration with the kubelet and no health checking. It only builds
  allocation responses.
- It does not talk to the Kubernetes API. Labels can go to a stream or a
  file, but not to NodeFeature objects.
- It has no command-line program and no labelling loop. It is a library
  only.

## Running the tests

```
pip install -e ".[test]"
pytest
```