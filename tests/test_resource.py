from dataclasses import dataclass, field
from typing import Optional

import pytest

from gpulabels.config import (
    Config,
    ReplicatedResource,
    ReplicatedResources,
    Sharing,
)
from gpulabels.resource import (
    ResourceLabeler,
    get_arch_family,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
    sanitise,
)


@dataclass
class _Device:
    name: str = "MOCKMODEL"
    memory_mb: int = 300
    compute: tuple = (8, 0)
    attributes: dict = field(default_factory=dict)
    parent: Optional["_Device"] = None

    def get_name(self):
        return self.name

    def get_total_memory_mb(self):
        return self.memory_mb

    def get_cuda_compute_capability(self):
        return self.compute

    def get_attributes(self):
        return dict(self.attributes)

    def get_device_handle_from_mig_device_handle(self):
        return self.parent


def _full_gpu():
    return _Device()


def _mig_device(gi, ci, memory_mb):
    parent = _Device()
    return _Device(
        name=f"{gi}g.{memory_mb}gb",
        memory_mb=memory_mb,
        compute=(0, 0),
        attributes={
            "memory": memory_mb,
            "multiprocessors": 0,
            "slices.gi": gi,
            "slices.ci": ci,
            "engines.copy": 0,
            "engines.decoder": 0,
            "engines.encoder": 0,
            "engines.jpeg": 0,
            "engines.ofa": 0,
        },
        parent=parent,
    )


def _gpu_labels(replicas, strategy, product):
    return {
        "nvidia.com/gpu.count": "1",
        "nvidia.com/gpu.replicas": replicas,
        "nvidia.com/gpu.sharing-strategy": strategy,
        "nvidia.com/gpu.memory": "300",
        "nvidia.com/gpu.product": product,
        "nvidia.com/gpu.family": "ampere",
        "nvidia.com/gpu.compute.major": "8",
        "nvidia.com/gpu.compute.minor": "0",
    }


def _mig_labels(prefix, replicas, strategy, product):
    return {
        f"{prefix}.count": "1",
        f"{prefix}.replicas": replicas,
        f"{prefix}.sharing-strategy": strategy,
        f"{prefix}.memory": "300",
        f"{prefix}.product": product,
        f"{prefix}.multiprocessors": "0",
        f"{prefix}.slices.gi": "1",
        f"{prefix}.slices.ci": "2",
        f"{prefix}.engines.copy": "0",
        f"{prefix}.engines.decoder": "0",
        f"{prefix}.engines.encoder": "0",
        f"{prefix}.engines.jpeg": "0",
        f"{prefix}.engines.ofa": "0",
    }


def _resources(*entries):
    return ReplicatedResources(resources=[ReplicatedResource(**e) for e in entries])


GPU_CASES = [
    ("zero count returns empty", 0, Sharing(), {}),
    ("no sharing", 1, Sharing(), _gpu_labels("1", "none", "MOCKMODEL")),
    (
        "time-slicing ignores non-matching resource",
        1,
        Sharing(time_slicing=_resources({"name": "nvidia.com/not-gpu", "replicas": 2})),
        _gpu_labels("1", "none", "MOCKMODEL"),
    ),
    (
        "time-slicing appends suffix and doubles count",
        1,
        Sharing(time_slicing=_resources({"name": "nvidia.com/gpu", "replicas": 2})),
        _gpu_labels("2", "time-slicing", "MOCKMODEL-SHARED"),
    ),
    (
        "time-slicing renamed does not append suffix and doubles count",
        1,
        Sharing(
            time_slicing=_resources(
                {"name": "nvidia.com/gpu", "rename": "nvidia.com/gpu.shared", "replicas": 2}
            )
        ),
        _gpu_labels("2", "time-slicing", "MOCKMODEL"),
    ),
    (
        "mps ignores non-matching resource",
        1,
        Sharing(mps=_resources({"name": "nvidia.com/not-gpu", "replicas": 2})),
        _gpu_labels("1", "none", "MOCKMODEL"),
    ),
    (
        "mps appends suffix and doubles count",
        1,
        Sharing(mps=_resources({"name": "nvidia.com/gpu", "replicas": 2})),
        _gpu_labels("2", "mps", "MOCKMODEL-SHARED"),
    ),
    (
        "mps renamed does not append suffix and doubles count",
        1,
        Sharing(
            mps=_resources(
                {"name": "nvidia.com/gpu", "rename": "nvidia.com/gpu.shared", "replicas": 2}
            )
        ),
        _gpu_labels("2", "mps", "MOCKMODEL"),
    ),
]


@pytest.mark.parametrize(
    "count,sharing,expected",
    [case[1:] for case in GPU_CASES],
    ids=[case[0] for case in GPU_CASES],
)
def test_gpu_resource_labeler(count, sharing, expected):
    config = Config(sharing=sharing)
    labeler = new_gpu_resource_labeler(config, _full_gpu(), count)
    assert labeler.labels() == expected


def test_gpu_resource_labeler_without_sharing():
    labels = new_gpu_resource_labeler_without_sharing(_full_gpu(), 2).labels()
    assert labels["nvidia.com/gpu.replicas"] == "0"
    assert labels["nvidia.com/gpu.sharing-strategy"] == "none"
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"
    assert labels["nvidia.com/gpu.count"] == "2"


def test_gpu_without_memory_or_compute_has_no_such_labels():
    device = _Device(memory_mb=0, compute=(0, 0))
    labels = new_gpu_resource_labeler(Config(), device, 1).labels()
    assert "nvidia.com/gpu.memory" not in labels
    assert "nvidia.com/gpu.family" not in labels
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"


SANITISE_CASES = [
    ("a space separated string", "a-space-separated-string"),
    ("some(thing)else", "somethingelse"),
    ("some ( thing )else", "some-thing-else"),
    ("NVIDIA-TITAN-X-(Pascal)", "NVIDIA-TITAN-X-Pascal"),
    (" input  with multiple   spaces   ", "input-with-multiple-spaces"),
    ("some [ / thing / ]else", "some-thing-else"),
    ("some / thing /else", "some-thing-else"),
    ("some-thing.else_new", "some-thing.else_new"),
]


@pytest.mark.parametrize("text,expected", SANITISE_CASES)
def test_sanitise(text, expected):
    assert sanitise(text) == expected


MIG_CASES = [
    ("zero count returns empty", "", 0, ReplicatedResources(), {}),
    (
        "no sharing",
        "nvidia.com/gpu",
        1,
        ReplicatedResources(),
        _mig_labels("nvidia.com/gpu", "1", "none", "MOCKMODEL-MIG-1g.300gb"),
    ),
    (
        "shared appends suffix and doubles count",
        "nvidia.com/gpu",
        1,
        _resources({"name": "nvidia.com/gpu", "replicas": 2}),
        _mig_labels("nvidia.com/gpu", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb-SHARED"),
    ),
    (
        "renamed does not append suffix and doubles count",
        "nvidia.com/gpu",
        1,
        _resources({"name": "nvidia.com/gpu", "rename": "nvidia.com/gpu.shared", "replicas": 2}),
        _mig_labels("nvidia.com/gpu", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb"),
    ),
    (
        "mig mixed appends shared",
        "nvidia.com/mig-1g.1gb",
        1,
        _resources(
            {"name": "nvidia.com/gpu", "rename": "nvidia.com/gpu.shared", "replicas": 2},
            {"name": "nvidia.com/mig-1g.1gb", "replicas": 2},
        ),
        _mig_labels(
            "nvidia.com/mig-1g.1gb", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb-SHARED"
        ),
    ),
    (
        "mig mixed rename does not append",
        "nvidia.com/mig-1g.1gb",
        1,
        _resources(
            {
                "name": "nvidia.com/mig-1g.1gb",
                "rename": "nvidia.com/mig-1g.1gb.shared",
                "replicas": 2,
            }
        ),
        _mig_labels("nvidia.com/mig-1g.1gb", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb"),
    ),
]


@pytest.mark.parametrize(
    "resource_name,count,time_slicing,expected",
    [case[1:] for case in MIG_CASES],
    ids=[case[0] for case in MIG_CASES],
)
def test_mig_resource_labeler(resource_name, count, time_slicing, expected):
    config = Config(sharing=Sharing(time_slicing=time_slicing))
    labeler = new_mig_resource_labeler(resource_name, config, _mig_device(1, 2, 300), count)
    assert labeler.labels() == expected


@pytest.mark.parametrize(
    "major,minor,family",
    [
        (1, 0, "tesla"),
        (2, 0, "fermi"),
        (3, 5, "kepler"),
        (5, 2, "maxwell"),
        (6, 1, "pascal"),
        (7, 0, "volta"),
        (7, 5, "turing"),
        (8, 6, "ampere"),
        (9, 0, "hopper"),
        (4, 0, "undefined"),
        (10, 0, "undefined"),
    ],
)
def test_get_arch_family(major, minor, family):
    assert get_arch_family(major, minor) == family


def test_resource_labeler_key_and_single():
    labeler = ResourceLabeler("nvidia.com/gpu")
    assert labeler.key("count") == "nvidia.com/gpu.count"
    assert labeler.single("count", 3) == {"nvidia.com/gpu.count": "3"}
    assert labeler.single("flag", True) == {"nvidia.com/gpu.flag": "true"}


def test_update_label_overwrites():
    labeler = ResourceLabeler("nvidia.com/gpu")
    labels = labeler.single("count", 1)
    labeler.update_label(labels, "count", 0)
    assert labels == {"nvidia.com/gpu.count": "0"}


def test_product_label():
    labeler = ResourceLabeler("nvidia.com/gpu")
    assert labeler.product_label() == {}
    assert labeler.product_label("", "") == {}
    assert labeler.product_label("MOCKMODEL", "MIG", "INVALID") == {
        "nvidia.com/gpu.product": "MOCKMODEL-MIG-INVALID"
    }


def test_replicas_and_replication_info():
    disabled = ResourceLabeler("nvidia.com/gpu")
    assert disabled.replicas() == 0
    assert disabled.replication_info() is None
    assert not disabled.is_shared()

    entry = {"name": "nvidia.com/gpu", "rename": "nvidia.com/gpu.shared", "replicas": 4}
    shared = ResourceLabeler(
        "nvidia.com/gpu", Sharing(time_slicing=_resources(entry))
    )
    assert shared.replicas() == 4
    assert shared.replication_info() == ReplicatedResource(**entry)
    assert shared.is_shared()
    assert shared.is_renamed()
    assert shared.product_name("MOCKMODEL") == "MOCKMODEL"

    unmatched = ResourceLabeler("nvidia.com/gpu", Sharing())
    assert unmatched.replicas() == 1
    assert not unmatched.is_renamed()