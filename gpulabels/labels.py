"""Label sets and the basic labelers that produce them."""

import logging
import time
from abc import ABC, abstractmethod

log = logging.getLogger(__name__)

MACHINE_TYPE_UNKNOWN = "unknown"
_MIG_STRATEGY_NONE = "none"


class Labeler(ABC):
    """Something that produces a set of node labels."""

    @abstractmethod
    def labels(self):
        """Return the labels as a Labels mapping."""


class Labels(dict, Labeler):
    """A mapping of label keys to values; it is its own labeler."""

    def labels(self):
        return self


class Empty(Labeler):
    """A labeler that produces no labels."""

    def labels(self):
        return Labels()

    def __repr__(self):
        return "Empty()"


class LabelerList(list, Labeler):
    """A list of labelers acting as one; later labels override earlier ones."""

    def labels(self):
        merged = Labels()
        for labeler in self:
            merged.update(labeler.labels() or {})
        return merged


def merge(*labelers):
    """Combine several labelers into a single composite labeler."""
    return LabelerList(labelers)


def mig_strategy_labeler(strategy):
    """Return a labeler for the MIG strategy label; none for the 'none' strategy."""
    if strategy == _MIG_STRATEGY_NONE:
        return Empty()
    return Labels({"nvidia.com/mig.strategy": strategy})


def new_timestamp_labeler(config):
    """Return a labeler holding the current Unix time, unless timestamps are disabled."""
    if config.no_timestamp:
        return Empty()
    return Labels({"nvidia.com/gfd.timestamp": str(int(time.time()))})


def new_machine_type_labeler(machine_type_path):
    """Return a labeler for the machine type read from the given file."""
    from .resource import sanitise

    try:
        machine_type = get_machine_type(machine_type_path)
    except OSError as err:
        log.warning("Error getting machine type from %s: %s", machine_type_path, err)
        machine_type = MACHINE_TYPE_UNKNOWN
    return Labels({"nvidia.com/gpu.machine": sanitise(machine_type)})


def get_machine_type(path):
    """Read the machine type from a file; an empty path means unknown."""
    if not path:
        return MACHINE_TYPE_UNKNOWN
    try:
        with open(path, encoding="utf-8", errors="replace") as machine_file:
            data = machine_file.read()
    except OSError as err:
        raise OSError(f"could not open machine type file: {err}") from err
    return data.strip()