"""Writing node labels to a stream or to a file."""

import logging
import os
import sys
import tempfile
from abc import ABC, abstractmethod

log = logging.getLogger(__name__)

_FILE_MODE = 0o644


class Outputer(ABC):
    """A destination for a set of labels."""

    @abstractmethod
    def output(self, labels):
        """Write the labels to the destination."""


class ToWriter(Outputer):
    """Writes labels as key=value lines to a text stream."""

    def __init__(self, stream):
        self.stream = stream

    def output(self, labels):
        for key, value in labels.items():
            self.stream.write(f"{key}={value}\n")

    def __repr__(self):
        return f"ToWriter({self.stream!r})"


class ToFile(Outputer):
    """Writes labels as key=value lines to a file, replacing it atomically."""

    def __init__(self, path):
        self.path = os.fspath(path)

    def output(self, labels):
        log.info("Writing labels to output file %s", self.path)
        content = "".join(f"{key}={value}\n" for key, value in labels.items())
        directory = os.path.dirname(self.path) or "."
        try:
            handle = tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix="." + os.path.basename(self.path),
                delete=False,
            )
        except OSError as err:
            raise OSError(f"error atomically writing file '{self.path}': {err}") from err
        try:
            with handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(handle.name, _FILE_MODE)
            os.replace(handle.name, self.path)
        except OSError as err:
            try:
                os.unlink(handle.name)
            except OSError:
                pass
            raise OSError(f"error atomically writing file '{self.path}': {err}") from err

    def __repr__(self):
        return f"ToFile({self.path!r})"


def to_file(path):
    """Return an outputer for the path; an empty path means standard output."""
    if not path:
        return ToWriter(sys.stdout)
    return ToFile(path)