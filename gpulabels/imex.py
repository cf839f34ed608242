"""Selection of IMEX channels."""

import logging
import os
import posixpath
import re
import stat
from dataclasses import dataclass

log = logging.getLogger(__name__)

IMEX_CHANNELS_DIR = "/dev/nvidia-caps-imex-channels"


def _join(*parts):
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    return posixpath.normpath(re.sub("/+", "/", joined))


@dataclass
class Channel:
    """An IMEX channel and where its device node is expected."""

    id: str
    path: str
    host_path: str

    def _check(self):
        """Return whether the channel exists and the problems found on the way.

        Both the host path and the container path are tried: where the node
        shows up depends on how it was made available to the container.
        """
        paths = [self.host_path]
        if self.host_path != self.path:
            paths.append(self.path)
        problems = []
        for path in paths:
            try:
                mode = os.stat(path).st_mode
            except FileNotFoundError:
                continue
            except OSError as err:
                problems.append(str(err))
                continue
            if not stat.S_ISCHR(mode):
                problems.append(f"{path} is not a character device")
                continue
            return True, []
        return False, problems

    def exists(self):
        """Whether the channel's device node exists as a character device."""
        found, _ = self._check()
        return found


def get_channels(config, dev_root):
    """Return the IMEX channels selected in the config that exist.

    Missing channels are skipped, unless the config marks them required,
    in which case a RuntimeError is raised.
    """
    channels = []
    for channel_id in config.imex.channel_ids:
        ident = str(channel_id)
        name = "channel" + ident
        path = _join(IMEX_CHANNELS_DIR, name)
        channel = Channel(id=ident, path=path, host_path=_join(dev_root, path))
        found, problems = channel._check()
        if not found:
            if config.imex.required:
                message = "\n".join(
                    [*problems, f"requested IMEX channel {name} does not exist"]
                )
                raise RuntimeError(message)
            log.warning("Ignoring requested IMEX channel %s (%s)", name, "; ".join(problems))
            continue
        log.info("Selecting IMEX channel %s", name)
        channels.append(channel)
    return channels