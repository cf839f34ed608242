import os

import pytest

from gpulabels.config import Config, ImexConfig
from gpulabels.imex import IMEX_CHANNELS_DIR, Channel, get_channels


def _make_channel_node(root, name):
    directory = root / IMEX_CHANNELS_DIR.lstrip("/")
    directory.mkdir(parents=True, exist_ok=True)
    node = directory / name
    os.symlink("/dev/null", node)
    return node


def test_character_device_exists():
    assert Channel(id="0", path="/dev/null", host_path="/dev/null").exists() is True


def test_regular_file_does_not_count(tmp_path):
    regular = tmp_path / "file"
    regular.write_text("x")
    channel = Channel(id="0", path=str(regular), host_path=str(regular))
    assert channel.exists() is False


def test_missing_paths(tmp_path):
    channel = Channel(id="0", path=str(tmp_path / "a"), host_path=str(tmp_path / "b"))
    assert channel.exists() is False


def test_container_path_is_used_when_host_path_missing(tmp_path):
    channel = Channel(id="0", path="/dev/null", host_path=str(tmp_path / "missing"))
    assert channel.exists() is True


def test_no_channels_requested(tmp_path):
    assert get_channels(Config(), str(tmp_path)) == []


def test_missing_optional_channel_is_skipped(tmp_path):
    config = Config(imex=ImexConfig(channel_ids=[7], required=False))
    assert get_channels(config, str(tmp_path)) == []


def test_missing_required_channel_raises(tmp_path):
    config = Config(imex=ImexConfig(channel_ids=[7], required=True))
    with pytest.raises(RuntimeError, match="requested IMEX channel channel7 does not exist"):
        get_channels(config, str(tmp_path))


def test_existing_channel_is_selected(tmp_path):
    node = _make_channel_node(tmp_path, "channel0")
    config = Config(imex=ImexConfig(channel_ids=[0, 1]))
    channels = get_channels(config, str(tmp_path))
    assert [c.id for c in channels] == ["0"]
    assert channels[0].path == IMEX_CHANNELS_DIR + "/channel0"
    assert channels[0].host_path == str(node)
    assert channels[0].exists() is True