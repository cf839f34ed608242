"""Labels describing the IMEX domain and fabric clique of the node."""

import ipaddress
import logging
import posixpath
import uuid

from .labels import Empty, Labels

log = logging.getLogger(__name__)

# Lists the IP addresses of the nodes in the IMEX domain.
IMEX_NODES_CONFIG_FILE_PATH = "/etc/nvidia-imex/nodes_config.cfg"

_DEFAULT_SEARCH_ROOTS = ("/", "/config")


def _join_root(root, path):
    return posixpath.normpath(posixpath.join(root or "/", path.lstrip("/")))


def _search_roots(config):
    roots = list(_DEFAULT_SEARCH_ROOTS)
    driver_root = getattr(config, "container_driver_root", None) if config else None
    if driver_root is not None:
        roots.append(driver_root)
    return roots


def new_imex_labeler(config, devices):
    """Return a labeler for the IMEX clique and domain of the devices.

    The IMEX nodes config file is searched under /, /config and the
    container driver root, if one is configured. The first file that yields
    labels wins. If no file yields labels but some could not be processed,
    a RuntimeError describing the problems is raised; otherwise the labeler
    is empty.
    """
    problems = []
    for root in _search_roots(config):
        config_file_path = _join_root(root, IMEX_NODES_CONFIG_FILE_PATH)
        try:
            labeler = _imex_labeler_for_config_file(config_file_path, devices)
        except (OSError, ValueError) as err:
            problems.append(str(err))
            continue
        if labeler is not None:
            log.info("Using labeler for IMEX config %s", config_file_path)
            return labeler
    if problems:
        raise RuntimeError("\n".join(problems))
    return Empty()


def _imex_labeler_for_config_file(config_file_path, devices):
    try:
        config_file = open(config_file_path, encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as err:
        raise OSError(f"failed to open imex config file: {err}") from err

    with config_file:
        cluster_uuid, clique_id = get_fabric_ids(devices)
        if not cluster_uuid or not clique_id:
            return None
        domain_id = get_imex_domain_id(config_file)

    if not domain_id:
        return None
    return Labels(
        {
            "nvidia.com/gpu.clique": f"{cluster_uuid}.{clique_id}",
            "nvidia.com/gpu.imex-domain": f"{domain_id}.{clique_id}",
        }
    )


def get_fabric_ids(devices):
    """Return the (cluster UUID, clique ID) shared by the fabric-attached devices.

    Empty strings are returned if no device is attached to a fabric or if
    the devices disagree on either value.
    """
    cluster_uuids = {}
    clique_ids = {}
    for index, device in enumerate(devices):
        if not device.is_fabric_attached():
            continue
        cluster_uuid, clique_id = device.get_fabric_ids()
        cluster_uuids.setdefault(cluster_uuid, []).append(index)
        clique_ids.setdefault(clique_id, []).append(index)

    if len(cluster_uuids) > 1:
        log.warning("Cluster UUIDs are non-unique: %s", cluster_uuids)
        return "", ""
    if len(clique_ids) > 1:
        log.warning("Clique IDs are non-unique: %s", clique_ids)
        return "", ""
    if not cluster_uuids or not clique_ids:
        return "", ""
    return next(iter(cluster_uuids)), next(iter(clique_ids))


def _is_ip(text):
    if "%" in text:
        return False
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def get_imex_domain_id(lines):
    """Return an identifier derived from the sorted IP addresses in lines.

    An empty input gives an empty string; a line that is not an IP address
    raises ValueError.
    """
    ips = []
    for line in lines:
        ip = line.strip()
        if not _is_ip(ip):
            raise ValueError(f"invalid IP address in imex config file: {ip}")
        ips.append(ip)
    if not ips:
        return ""
    return generate_content_uuid("\n".join(sorted(ips)))


def generate_content_uuid(seed):
    """Return the name-based SHA-1 UUID of seed in the nil namespace."""
    return str(uuid.uuid5(uuid.UUID(int=0), seed))