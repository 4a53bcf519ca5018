"""Server list parser.

Reads the public Mindustry server list (``servers_v7.json``) into Target
objects. The list is a JSON array of server groups:

    [
      {"name": "EscoCorp", "address": ["121.127.37.17:6567", "121.127.37.17"]},
      ...
    ]

A flat form, one ``{"host": ..., "port": ..., "name": ...}`` mapping per
entry, is accepted as well. Addresses without a port use the default.
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from ..config import DEFAULT_SERVER_PORT
from .schema import Target

logger = logging.getLogger(__name__)


def load_targets(
    file_path: Union[str, Path],
    default_port: int = DEFAULT_SERVER_PORT,
) -> list[Target]:
    """Load a server list file into targets.

    Args:
        file_path: Path to a ``.json``, ``.yaml`` or ``.yml`` file.
        default_port: Port used for addresses without one.

    Returns:
        Parsed targets in file order, duplicates removed.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file is malformed.
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Server list not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        if file_path.suffix in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Malformed YAML in {file_path}: {e}") from e
        else:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Malformed JSON in {file_path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty server list: {file_path}")

    return parse_server_list(data, default_port=default_port, source=str(file_path))


def parse_server_list(
    data: Any,
    default_port: int = DEFAULT_SERVER_PORT,
    source: str = "<inline>",
) -> list[Target]:
    """Parse an already loaded server list.

    Raises:
        ValueError: If the data is not a list of mappings.
    """
    if not isinstance(data, list):
        raise ValueError(f"Server list must be a list in {source}, got {type(data).__name__}")

    targets: list[Target] = []
    seen: set[str] = set()

    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"Entry {i} must be a mapping in {source}")

        for target in _parse_entry(entry, i, default_port, source):
            if target.key in seen:
                logger.debug("Skipping duplicate target %s", target.key)
                continue
            seen.add(target.key)
            targets.append(target)

    return targets


def _parse_entry(
    entry: dict, index: int, default_port: int, source: str
) -> list[Target]:
    label = str(entry.get("name") or "")

    if "address" in entry:
        addresses = entry["address"]
        if isinstance(addresses, str):
            addresses = [addresses]
        if not isinstance(addresses, list):
            raise ValueError(f"'address' must be a list in entry {index} ({source})")
        targets = []
        for address in addresses:
            host, port = parse_address(str(address), default_port)
            targets.append(Target(host=host, port=port, label=label))
        return targets

    if "host" in entry:
        port = entry.get("port", default_port)
        try:
            port = int(port)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid port {port!r} in entry {index} ({source})") from e
        return [Target(host=str(entry["host"]).strip(), port=port, label=label)]

    # Groups without addresses are skipped
    logger.debug("Entry %d in %s has no address", index, source)
    return []


def parse_address(address: str, default_port: int = DEFAULT_SERVER_PORT) -> tuple[str, int]:
    """Split ``host`` or ``host:port`` into (host, port).

    Bracketed IPv6 literals (``[::1]:6567``) are supported; a bare IPv6
    literal is taken as a host without a port.

    Raises:
        ValueError: If the port is not a number.
    """
    address = address.strip()

    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        if rest.startswith(":"):
            return host, _parse_port(rest[1:], address)
        return host, default_port

    if address.count(":") == 1:
        host, port = address.split(":")
        return host.strip(), _parse_port(port, address)

    return address, default_port


def _parse_port(value: str, address: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"Invalid port in address '{address}'") from e
