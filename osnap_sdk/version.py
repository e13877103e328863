"""
Version information for the oSnap SDK.

The installed distribution's metadata is authoritative; a source checkout
reads pyproject.toml instead.
"""
import importlib.metadata
import pathlib

import tomli

DISTRIBUTION = "osnap-sdk"
DEFAULT_VERSION = "0.1.0"
PYPROJECT = pathlib.Path(__file__).parent.parent / "pyproject.toml"


def get_version(pyproject: pathlib.Path = PYPROJECT) -> str:
    """
    Resolve the SDK version

    Args:
        pyproject: pyproject.toml consulted when the distribution is not installed

    Returns:
        Installed version, else the ``[project] version`` of pyproject.toml,
        else DEFAULT_VERSION
    """
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        pass

    try:
        with pyproject.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (OSError, KeyError, tomli.TOMLDecodeError):
        return DEFAULT_VERSION


__version__ = get_version()
