"""Resource loader for TerraformOutputs manifests.

This module reads TerraformOutputs objects, along with any ConfigMaps and
Secrets that already exist, from YAML files on disk so they can be placed in
a store before the controller starts. Documents of other kinds are skipped.
"""

import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from tfout.exceptions import TfoutException
from tfout.manifest import (
    CONFIG_MAP_KIND,
    SECRET_KIND,
    TERRAFORM_OUTPUTS_KIND,
    KubernetesObject,
    parse_raw_obj,
)
from tfout.store import Store

__all__ = ["ResourceLoader", "LoadOptions", "load_into_store"]

_LOGGER = logging.getLogger(__name__)

SUPPORTED_KINDS = {TERRAFORM_OUTPUTS_KIND, CONFIG_MAP_KIND, SECRET_KIND}
SUFFIXES = (".yaml", ".yml")


@dataclass
class LoadOptions:
    """Options for loading resources.

    Attributes:
        path: Filesystem path to load resources from. Can be a file or directory.
        recursive: If True and path is a directory, load resources from all
                  subdirectories as well.
    """

    path: Path
    recursive: bool = True

    def __post_init__(self) -> None:
        """Resolve the path after initialization."""
        self.path = Path(self.path).expanduser().resolve()


class ResourceLoader:
    """Loads resources from the filesystem."""

    def __init__(self) -> None:
        """Initialize the resource loader."""
        self._processed_files: set[Path] = set()

    async def load(
        self, options: LoadOptions
    ) -> AsyncGenerator[KubernetesObject, None]:
        """Load resources from the given options."""
        _LOGGER.info("Loading resources from %s", options.path)

        if not options.path.exists():
            raise TfoutException(f"Path does not exist: {options.path}")

        if options.path.is_file():
            async for resource in self._load_file(options.path):
                yield resource
        elif options.path.is_dir():
            async for resource in self._load_directory(options.path, options):
                yield resource
        else:
            raise TfoutException(f"Path is not a file or directory: {options.path}")

        _LOGGER.info("Finished loading resources")

    async def _load_directory(
        self, path: Path, options: LoadOptions
    ) -> AsyncGenerator[KubernetesObject, None]:
        _LOGGER.debug("Loading directory: %s", path)
        for entry in sorted(path.iterdir()):
            if entry.is_file() and entry.suffix.lower() in SUFFIXES:
                async for resource in self._load_file(entry):
                    yield resource
            elif options.recursive and entry.is_dir():
                async for resource in self._load_directory(entry, options):
                    yield resource

    async def _load_file(self, path: Path) -> AsyncGenerator[KubernetesObject, None]:
        """Load resources from a file.

        Raises:
            TfoutException: If the file cannot be read or holds invalid documents.
        """
        if path in self._processed_files:
            _LOGGER.debug("Skipping already processed file: %s", path)
            return
        _LOGGER.debug("Processing file: %s", path)
        self._processed_files.add(path)

        try:
            async with aiofiles.open(str(path), encoding="utf-8") as fd:
                content = await fd.read()
        except OSError as err:
            raise TfoutException(f"Failed to read file {path}: {err}") from err

        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as err:
            raise TfoutException(f"Invalid YAML in file {path}: {err}") from err

        for doc in docs:
            if not doc:
                continue
            if not _is_supported(doc):
                _LOGGER.info(
                    "Skipping document in %s with kind %s",
                    path,
                    doc.get("kind") if isinstance(doc, dict) else type(doc).__name__,
                )
                continue
            try:
                yield parse_raw_obj(doc)
            except TfoutException as err:
                raise TfoutException(f"Invalid document in file {path}: {err}") from err


def _is_supported(doc: Any) -> bool:
    return isinstance(doc, dict) and doc.get("kind") in SUPPORTED_KINDS


async def load_into_store(store: Store, options: LoadOptions) -> list[KubernetesObject]:
    """Load resources from disk and create them in the store.

    Returns the stored copies in the order they were loaded.
    """
    loader = ResourceLoader()
    created = []
    async for obj in loader.load(options):
        created.append(store.create_object(obj))
    return created
