"""Flags and helpers shared by the tfout commands."""

import pathlib
from argparse import ArgumentParser

from tfout.exceptions import TfoutException
from tfout.loader import LoadOptions, load_into_store
from tfout.manifest import TERRAFORM_OUTPUTS_KIND, TerraformOutputs
from tfout.store import InMemoryStore


def add_path_flag(args: ArgumentParser) -> None:
    """Add the flag naming the manifests to load."""
    args.add_argument(
        "--path",
        help="File or directory with TerraformOutputs manifests",
        type=pathlib.Path,
        required=True,
    )


async def load_store(path: pathlib.Path) -> tuple[InMemoryStore, list[TerraformOutputs]]:
    """Load the manifests under `path` into a new store.

    Raises TfoutException when no TerraformOutputs objects are found.
    """
    store = InMemoryStore()
    await load_into_store(store, LoadOptions(path=path))
    resources = [
        obj
        for obj in store.list_objects(TERRAFORM_OUTPUTS_KIND)
        if isinstance(obj, TerraformOutputs)
    ]
    if not resources:
        raise TfoutException(f"No TerraformOutputs objects found in {path}")
    return store, resources
