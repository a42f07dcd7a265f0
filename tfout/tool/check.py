"""Tfout check action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from tfout.backend import default_fetcher
from tfout.exceptions import TfoutException

from . import common
from .format import TableFormatter

_LOGGER = logging.getLogger(__name__)

ERROR_FINGERPRINT = "<error>"


class CheckAction:
    """Tfout check action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "check",
                help="Report the current fingerprint of every backend",
                description="""Reads only the object metadata of each Terraform
                    state file referenced by the TerraformOutputs objects in the
                    path and reports whether it differs from the fingerprint
                    recorded on the object.""",
            ),
        )
        common.add_path_flag(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        _, resources = await common.load_store(path)
        fetcher = default_fetcher()

        rows: list[dict[str, Any]] = []
        errors: list[TfoutException] = []
        for resource in resources:
            for index, backend in enumerate(resource.spec.backends):
                try:
                    fingerprint = await fetcher.fingerprint(backend, index)
                except TfoutException as err:
                    _LOGGER.error("Failed to check %s: %s", resource.resource_id, err)
                    errors.append(err)
                    fingerprint = ERROR_FINGERPRINT
                stored = resource.stored_etag(index)
                rows.append(
                    {
                        "namespace": resource.namespace,
                        "name": resource.name,
                        "index": index,
                        "location": backend.location,
                        "fingerprint": fingerprint,
                        "changed": (
                            "unknown"
                            if fingerprint == ERROR_FINGERPRINT
                            else str(stored != fingerprint).lower()
                        ),
                    }
                )

        TableFormatter(
            ["namespace", "name", "index", "location", "fingerprint", "changed"]
        ).print(rows)

        if errors:
            raise TfoutException(
                f"Failed to check {len(errors)} backends: {errors[0]}"
            )
