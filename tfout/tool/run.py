"""Tfout run action."""

import asyncio
import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from tfout.backend import default_fetcher
from tfout.config import ControllerConfig
from tfout.controller import TerraformOutputsController

from . import common

_LOGGER = logging.getLogger(__name__)


class RunAction:
    """Tfout run action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run the controller loop until interrupted",
                description="""Loads the TerraformOutputs objects in the path
                    and keeps their ConfigMaps and Secrets in sync, polling the
                    backends at each object's sync interval.""",
            ),
        )
        common.add_path_flag(args)
        args.add_argument(
            "--workers",
            type=int,
            default=1,
            help="Number of objects reconciled concurrently",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path,
        workers: int = 1,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store, resources = await common.load_store(path)
        controller = TerraformOutputsController(
            store,
            default_fetcher(),
            ControllerConfig(max_concurrent_reconciles=workers),
        )
        _LOGGER.info("Watching %d TerraformOutputs objects", len(resources))
        await controller.start()
        try:
            await asyncio.Event().wait()
        finally:
            await controller.close()
