"""Tfout sync action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from tfout.backend import default_fetcher
from tfout.config import ControllerConfig
from tfout.controller import TerraformOutputsReconciler
from tfout.exceptions import TfoutException
from tfout.manifest import (
    CONFIG_MAP_KIND,
    SECRET_KIND,
    ConfigMap,
    KubernetesObject,
    Secret,
    TerraformOutputs,
    encode_secret_value,
)
from tfout.store import InMemoryStore

from . import common
from .format import OUTPUT_CHOICES, TableFormatter, document_formatter

_LOGGER = logging.getLogger(__name__)

REDACTED_TEMPLATE = "..REDACTED_{name}.."


def redact(secret: Secret) -> Secret:
    """Return a copy of the Secret with every value replaced by a placeholder."""
    return Secret(
        metadata=secret.metadata,
        type=secret.type,
        data={
            key: encode_secret_value(REDACTED_TEMPLATE.format(name=key))
            for key in secret.data
        },
    )


class SyncAction:
    """Tfout sync action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "sync",
                help="Sync Terraform outputs once for local TerraformOutputs objects",
                description="""Runs a single reconciliation pass for every
                    TerraformOutputs object found in the path, reading the
                    Terraform state files from object storage, and prints the
                    resulting ConfigMaps, Secrets and statuses.""",
            ),
        )
        common.add_path_flag(args)
        args.add_argument(
            "--output",
            "-o",
            choices=OUTPUT_CHOICES,
            default=None,
            help="Print the resulting objects in this format instead of a summary",
        )
        args.add_argument(
            "--show-secrets",
            action="store_true",
            default=False,
            help="Print Secret values instead of placeholders",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path,
        output: str | None = None,
        show_secrets: bool = False,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store, resources = await common.load_store(path)
        reconciler = TerraformOutputsReconciler(
            store, default_fetcher(), ControllerConfig()
        )

        failed = 0
        for resource in resources:
            result = await reconciler.reconcile(resource.resource_id)
            if not result.success:
                failed += 1

        synced = [
            obj
            for resource in resources
            if (obj := store.get_object(resource.resource_id, TerraformOutputs))
            is not None
        ]
        artifacts = _artifacts(store, synced, show_secrets)

        if output:
            document_formatter(output).print(
                [obj.to_doc() for obj in [*synced, *artifacts]]
            )
        else:
            TableFormatter(["namespace", "name", "status", "outputs", "message"]).print(
                [
                    {
                        "namespace": obj.namespace,
                        "name": obj.name,
                        "status": obj.status.sync_status,
                        "outputs": obj.status.output_count,
                        "message": obj.status.message,
                    }
                    for obj in synced
                ]
            )
            TableFormatter(["kind", "namespace", "name", "keys"]).print(
                [
                    {
                        "kind": obj.kind,
                        "namespace": obj.namespace,
                        "name": obj.name,
                        "keys": ",".join(sorted(_data(obj))),
                    }
                    for obj in artifacts
                ]
            )

        if failed:
            raise TfoutException(
                f"{failed} of {len(resources)} TerraformOutputs failed to sync"
            )


def _artifacts(
    store: InMemoryStore, resources: list[TerraformOutputs], show_secrets: bool
) -> list[KubernetesObject]:
    """Return the ConfigMaps and Secrets named by the resources."""
    found: list[KubernetesObject] = []
    for resource in resources:
        target = resource.spec.target
        for kind, name in (
            (CONFIG_MAP_KIND, target.config_map_name),
            (SECRET_KIND, target.secret_name),
        ):
            if not name:
                continue
            for obj in store.list_objects(kind):
                if obj.namespace == target.namespace and obj.name == name:
                    if isinstance(obj, Secret) and not show_secrets:
                        obj = redact(obj)
                    found.append(obj)
    return found


def _data(obj: KubernetesObject) -> dict[str, Any]:
    if isinstance(obj, (ConfigMap, Secret)):
        return obj.data
    return {}
