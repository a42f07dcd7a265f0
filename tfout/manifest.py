"""Representation of the Kubernetes objects managed by tfout.

The `TerraformOutputs` object is the declarative source of truth. It points at
one or more Terraform state files in object storage and names the ConfigMap
and Secret that the outputs are projected into. Objects here are plain
dataclasses that can be built from raw Kubernetes documents with `parse_doc`
and serialized back with `to_doc`.
"""

import base64
import datetime
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import InputException, UnsupportedBackendKind

__all__ = [
    "NamedResource",
    "ObjectMeta",
    "OwnerReference",
    "S3Backend",
    "BackendKind",
    "BackendDescriptor",
    "TargetSpec",
    "TerraformOutputsSpec",
    "TerraformOutputsStatus",
    "TerraformOutputs",
    "Condition",
    "SyncStatus",
    "ConfigMap",
    "Secret",
    "parse_raw_obj",
    "is_owned_by",
]

_LOGGER = logging.getLogger(__name__)


TFOUT_DOMAIN = "tfout.wibrow.net"
TFOUT_API_VERSION = f"{TFOUT_DOMAIN}/v1alpha1"
TERRAFORM_OUTPUTS_KIND = "TerraformOutputs"
CONFIG_MAP_KIND = "ConfigMap"
SECRET_KIND = "Secret"
DEFAULT_NAMESPACE = "default"
DEFAULT_SYNC_INTERVAL = "5m"
SECRET_TYPE_OPAQUE = "Opaque"

# Stores the object storage ETag of each backend, suffixed by backend index
ETAG_ANNOTATION_PREFIX = "terraform-tfout.wibrow.net/s3-etag-"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "tfout"
SOURCE_LABEL = "terraform-outputs/source"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


def _decode(cls: type[Any], value: Any, what: str) -> Any:
    """Build a manifest type from a raw mapping or raise an InputException."""
    if not isinstance(value, dict):
        raise InputException(f"Invalid {what}, expected a mapping: {value}")
    try:
        return cls.from_dict(value)
    except (MissingField, InvalidFieldValue) as err:
        raise InputException(f"Invalid {what}: {err}") from err


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    def compact_dict(self) -> dict[str, Any]:
        """Return a compact dictionary representation of the object."""
        return self.to_dict()

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class OwnerReference(BaseManifest):
    """Link from a dependent object back to the object that owns it."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = field(
        metadata=field_options(alias="blockOwnerDeletion"), default=None
    )


@dataclass
class ObjectMeta(BaseManifest):
    """Standard object metadata."""

    name: str
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(
        metadata=field_options(alias="ownerReferences"), default_factory=list
    )

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ObjectMeta":
        """Parse the metadata section of a kubernetes object."""
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not isinstance(metadata, dict):
            raise InputException(f"Invalid object metadata is not a mapping: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        return cls(
            name=name,
            namespace=metadata.get("namespace"),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            owner_references=[
                _decode(OwnerReference, ref, "metadata.ownerReferences")
                for ref in metadata.get("ownerReferences") or ()
            ],
        )


@dataclass
class KubernetesObject(BaseManifest):
    """Base class for objects kept in the store."""

    kind: ClassVar[str]
    api_version: ClassVar[str]

    metadata: ObjectMeta
    """Name, namespace, labels and bookkeeping for the object."""

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def resource_id(self) -> NamedResource:
        """Return the identifier used as the store key."""
        return NamedResource(self.kind, self.metadata.namespace, self.metadata.name)

    def to_doc(self) -> dict[str, Any]:
        """Return the object as a kubernetes document."""
        return {"apiVersion": self.api_version, "kind": self.kind, **self.to_dict()}


class SyncStatus(StrEnum):
    """Outcome of the latest sync of a TerraformOutputs object."""

    SUCCESS = "Success"
    FAILED = "Failed"
    IN_PROGRESS = "InProgress"


class BackendKind(StrEnum):
    """Supported kinds of backend."""

    S3 = "s3"


@dataclass
class S3Backend(BaseManifest):
    """Location of a Terraform state file in an S3 compatible bucket."""

    bucket: str
    """The bucket name."""

    key: str
    """The path to the terraform state file."""

    region: str
    """The region of the bucket."""

    endpoint: str | None = None
    """An optional S3 compatible endpoint."""

    role: str | None = None
    """An optional IAM role to assume for accessing the bucket."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "S3Backend":
        """Parse an s3 backend section."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid {cls.__name__}, expected a mapping: {doc}")
        if not (bucket := doc.get("bucket")):
            raise InputException(f"Invalid {cls.__name__} missing bucket: {doc}")
        if not (key := doc.get("key")):
            raise InputException(f"Invalid {cls.__name__} missing key: {doc}")
        if not (region := doc.get("region")):
            raise InputException(f"Invalid {cls.__name__} missing region: {doc}")
        return cls(
            bucket=bucket,
            key=key,
            region=region,
            endpoint=doc.get("endpoint") or None,
            role=doc.get("role") or None,
        )

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass
class BackendDescriptor(BaseManifest):
    """A single backend holding a Terraform state.

    Exactly one of the backend kinds must be set.
    """

    s3: S3Backend | None = None

    @property
    def kind(self) -> BackendKind:
        """Return the kind of the populated backend."""
        return self.validate()

    @property
    def location(self) -> str:
        if self.s3 is not None:
            return self.s3.location
        return "<unset>"

    def validate(self) -> BackendKind:
        """Raise UnsupportedBackendKind unless exactly one kind is set."""
        populated = [
            kind for kind, value in ((BackendKind.S3, self.s3),) if value is not None
        ]
        if len(populated) != 1:
            raise UnsupportedBackendKind(
                f"Backend must set exactly one kind, found {len(populated)}"
            )
        return populated[0]

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "BackendDescriptor":
        """Parse a backend entry.

        Both the `{s3: {...}}` form and the older `{type: s3, source: {...}}`
        form are accepted.
        """
        if not isinstance(doc, dict):
            raise InputException(f"Invalid backend, expected a mapping: {doc}")
        if (s3 := doc.get("s3")) is not None:
            return cls(s3=S3Backend.parse_doc(s3))
        if backend_type := doc.get("type"):
            if backend_type != BackendKind.S3:
                raise UnsupportedBackendKind(
                    f"Unsupported backend type: {backend_type}"
                )
            if not (source := doc.get("source")):
                raise InputException(f"Invalid backend missing source: {doc}")
            return cls(s3=S3Backend.parse_doc(source))
        raise UnsupportedBackendKind(f"Backend does not set a supported kind: {doc}")


@dataclass
class TargetSpec(BaseManifest):
    """Where outputs are written."""

    namespace: str = DEFAULT_NAMESPACE
    """Namespace of the ConfigMap and Secret."""

    config_map_name: str | None = field(
        metadata=field_options(alias="configMapName"), default=None
    )
    """Name of the ConfigMap holding non-sensitive outputs."""

    secret_name: str | None = field(
        metadata=field_options(alias="secretName"), default=None
    )
    """Name of the Secret holding sensitive outputs."""


@dataclass
class TerraformOutputsSpec(BaseManifest):
    """Desired state of a TerraformOutputs object."""

    backends: list[BackendDescriptor]
    """Backends, in priority order. Later backends win on key collisions."""

    sync_interval: str = field(
        metadata=field_options(alias="syncInterval"), default=DEFAULT_SYNC_INTERVAL
    )
    """How often to sync outputs."""

    target: TargetSpec = field(default_factory=TargetSpec)
    """Where to store the outputs."""


@dataclass
class Condition(BaseManifest):
    """An observation of the object state."""

    type: str
    status: str
    reason: str
    message: str = ""
    last_transition_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastTransitionTime"), default=None
    )


@dataclass
class TerraformOutputsStatus(BaseManifest):
    """Observed state of a TerraformOutputs object."""

    last_sync_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastSyncTime"), default=None
    )
    sync_status: SyncStatus | None = field(
        metadata=field_options(alias="syncStatus"), default=None
    )
    message: str | None = None
    output_count: int = field(metadata=field_options(alias="outputCount"), default=0)
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class TerraformOutputs(KubernetesObject):
    """A representation of a TerraformOutputs object."""

    kind: ClassVar[str] = TERRAFORM_OUTPUTS_KIND
    api_version: ClassVar[str] = TFOUT_API_VERSION

    spec: TerraformOutputsSpec
    status: TerraformOutputsStatus = field(default_factory=TerraformOutputsStatus)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "TerraformOutputs":
        """Parse a TerraformOutputs from a kubernetes resource."""
        _check_version(doc, TFOUT_DOMAIN)
        metadata = ObjectMeta.parse_doc(doc)
        if not (spec := doc.get("spec")) or not isinstance(spec, dict):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not (backends := spec.get("backends")) or not isinstance(backends, list):
            raise InputException(
                f"Invalid {cls.__name__} {metadata.name} requires at least one backend"
            )
        target = spec.get("target") or {}
        if not isinstance(target, dict):
            raise InputException(
                f"Invalid {cls.__name__} {metadata.name} target is not a mapping"
            )
        return cls(
            metadata=metadata,
            spec=TerraformOutputsSpec(
                backends=[BackendDescriptor.parse_doc(backend) for backend in backends],
                sync_interval=spec.get("syncInterval") or DEFAULT_SYNC_INTERVAL,
                target=TargetSpec(
                    namespace=target.get("namespace") or DEFAULT_NAMESPACE,
                    config_map_name=target.get("configMapName") or None,
                    secret_name=target.get("secretName") or None,
                ),
            ),
            status=_decode(TerraformOutputsStatus, doc.get("status") or {}, "status"),
        )

    def owner_reference(self) -> OwnerReference:
        """Return a controller reference pointing at this object."""
        if not self.metadata.uid:
            raise InputException(f"{self.resource_id} has no uid assigned")
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.name,
            uid=self.metadata.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def stored_etag(self, backend_index: int) -> str | None:
        """Return the last observed fingerprint of the backend, if any."""
        return self.metadata.annotations.get(f"{ETAG_ANNOTATION_PREFIX}{backend_index}")


@dataclass
class ConfigMap(KubernetesObject):
    """A ConfigMap holding the non-sensitive outputs."""

    kind: ClassVar[str] = CONFIG_MAP_KIND
    api_version: ClassVar[str] = "v1"

    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigMap":
        """Parse a config map object from a kubernetes resource."""
        _check_version(doc, "v1")
        return cls(metadata=ObjectMeta.parse_doc(doc), data=dict(doc.get("data") or {}))

    def values(self) -> dict[str, str]:
        return dict(self.data)


@dataclass
class Secret(KubernetesObject):
    """A Secret holding the sensitive outputs.

    Values in `data` are base64 encoded, as in the Kubernetes API.
    """

    kind: ClassVar[str] = SECRET_KIND
    api_version: ClassVar[str] = "v1"

    data: dict[str, str] = field(default_factory=dict)
    type: str = SECRET_TYPE_OPAQUE

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Secret":
        """Parse a secret object from a kubernetes resource."""
        _check_version(doc, "v1")
        data = dict(doc.get("data") or {})
        for key, value in (doc.get("stringData") or {}).items():
            data[key] = encode_secret_value(str(value))
        return cls(
            metadata=ObjectMeta.parse_doc(doc),
            data=data,
            type=doc.get("type") or SECRET_TYPE_OPAQUE,
        )

    def values(self) -> dict[str, str]:
        """Return the decoded secret values."""
        return {
            key: base64.b64decode(value).decode("utf-8")
            for key, value in self.data.items()
        }


def encode_secret_value(value: str) -> str:
    """Encode a value for the `data` field of a Secret."""
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def is_owned_by(obj: KubernetesObject, owner: TerraformOutputs) -> bool:
    """Check if the owner references of obj point at the owner."""
    for ref in obj.metadata.owner_references:
        if (
            ref.kind == owner.kind
            and ref.api_version == owner.api_version
            and ref.name == owner.name
            and ref.uid == owner.metadata.uid
        ):
            return True
    return False


def parse_raw_obj(obj: dict[str, Any]) -> KubernetesObject:
    """Parse a raw kubernetes object into a KubernetesObject."""
    if not (kind := obj.get("kind")):
        raise InputException(f"Invalid object missing kind: {obj}")
    if kind == TERRAFORM_OUTPUTS_KIND:
        return TerraformOutputs.parse_doc(obj)
    if kind == CONFIG_MAP_KIND:
        return ConfigMap.parse_doc(obj)
    if kind == SECRET_KIND:
        return Secret.parse_doc(obj)
    raise InputException(f"Unsupported object kind {kind}")
