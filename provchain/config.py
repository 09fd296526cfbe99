"""Configuration that guides how task runs and images are signed and stored."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

CHAINS_CONFIG = "chains-config"

TASKRUN_FORMAT_KEY = "artifacts.taskrun.format"
TASKRUN_STORAGE_KEY = "artifacts.taskrun.storage"
TASKRUN_SIGNER_KEY = "artifacts.taskrun.signer"

OCI_FORMAT_KEY = "artifacts.oci.format"
OCI_STORAGE_KEY = "artifacts.oci.storage"
OCI_SIGNER_KEY = "artifacts.oci.signer"

GCS_BUCKET_KEY = "storage.gcs.bucket"
OCI_REPOSITORY_KEY = "storage.oci.repository"
OCI_REPOSITORY_INSECURE_KEY = "storage.oci.repository.insecure"
DOCDB_URL_KEY = "storage.docdb.url"

KMS_SIGNER_KMSREF_KEY = "signers.kms.kmsref"
X509_SIGNER_FULCIO_ENABLED_KEY = "signers.x509.fulcio.enabled"
X509_SIGNER_FULCIO_AUTH_KEY = "signers.x509.fulcio.auth"
X509_SIGNER_FULCIO_ADDR_KEY = "signers.x509.fulcio.address"

BUILDER_ID_KEY = "builder.id"

TRANSPARENCY_ENABLED_KEY = "transparency.enabled"
TRANSPARENCY_URL_KEY = "transparency.url"

_TASKRUN_FORMATS = ("tekton", "in-toto", "tekton-provenance")
_OCI_FORMATS = ("tekton", "simplesigning")
_STORAGE_BACKENDS = ("tekton", "oci", "gcs", "docdb")
_SIGNERS = ("x509", "kms")

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ConfigError(ValueError):
    """Raised when configuration data holds a value that is not allowed."""


@dataclass
class Artifact:
    """How to format, sign and store the signatures of one artifact type."""

    format: str = ""
    storage_backend: str = ""
    signer: str = ""


@dataclass
class ArtifactConfigs:
    task_runs: Artifact = field(default_factory=Artifact)
    oci: Artifact = field(default_factory=Artifact)


@dataclass
class GCSStorageConfig:
    bucket: str = ""


@dataclass
class OCIStorageConfig:
    repository: str = ""
    insecure: bool = False


@dataclass
class TektonStorageConfig:
    """Tekton object storage needs no settings."""


@dataclass
class DocDBStorageConfig:
    url: str = ""


@dataclass
class StorageConfigs:
    gcs: GCSStorageConfig = field(default_factory=GCSStorageConfig)
    oci: OCIStorageConfig = field(default_factory=OCIStorageConfig)
    tekton: TektonStorageConfig = field(default_factory=TektonStorageConfig)
    docdb: DocDBStorageConfig = field(default_factory=DocDBStorageConfig)


@dataclass
class X509Signer:
    fulcio_enabled: bool = False
    fulcio_addr: str = ""
    fulcio_auth: str = ""


@dataclass
class KMSSigner:
    kms_ref: str = ""


@dataclass
class SignerConfigs:
    x509: X509Signer = field(default_factory=X509Signer)
    kms: KMSSigner = field(default_factory=KMSSigner)


@dataclass
class BuilderConfig:
    id: str = ""


@dataclass
class TransparencyConfig:
    enabled: bool = False
    verify_annotation: bool = False
    url: str = ""


@dataclass
class Config:
    artifacts: ArtifactConfigs = field(default_factory=ArtifactConfigs)
    storage: StorageConfigs = field(default_factory=StorageConfigs)
    signers: SignerConfigs = field(default_factory=SignerConfigs)
    builder: BuilderConfig = field(default_factory=BuilderConfig)
    transparency: TransparencyConfig = field(default_factory=TransparencyConfig)


@dataclass
class StorageOpts:
    """Extra information needed when storing signatures."""

    key: str = ""
    cert: str = ""
    chain: str = ""
    payload_format: str = ""


def default_config() -> Config:
    """Return the configuration used when no data overrides it."""
    return Config(
        artifacts=ArtifactConfigs(
            task_runs=Artifact(format="tekton", storage_backend="tekton", signer="x509"),
            oci=Artifact(format="simplesigning", storage_backend="oci", signer="x509"),
        ),
        transparency=TransparencyConfig(url="https://rekor.sigstore.dev"),
        signers=SignerConfigs(
            x509=X509Signer(fulcio_auth="google", fulcio_addr="https://fulcio.sigstore.dev"),
        ),
        builder=BuilderConfig(id="tekton-chains"),
    )


def _as_string(
    data: Mapping[str, str], key: str, current: str, allowed: Iterable[str] = ()
) -> str:
    if key not in data:
        return current
    raw = data[key]
    choices = sorted(set(allowed))
    if choices and raw not in choices:
        raise ConfigError(
            f"invalid value {json.dumps(raw)} wanted one of [{' '.join(choices)}]"
        )
    return raw


def _as_bool(data: Mapping[str, str], key: str, current: bool) -> bool:
    raw = data.get(key)
    if raw in _TRUE_WORDS:
        return True
    if raw in _FALSE_WORDS:
        return False
    # Missing or unparseable values leave the setting untouched.
    return current


def _one_of(data: Mapping[str, str], key: str, current: bool, values: Iterable[str]) -> bool:
    if key in data and data[key] in set(values):
        return True
    return current


def _apply(data: Mapping[str, str], cfg: Config) -> None:
    task_runs = cfg.artifacts.task_runs
    task_runs.format = _as_string(data, TASKRUN_FORMAT_KEY, task_runs.format, _TASKRUN_FORMATS)
    task_runs.storage_backend = _as_string(
        data, TASKRUN_STORAGE_KEY, task_runs.storage_backend, _STORAGE_BACKENDS
    )
    task_runs.signer = _as_string(data, TASKRUN_SIGNER_KEY, task_runs.signer, _SIGNERS)

    oci = cfg.artifacts.oci
    oci.format = _as_string(data, OCI_FORMAT_KEY, oci.format, _OCI_FORMATS)
    oci.storage_backend = _as_string(data, OCI_STORAGE_KEY, oci.storage_backend, _STORAGE_BACKENDS)
    oci.signer = _as_string(data, OCI_SIGNER_KEY, oci.signer, _SIGNERS)

    storage = cfg.storage
    storage.gcs.bucket = _as_string(data, GCS_BUCKET_KEY, storage.gcs.bucket)
    storage.oci.repository = _as_string(data, OCI_REPOSITORY_KEY, storage.oci.repository)
    storage.oci.insecure = _as_bool(data, OCI_REPOSITORY_INSECURE_KEY, storage.oci.insecure)
    storage.docdb.url = _as_string(data, DOCDB_URL_KEY, storage.docdb.url)

    transparency = cfg.transparency
    transparency.enabled = _one_of(
        data, TRANSPARENCY_ENABLED_KEY, transparency.enabled, ("true", "manual")
    )
    transparency.verify_annotation = _one_of(
        data, TRANSPARENCY_ENABLED_KEY, transparency.verify_annotation, ("manual",)
    )
    transparency.url = _as_string(data, TRANSPARENCY_URL_KEY, transparency.url)

    signers = cfg.signers
    signers.kms.kms_ref = _as_string(data, KMS_SIGNER_KMSREF_KEY, signers.kms.kms_ref)
    signers.x509.fulcio_enabled = _as_bool(
        data, X509_SIGNER_FULCIO_ENABLED_KEY, signers.x509.fulcio_enabled
    )
    signers.x509.fulcio_auth = _as_string(data, X509_SIGNER_FULCIO_AUTH_KEY, signers.x509.fulcio_auth)
    signers.x509.fulcio_addr = _as_string(data, X509_SIGNER_FULCIO_ADDR_KEY, signers.x509.fulcio_addr)

    cfg.builder.id = _as_string(data, BUILDER_ID_KEY, cfg.builder.id)


def new_config_from_map(data: Mapping[str, str] | None) -> Config:
    """Build a Config from key/value data, starting from the defaults."""
    cfg = default_config()
    try:
        _apply(data or {}, cfg)
    except ConfigError as err:
        raise ConfigError(f"failed to parse data: {err}") from err
    return cfg


def new_config_from_config_map(config_map: Mapping) -> Config:
    """Build a Config from a ConfigMap object given as a mapping with a "data" entry."""
    return new_config_from_map(config_map.get("data") or {})