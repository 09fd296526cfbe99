"""Storage of signatures and attestations next to images in an OCI registry."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any

from ..config import Config, StorageOpts
from .base import Backend, StorageError, TaskRun

STORAGE_BACKEND_OCI = "oci"
SIGNATURE_TAG_SUFFIX = "sig"
ATTESTATION_TAG_SUFFIX = "att"
DSSE_PAYLOAD_TYPE = "application/vnd.dsse.envelope.v1+json"
DEFAULT_REGISTRY = "index.docker.io"

_REPOSITORY_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789_-./")
_TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")
_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class Hash:
    """A content digest such as sha256:<hex>."""

    algorithm: str
    hex: str

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"


@dataclass(frozen=True)
class Repository:
    """A repository within a registry."""

    registry: str
    path: str
    insecure: bool = False

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.path}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Tag:
    """A tag within a repository."""

    repository: Repository
    tag: str

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass(frozen=True)
class DigestReference:
    """An image reference pinned to a digest."""

    repository: Repository
    digest: Hash

    def __str__(self) -> str:
        return f"{self.repository}@{self.digest}"


def parse_hash(text: str) -> Hash:
    """Parse an algorithm:hex digest; only sha256 is accepted."""
    algorithm, sep, hex_part = text.partition(":")
    if not sep:
        raise StorageError(f"cannot parse hash: {text!r}")
    if algorithm != "sha256":
        raise StorageError(f"unsupported hash algorithm: {algorithm!r}")
    if not _SHA256_HEX.match(hex_part):
        raise StorageError(f"wrong number of hex digits or invalid characters in hash: {text!r}")
    return Hash(algorithm, hex_part)


def parse_repository(text: str, insecure: bool = False) -> Repository:
    """Parse a repository name, filling in the default registry where needed."""
    if not text:
        raise StorageError("a repository name must be specified")
    first, sep, rest = text.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        registry, path = first, rest
    else:
        registry, path = DEFAULT_REGISTRY, text
    if registry == "docker.io":
        registry = DEFAULT_REGISTRY
    if not path:
        raise StorageError(f"a repository name must be specified in {text!r}")
    if registry == DEFAULT_REGISTRY and "/" not in path:
        path = f"library/{path}"
    bad = sorted(set(path) - _REPOSITORY_CHARS)
    if bad or any(not part for part in path.split("/")):
        raise StorageError(
            f"repository can only contain the characters "
            f"`{''.join(sorted(_REPOSITORY_CHARS))}`: {path}"
        )
    return Repository(registry, path, insecure)


def parse_digest_reference(text: str, insecure: bool = False) -> DigestReference:
    """Parse an image reference of the form repository[:tag]@sha256:<hex>."""
    parts = text.split("@")
    if len(parts) != 2:
        raise StorageError("a digest must contain exactly one '@' separator (e.g. registry/repository@digest)")
    base, digest = parts
    if not digest.startswith("sha256:") or not _SHA256_HEX.match(digest[len("sha256:"):]):
        raise StorageError(f"digest must be sha256:<64 lowercase hex digits>: {digest!r}")
    slash = base.rfind("/")
    colon = base.rfind(":")
    if colon > slash:
        tag = base[colon + 1:]
        if not _TAG_PATTERN.match(tag):
            raise StorageError(f"invalid tag {tag!r} in {text!r}")
        base = base[:colon]
    return DigestReference(parse_repository(base, insecure), parse_hash(digest))


def attached_image_tag(repository: Repository, digest: Hash | str, suffix: str) -> Tag:
    """Return the tag where an object attached to the digest is kept."""
    if isinstance(digest, str):
        digest = parse_hash(digest)
    return Tag(repository, f"{digest.algorithm}-{digest.hex}.{suffix}")


@dataclass(frozen=True)
class Upload:
    """One object pushed to a registry."""

    signature: bytes
    payload: bytes
    destination: Tag
    cert: bytes
    chain: bytes
    media_type: str


class SignatureUploader:
    """Keeps uploaded signatures in memory, grouped by destination tag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.uploads: dict[str, list[Upload]] = {}

    def upload(
        self,
        signature: bytes,
        payload: bytes,
        destination: Tag,
        cert: bytes,
        chain: bytes,
        media_type: str,
    ) -> Upload:
        """Record an upload of the signature and payload to the destination."""
        record = Upload(bytes(signature), bytes(payload), destination, bytes(cert), bytes(chain), media_type)
        with self._lock:
            self.uploads.setdefault(str(destination), []).append(record)
        return record


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StorageError(f"{what} must be an object")
    return value


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise StorageError(f"{what} must be a string")
    return value


def _simple_signing_image_name(raw_payload: bytes) -> str:
    try:
        doc = json.loads(raw_payload)
        doc = _mapping(doc, "payload")
        critical = _mapping(doc.get("critical"), "critical")
        identity = _mapping(critical.get("identity"), "critical.identity")
        image = _mapping(critical.get("image"), "critical.image")
        reference = _string(identity.get("docker-reference"), "docker-reference")
        digest = _string(image.get("docker-manifest-digest"), "docker-manifest-digest")
    except (ValueError, StorageError) as err:
        raise StorageError(f"unmarshal simplesigning: {err}") from err
    return f"{reference}@{digest}"


def _attestation_subjects(raw_payload: bytes) -> list[str]:
    try:
        doc = _mapping(json.loads(raw_payload), "statement")
        subjects = doc.get("subject")
        if subjects is None:
            subjects = []
        if not isinstance(subjects, list):
            raise StorageError("subject must be a list")
        names = []
        for subject in subjects:
            subject = _mapping(subject, "subject")
            name = _string(subject.get("name"), "subject name")
            digest = _mapping(subject.get("digest"), "subject digest")
            names.append(f"{name}@sha256:{_string(digest.get('sha256'), 'sha256 digest')}")
    except (ValueError, StorageError) as err:
        raise StorageError(f"unmarshal attestation: {err}") from err
    return names


class OCIBackend(Backend):
    """Uploads signatures and attestations next to the images they cover."""

    def __init__(
        self,
        logger: logging.Logger | None,
        task_run: TaskRun,
        cfg: Config,
        uploader: SignatureUploader | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._task_run = task_run
        self._cfg = cfg
        self._uploader = uploader if uploader is not None else SignatureUploader()

    def store_payload(self, raw_payload: bytes, signature: str, opts: StorageOpts) -> None:
        tr = self._task_run
        self._logger.info("Storing payload on TaskRun %s/%s", tr.namespace, tr.name)

        if opts.payload_format == "simplesigning":
            image_name = _simple_signing_image_name(raw_payload)
            self._upload_signature(image_name, raw_payload, signature, opts)
            return

        if opts.payload_format in ("in-toto", "tekton-provenance"):
            subjects = _attestation_subjects(raw_payload)
            # Tasks that do not follow naming conventions like *IMAGE_URL give no subjects.
            if not subjects:
                raise StorageError("Did not find anything to attest")
            self._upload_attestations(subjects, signature, opts)
            return

        raise StorageError(
            "OCI storage backend is only supported for OCI images and in-toto attestations"
        )

    def _target_repository(self, ref: DigestReference) -> Repository:
        override = self._cfg.storage.oci.repository
        if not override:
            return ref.repository
        try:
            return parse_repository(override)
        except StorageError as err:
            raise StorageError(f"{override} is not a valid repository: {err}") from err

    def _upload_signature(
        self, image_name: str, raw_payload: bytes, signature: str, opts: StorageOpts
    ) -> None:
        self._logger.info("Uploading %s signature", image_name)
        try:
            ref = parse_digest_reference(image_name, self._cfg.storage.oci.insecure)
        except StorageError as err:
            raise StorageError(f"getting digest: {err}") from err
        destination = attached_image_tag(
            self._target_repository(ref), ref.digest, SIGNATURE_TAG_SUFFIX
        )
        try:
            self._uploader.upload(
                signature.encode(), bytes(raw_payload), destination,
                opts.cert.encode(), opts.chain.encode(), "",
            )
        except StorageError as err:
            raise StorageError(f"uploading: {err}") from err
        self._logger.info("Successfully uploaded signature for %s to %s", image_name, destination)

    def _upload_attestations(self, subjects: list[str], signature: str, opts: StorageOpts) -> None:
        self._logger.info("Starting to upload attestations to OCI ...")
        for image_name in subjects:
            self._logger.info("Starting attestation upload to OCI for %s...", image_name)
            try:
                ref = parse_digest_reference(image_name, self._cfg.storage.oci.insecure)
            except StorageError as err:
                raise StorageError(f"getting digest for subj {image_name}: {err}") from err
            destination = attached_image_tag(
                self._target_repository(ref), ref.digest, ATTESTATION_TAG_SUFFIX
            )
            try:
                # The signed envelope is the payload; there is no separate signature.
                self._uploader.upload(
                    b"", signature.encode(), destination,
                    opts.cert.encode(), opts.chain.encode(), DSSE_PAYLOAD_TYPE,
                )
            except StorageError as err:
                raise StorageError(f"uploading: {err}") from err
            self._logger.info(
                "Successfully uploaded attestation for %s to %s", image_name, destination
            )

    def type(self) -> str:
        return STORAGE_BACKEND_OCI

    def retrieve_signature(self, opts: StorageOpts) -> str:
        raise StorageError("retrieving signatures is not supported by the OCI backend")

    def retrieve_payload(self, opts: StorageOpts) -> str:
        raise StorageError("retrieving payloads is not supported by the OCI backend")