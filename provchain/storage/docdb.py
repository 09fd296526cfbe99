"""Storage of signed payloads as documents in a document collection."""

from __future__ import annotations

import base64
import binascii
import copy
import dataclasses
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlsplit

from ..config import Config, StorageOpts
from .base import Backend, StorageError, TaskRun

STORAGE_TYPE_DOCDB = "docdb"


@dataclass
class SignedDocument:
    """A signed payload with its signature, certificate and chain."""

    signed: bytes = b""
    signature: str = ""
    cert: str = ""
    chain: str = ""
    object: Any = None
    name: str = ""


class Collection(Protocol):
    def put(self, document: SignedDocument) -> None: ...

    def get(self, name: str) -> SignedDocument: ...


class MemoryCollection:
    """A document collection kept in memory, keyed by one document field."""

    def __init__(self, key_field: str = "name") -> None:
        self._key_field = key_field
        self._lock = threading.Lock()
        self._documents: dict[Any, SignedDocument] = {}

    def put(self, document: SignedDocument) -> None:
        """Insert or replace a document."""
        key = getattr(document, self._key_field)
        if not key:
            raise StorageError(f"document has no value for key field {self._key_field!r}")
        with self._lock:
            self._documents[key] = copy.deepcopy(document)

    def get(self, name: str) -> SignedDocument:
        """Return a copy of the document with the given key."""
        with self._lock:
            try:
                return copy.deepcopy(self._documents[name])
            except KeyError:
                raise StorageError(f"document {name!r} not found") from None


def open_collection(url: str) -> MemoryCollection:
    """Open a collection from a URL of the form mem://collection/keyfield."""
    parts = urlsplit(url)
    if parts.scheme != "mem":
        raise StorageError(f"unsupported collection scheme {parts.scheme!r} in {url!r}")
    if not parts.netloc:
        raise StorageError(f"collection name missing in {url!r}")
    key_field = parts.path.strip("/")
    if not key_field:
        raise StorageError(f"key field missing in {url!r}")
    field_names = {f.name for f in dataclasses.fields(SignedDocument)}
    if key_field.lower() not in field_names:
        raise StorageError(f"unknown key field {key_field!r} in {url!r}")
    return MemoryCollection(key_field.lower())


class DocDBBackend(Backend):
    """Stores signed payloads as documents keyed by the storage key."""

    def __init__(
        self, logger: logging.Logger | None, task_run: TaskRun, collection: Collection
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._task_run = task_run
        self._collection = collection

    def store_payload(self, raw_payload: bytes, signature: str, opts: StorageOpts) -> None:
        try:
            obj = json.loads(raw_payload)
        except ValueError as err:
            raise StorageError(f"invalid payload: {err}") from err
        self._collection.put(
            SignedDocument(
                signed=bytes(raw_payload),
                signature=base64.b64encode(signature.encode()).decode("ascii"),
                object=obj,
                name=opts.key,
                cert=opts.cert,
                chain=opts.chain,
            )
        )

    def type(self) -> str:
        return STORAGE_TYPE_DOCDB

    def retrieve_signature(self, opts: StorageOpts) -> str:
        document = self._collection.get(opts.key)
        try:
            decoded = base64.b64decode(document.signature, validate=True)
        except (binascii.Error, ValueError) as err:
            raise StorageError(f"invalid stored signature: {err}") from err
        return decoded.decode("utf-8", "surrogateescape")

    def retrieve_payload(self, opts: StorageOpts) -> str:
        return self._collection.get(opts.key).signed.decode("utf-8", "surrogateescape")


def new_storage_backend(
    logger: logging.Logger | None, task_run: TaskRun, cfg: Config
) -> DocDBBackend:
    """Open the collection named in the config and return a backend over it."""
    return DocDBBackend(logger, task_run, open_collection(cfg.storage.docdb.url))