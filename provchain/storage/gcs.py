"""Storage of signatures as objects in a bucket."""

from __future__ import annotations

import io
import logging
import posixpath
import threading
from typing import BinaryIO, Protocol

from ..config import Config, StorageOpts
from .base import Backend, StorageError, TaskRun

STORAGE_BACKEND_GCS = "gcs"
SIGNATURE_NAME_FORMAT = "taskrun-{namespace}-{name}/{key}.signature"
PAYLOAD_NAME_FORMAT = "taskrun-{namespace}-{name}/{key}.payload"


class ObjectWriter(Protocol):
    def open_writer(self, name: str) -> BinaryIO: ...


class ObjectReader(Protocol):
    def open_reader(self, name: str) -> BinaryIO: ...


class _MemoryWriter(io.BytesIO):
    def __init__(self, bucket: MemoryBucket, name: str) -> None:
        super().__init__()
        self._bucket = bucket
        self._name = name

    def close(self) -> None:
        if not self.closed:
            self._bucket._save(self._name, self.getvalue())
        super().close()


class MemoryBucket:
    """A bucket kept in memory; objects appear when their writer is closed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, bytes] = {}

    def _save(self, name: str, data: bytes) -> None:
        with self._lock:
            self._objects[name] = data

    def open_writer(self, name: str) -> BinaryIO:
        """Return a writable file whose contents are stored under name on close."""
        return _MemoryWriter(self, name)

    def open_reader(self, name: str) -> BinaryIO:
        """Return a readable file over the named object."""
        with self._lock:
            try:
                data = self._objects[name]
            except KeyError:
                raise StorageError(f"object {name!r} does not exist") from None
        return io.BytesIO(data)


class GCSBackend(Backend):
    """Stores signatures, payloads, certificates and chains as bucket objects."""

    def __init__(
        self,
        logger: logging.Logger | None,
        task_run: TaskRun,
        cfg: Config,
        writer: ObjectWriter,
        reader: ObjectReader,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._task_run = task_run
        self._cfg = cfg
        self._writer = writer
        self._reader = reader

    def _write(self, name: str, data: bytes) -> None:
        with self._writer.open_writer(name) as obj:
            obj.write(data)

    def store_payload(self, raw_payload: bytes, signature: str, opts: StorageOpts) -> None:
        root = f"taskrun-{self._task_run.namespace}-{self._task_run.name}"

        def object_name(suffix: str) -> str:
            return posixpath.normpath(posixpath.join(root, f"{opts.key}.{suffix}"))

        sig_name = object_name("signature")
        self._logger.info("Storing payload at %s", sig_name)
        self._write(sig_name, signature.encode())
        self._write(object_name("payload"), raw_payload)

        if not opts.cert:
            return
        self._write(object_name("cert"), opts.cert.encode())
        self._write(object_name("chain"), opts.chain.encode())

    def type(self) -> str:
        return STORAGE_BACKEND_GCS

    def _object_name(self, template: str, opts: StorageOpts) -> str:
        return template.format(
            namespace=self._task_run.namespace, name=self._task_run.name, key=opts.key
        )

    def retrieve_signature(self, opts: StorageOpts) -> str:
        return self._retrieve_object(self._object_name(SIGNATURE_NAME_FORMAT, opts))

    def retrieve_payload(self, opts: StorageOpts) -> str:
        return self._retrieve_object(self._object_name(PAYLOAD_NAME_FORMAT, opts))

    def _retrieve_object(self, name: str) -> str:
        with self._reader.open_reader(name) as obj:
            return obj.read().decode("utf-8", "surrogateescape")