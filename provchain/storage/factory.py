"""Creation of the storage backends that the configuration asks for."""

from __future__ import annotations

import logging

from ..config import Config
from . import docdb
from .base import Backend, StorageError, TaskRun
from .gcs import STORAGE_BACKEND_GCS, GCSBackend, MemoryBucket
from .oci import STORAGE_BACKEND_OCI, OCIBackend, SignatureUploader
from .tekton import STORAGE_BACKEND_TEKTON, PipelineClient, TektonBackend


def initialize_backends(
    cfg: Config,
    task_run: TaskRun,
    logger: logging.Logger | None = None,
    pipeline_client: PipelineClient | None = None,
    object_store: MemoryBucket | None = None,
    uploader: SignatureUploader | None = None,
) -> dict[str, Backend]:
    """Create every storage backend named in the artifact configuration."""
    configured = (cfg.artifacts.task_runs.storage_backend, cfg.artifacts.oci.storage_backend)
    backends: dict[str, Backend] = {}
    for backend_type in configured:
        if backend_type == STORAGE_BACKEND_GCS:
            if object_store is None:
                raise StorageError("the gcs backend needs an object store")
            backends[backend_type] = GCSBackend(logger, task_run, cfg, object_store, object_store)
        elif backend_type == STORAGE_BACKEND_TEKTON:
            if pipeline_client is None:
                raise StorageError("the tekton backend needs a pipeline client")
            backends[backend_type] = TektonBackend(pipeline_client, logger, task_run)
        elif backend_type == STORAGE_BACKEND_OCI:
            backends[backend_type] = OCIBackend(logger, task_run, cfg, uploader)
        elif backend_type == docdb.STORAGE_TYPE_DOCDB:
            backends[backend_type] = docdb.new_storage_backend(logger, task_run, cfg)
    return backends