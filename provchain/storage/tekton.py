"""Storage of signatures as annotations on the task run itself."""

from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
import threading
from collections.abc import Iterable
from typing import Any

from ..config import StorageOpts
from ..patch import get_annotations_patch
from .base import Backend, StorageError, TaskRun

STORAGE_BACKEND_TEKTON = "tekton"
PAYLOAD_ANNOTATION_FORMAT = "chains.tekton.dev/payload-{}"
SIGNATURE_ANNOTATION_FORMAT = "chains.tekton.dev/signature-{}"
CERT_ANNOTATION_FORMAT = "chains.tekton.dev/cert-{}"
CHAIN_ANNOTATION_FORMAT = "chains.tekton.dev/chain-{}"


def _merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch to a decoded JSON value."""
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


def _to_document(task_run: TaskRun) -> dict[str, Any]:
    return {
        "metadata": {
            "namespace": task_run.namespace,
            "name": task_run.name,
            "uid": task_run.uid,
            "annotations": dict(task_run.annotations),
        },
        "spec": {"serviceAccountName": task_run.service_account_name},
    }


def _from_document(document: dict[str, Any]) -> TaskRun:
    metadata = document.get("metadata") or {}
    spec = document.get("spec") or {}
    annotations = metadata.get("annotations") or {}
    if not all(isinstance(v, str) for v in annotations.values()):
        raise StorageError("annotation values must be strings")
    return TaskRun(
        namespace=metadata.get("namespace", ""),
        name=metadata.get("name", ""),
        uid=metadata.get("uid", ""),
        annotations=dict(annotations),
        service_account_name=spec.get("serviceAccountName", ""),
    )


class PipelineClient:
    """An in-memory store of task runs that accepts JSON merge patches."""

    def __init__(self, task_runs: Iterable[TaskRun] = ()) -> None:
        self._lock = threading.Lock()
        self._task_runs: dict[tuple[str, str], TaskRun] = {
            (tr.namespace, tr.name): copy.deepcopy(tr) for tr in task_runs
        }

    def get_task_run(self, namespace: str, name: str) -> TaskRun:
        """Return a copy of the named task run."""
        with self._lock:
            try:
                return copy.deepcopy(self._task_runs[(namespace, name)])
            except KeyError:
                raise StorageError(f'taskruns "{name}" not found') from None

    def patch_task_run(self, namespace: str, name: str, patch: bytes) -> TaskRun:
        """Apply a JSON merge patch to the named task run and return the result."""
        try:
            decoded = json.loads(patch)
        except ValueError as err:
            raise StorageError(f"invalid patch: {err}") from err
        with self._lock:
            try:
                current = self._task_runs[(namespace, name)]
            except KeyError:
                raise StorageError(f'taskruns "{name}" not found') from None
            updated = _from_document(_merge_patch(_to_document(current), decoded))
            self._task_runs[(namespace, name)] = updated
            return copy.deepcopy(updated)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TektonBackend(Backend):
    """Stores base64-encoded payloads and signatures as task run annotations."""

    def __init__(
        self,
        pipeline_client: PipelineClient,
        logger: logging.Logger | None,
        task_run: TaskRun,
    ) -> None:
        self._client = pipeline_client
        self._logger = logger or logging.getLogger(__name__)
        self._task_run = task_run

    def store_payload(self, raw_payload: bytes, signature: str, opts: StorageOpts) -> None:
        tr = self._task_run
        self._logger.info("Storing payload on TaskRun %s/%s", tr.namespace, tr.name)
        # A patch rather than an update avoids racing other writers.
        patch = get_annotations_patch(
            {
                PAYLOAD_ANNOTATION_FORMAT.format(opts.key): _b64(raw_payload),
                SIGNATURE_ANNOTATION_FORMAT.format(opts.key): _b64(signature.encode()),
                CERT_ANNOTATION_FORMAT.format(opts.key): _b64(opts.cert.encode()),
                CHAIN_ANNOTATION_FORMAT.format(opts.key): _b64(opts.chain.encode()),
            }
        )
        self._client.patch_task_run(tr.namespace, tr.name, patch)

    def type(self) -> str:
        return STORAGE_BACKEND_TEKTON

    def _retrieve_annotation_value(self, annotation_key: str, decode: bool) -> str:
        tr = self._task_run
        self._logger.info(
            "Retrieving annotation %r on TaskRun %s/%s", annotation_key, tr.namespace, tr.name
        )
        try:
            current = self._client.get_task_run(tr.namespace, tr.name)
        except StorageError as err:
            raise StorageError(f"error retrieving taskrun: {err}") from err

        raw = current.annotations.get(annotation_key)
        if raw is None:
            return ""
        if not decode:
            return raw
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as err:
            raise StorageError(
                f"error decoding the annotation value for the key {json.dumps(annotation_key)}: {err}"
            ) from err
        return decoded.decode("utf-8", "surrogateescape")

    def retrieve_signature(self, opts: StorageOpts) -> str:
        tr = self._task_run
        self._logger.info("Retrieving signature on TaskRun %s/%s", tr.namespace, tr.name)
        return self._retrieve_annotation_value(SIGNATURE_ANNOTATION_FORMAT.format(opts.key), True)

    def retrieve_payload(self, opts: StorageOpts) -> str:
        tr = self._task_run
        self._logger.info("Retrieving payload on TaskRun %s/%s", tr.namespace, tr.name)
        return self._retrieve_annotation_value(PAYLOAD_ANNOTATION_FORMAT.format(opts.key), True)