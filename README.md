# provchain

provchain reads a flat key/value configuration for signing task runs and
images and turns it into typed settings. It also stores signed payloads and
their signatures through several storage backends and reads them back. All
of the storage in this package is held in memory.

## Installation

```
pip install provchain
```

## Configuration (`provchain.config`)

`new_config_from_map(data)` starts from `default_config()` and applies the
keys it recognises. It ignores any other key. A value outside the allowed set
of a constrained key raises `ConfigError`, which is a subclass of `ValueError`.
`new_config_from_config_map(config_map)` does the same with the `"data"` entry
of a config-map mapping.

```python
from provchain.config import new_config_from_map

cfg = new_config_from_map({
    "artifacts.taskrun.signer": "kms",
    "artifacts.taskrun.storage": "gcs",
    "storage.gcs.bucket": "my-bucket",
    "transparency.enabled": "manual",
})
assert cfg.artifacts.task_runs.signer == "kms"
assert cfg.storage.gcs.bucket == "my-bucket"
assert cfg.transparency.enabled and cfg.transparency.verify_annotation
```

Defaults:

- Task runs use format `tekton`, storage `tekton` and signer `x509`.
- OCI images use format `simplesigning`, storage `oci` and signer `x509`.
- The builder id is `tekton-chains`.
- Fulcio auth is `google`.
- The transparency log and Fulcio each have a default address.

Recognised keys:

| key | allowed values |
| --- | --- |
| `artifacts.taskrun.format` | `tekton`, `in-toto`, `tekton-provenance` |
| `artifacts.taskrun.storage` | `tekton`, `oci`, `gcs`, `docdb` |
| `artifacts.taskrun.signer` | `x509`, `kms` |
| `artifacts.oci.format` | `tekton`, `simplesigning` |
| `artifacts.oci.storage` | `tekton`, `oci`, `gcs`, `docdb` |
| `artifacts.oci.signer` | `x509`, `kms` |
| `storage.gcs.bucket`, `storage.oci.repository`, `storage.docdb.url` | any |
| `storage.oci.repository.insecure` | boolean; values that do not parse are ignored |
| `transparency.enabled` | `true` or `manual` enable it; `manual` also sets `verify_annotation` |
| `transparency.url`, `signers.kms.kmsref`, `builder.id` | any |
| `signers.x509.fulcio.enabled` | boolean; values that do not parse are ignored |
| `signers.x509.fulcio.address`, `signers.x509.fulcio.auth` | any |

`StorageOpts` carries `key`, `cert`, `chain` and `payload_format` to the
storage backends.

## Live configuration (`provchain.store`)

`ConfigStore(logger, *callbacks)` holds the latest valid configuration.

- `on_config_changed(config_map)` rebuilds the configuration, but only for a
  config map whose `metadata.name` is `chains-config`. When the data is
  invalid, it logs the error and keeps the previous configuration. After each
  successful update it calls every callback with the name and the new
  `Config`.
- `load()` returns an independent copy. It raises `LookupError` when no
  configuration has been loaded yet.

`to_context(config)` returns a `contextvars.Context` that carries a
configuration, and `ConfigStore.to_context()` does the same with the stored
one. Code that runs inside that context reads the configuration with
`from_context()`, for example `ctx.run(from_context)`.

## Annotation patches (`provchain.patch`)

`get_annotations_patch(annotations)` returns a compact JSON merge patch, as
bytes, with sorted keys:

- `{"a": "b"}` gives `{"metadata":{"annotations":{"a":"b"}}}`.
- An empty mapping gives `{"metadata":{}}`.

## Storage backends (`provchain.storage`)

Every backend is a `provchain.storage.base.Backend`. It has
`store_payload(raw_payload, signature, opts)`, `retrieve_payload(opts)`,
`retrieve_signature(opts)` and `type()`. `TaskRun` holds the namespace, name,
uid, annotations and service account name that the backends use. Failures are
raised as `StorageError`.

- `tekton.TektonBackend(pipeline_client, logger, task_run)` base64-encodes the
  payload, signature, certificate and chain. It writes them as
  `chains.tekton.dev/payload-<key>`, `signature-<key>`, `cert-<key>` and
  `chain-<key>` annotations, by sending a merge patch to a `PipelineClient`.
  `PipelineClient` is an in-memory store of task runs. A missing annotation
  reads back as an empty string.
- `gcs.GCSBackend(logger, task_run, cfg, writer, reader)` writes the objects
  `taskrun-<namespace>-<name>/<key>.signature` and `.payload`. When
  `opts.cert` is set, it also writes `.cert` and `.chain`. `MemoryBucket`
  serves as both writer and reader, and an object appears when its writer is
  closed.
- `docdb.DocDBBackend(logger, task_run, collection)` stores a
  `SignedDocument` for each key. The payload must be JSON, and the signature
  is kept base64-encoded. `open_collection("mem://<collection>/<keyfield>")`
  returns a `MemoryCollection` keyed by that `SignedDocument` field, for
  example `mem://chains/name`. `new_storage_backend(logger, task_run, cfg)`
  opens the collection named by `storage.docdb.url`.
- `oci.OCIBackend(logger, task_run, cfg, uploader)` handles two payload
  formats:
  - For `simplesigning` payloads it records the signature under the tag
    `sha256-<hex>.sig` of the image repository.
  - For `in-toto` and `tekton-provenance` statements it records one
    attestation for each subject under `sha256-<hex>.att`. A statement with
    no subjects raises `StorageError`.

  `storage.oci.repository`, when set, replaces the target repository.
  `SignatureUploader` keeps the records in `uploads`, keyed by tag.
  `attached_image_tag(repository, digest, suffix)` builds such a tag. This
  backend cannot read values back: both retrieve methods raise `StorageError`.

`factory.initialize_backends(cfg, task_run, logger, pipeline_client,
object_store, uploader)` builds the backends named by the task-run and OCI
storage settings and returns them keyed by type. A `tekton` backend needs a
`pipeline_client` and a `gcs` backend needs an `object_store`; either one
missing raises `StorageError`.

```python
from provchain.config import StorageOpts, new_config_from_map
from provchain.storage.base import TaskRun
from provchain.storage.gcs import GCSBackend, MemoryBucket

bucket = MemoryBucket()
cfg = new_config_from_map({"storage.gcs.bucket": "b"})
backend = GCSBackend(None, TaskRun(namespace="ns", name="run"), cfg, bucket, bucket)
opts = StorageOpts(key="abc")
backend.store_payload(b"payload", "sig", opts)
assert backend.retrieve_signature(opts) == "sig"
assert backend.retrieve_payload(opts) == "payload"
```

## What this package does not do

- It does not sign or verify anything, and it does not watch or reconcile
  task runs.
- It has no command-line program.
- It does not connect to a cluster API, a cloud object store, a document
  database or a container registry. Every backend works against the
  in-memory stores described above, or against objects you provide that have
  the same methods.