import json

import pytest

from provchain.config import Config, StorageOpts
from provchain.storage.base import StorageError, TaskRun
from provchain.storage.oci import (
    DSSE_PAYLOAD_TYPE,
    OCIBackend,
    Repository,
    SignatureUploader,
    attached_image_tag,
    parse_digest_reference,
    parse_repository,
)

DIGEST = "05f95b26ed10668b7183c1e2da98610e91372fa9f510046d4ce5812addad86b5"

EMPTY_STATEMENT = json.dumps(
    {"_type": "", "predicateType": "", "subject": None, "predicate": None}
).encode()


def _backend(cfg=None, uploader=None):
    return OCIBackend(None, TaskRun(name="foo", namespace="bar"), cfg or Config(), uploader)


def _simple_signing(reference, digest):
    return json.dumps(
        {
            "critical": {
                "identity": {"docker-reference": reference},
                "image": {"docker-manifest-digest": digest},
                "type": "atomic container signature",
            },
            "optional": None,
        }
    ).encode()


def test_no_subject_is_an_error():
    with pytest.raises(StorageError, match="Did not find anything to attest"):
        _backend().store_payload(EMPTY_STATEMENT, "", StorageOpts(payload_format="tekton-provenance"))


def test_unknown_format_is_an_error():
    with pytest.raises(StorageError, match="only supported for OCI images"):
        _backend().store_payload(b"{}", "sig", StorageOpts(payload_format="tekton"))


def test_malformed_attestation():
    with pytest.raises(StorageError, match="unmarshal attestation"):
        _backend().store_payload(b"not json", "sig", StorageOpts(payload_format="in-toto"))


def test_malformed_simplesigning():
    with pytest.raises(StorageError, match="unmarshal simplesigning"):
        _backend().store_payload(b"[", "sig", StorageOpts(payload_format="simplesigning"))


def test_simplesigning_upload():
    uploader = SignatureUploader()
    payload = _simple_signing("gcr.io/foo/bar", f"sha256:{DIGEST}")
    opts = StorageOpts(payload_format="simplesigning", cert="cert", chain="chain")
    _backend(uploader=uploader).store_payload(payload, "sig", opts)

    key = f"gcr.io/foo/bar:sha256-{DIGEST}.sig"
    assert list(uploader.uploads) == [key]
    (record,) = uploader.uploads[key]
    assert record.signature == b"sig"
    assert record.payload == payload
    assert record.cert == b"cert"
    assert record.chain == b"chain"


def test_simplesigning_bad_digest():
    payload = _simple_signing("gcr.io/foo/bar", "sha256:abc")
    with pytest.raises(StorageError, match="getting digest"):
        _backend().store_payload(payload, "sig", StorageOpts(payload_format="simplesigning"))


def test_repository_override():
    cfg = Config()
    cfg.storage.oci.repository = "registry.example.com/sigs"
    uploader = SignatureUploader()
    payload = _simple_signing("gcr.io/foo/bar", f"sha256:{DIGEST}")
    _backend(cfg, uploader).store_payload(payload, "sig", StorageOpts(payload_format="simplesigning"))
    assert list(uploader.uploads) == [f"registry.example.com/sigs:sha256-{DIGEST}.sig"]


def test_invalid_repository_override():
    cfg = Config()
    cfg.storage.oci.repository = "Not/Valid"
    payload = _simple_signing("gcr.io/foo/bar", f"sha256:{DIGEST}")
    with pytest.raises(StorageError, match="Not/Valid is not a valid repository"):
        _backend(cfg).store_payload(payload, "sig", StorageOpts(payload_format="simplesigning"))


def test_attestation_uploaded_per_subject():
    uploader = SignatureUploader()
    other = "1" * 64
    statement = json.dumps(
        {
            "_type": "https://in-toto.io/Statement/v0.1",
            "subject": [
                {"name": "gcr.io/foo/bar", "digest": {"sha256": DIGEST}},
                {"name": "localhost:5000/baz", "digest": {"sha256": other}},
            ],
        }
    ).encode()
    _backend(uploader=uploader).store_payload(
        statement, "envelope", StorageOpts(payload_format="in-toto")
    )
    assert sorted(uploader.uploads) == [
        f"gcr.io/foo/bar:sha256-{DIGEST}.att",
        f"localhost:5000/baz:sha256-{other}.att",
    ]
    record = uploader.uploads[f"gcr.io/foo/bar:sha256-{DIGEST}.att"][0]
    assert record.signature == b""
    assert record.payload == b"envelope"
    assert record.media_type == DSSE_PAYLOAD_TYPE


def test_insecure_flag_is_carried():
    cfg = Config()
    cfg.storage.oci.insecure = True
    uploader = SignatureUploader()
    payload = _simple_signing("localhost:5000/img", f"sha256:{DIGEST}")
    _backend(cfg, uploader).store_payload(payload, "sig", StorageOpts(payload_format="simplesigning"))
    (records,) = uploader.uploads.values()
    assert records[0].destination.repository.insecure is True


def test_retrieve_is_unsupported():
    backend = _backend()
    with pytest.raises(StorageError):
        backend.retrieve_signature(StorageOpts())
    with pytest.raises(StorageError):
        backend.retrieve_payload(StorageOpts())


def test_type():
    assert _backend().type() == "oci"


def test_attached_image_tag():
    repo = Repository("gcr.io", "foo/bar")
    assert str(attached_image_tag(repo, f"sha256:{DIGEST}", "sig")) == f"gcr.io/foo/bar:sha256-{DIGEST}.sig"


def test_default_registry():
    repo = parse_repository("busybox")
    assert repo.name == "index.docker.io/library/busybox"


def test_digest_reference_drops_tag():
    ref = parse_digest_reference(f"localhost:5000/img:latest@sha256:{DIGEST}")
    assert str(ref) == f"localhost:5000/img@sha256:{DIGEST}"


def test_digest_reference_needs_separator():
    with pytest.raises(StorageError):
        parse_digest_reference("gcr.io/foo/bar")