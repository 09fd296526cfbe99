import pytest

from provchain.config import (
    Artifact,
    ArtifactConfigs,
    BuilderConfig,
    Config,
    ConfigError,
    StorageOpts,
    SignerConfigs,
    TransparencyConfig,
    X509Signer,
    default_config,
    new_config_from_config_map,
    new_config_from_map,
)


def _expected(signers=None, transparency=None):
    return Config(
        builder=BuilderConfig(id="tekton-chains"),
        artifacts=ArtifactConfigs(
            task_runs=Artifact(format="tekton", storage_backend="tekton", signer="x509"),
            oci=Artifact(format="simplesigning", storage_backend="oci", signer="x509"),
        ),
        signers=signers
        or SignerConfigs(
            x509=X509Signer(fulcio_auth="google", fulcio_addr="https://fulcio.sigstore.dev")
        ),
        transparency=transparency or TransparencyConfig(url="https://rekor.sigstore.dev"),
    )


@pytest.mark.parametrize(
    "data, want",
    [
        ({}, _expected()),
        ({"artifacts.taskrun.signer": "x509"}, _expected()),
        (
            {"transparency.enabled": "manual"},
            _expected(
                transparency=TransparencyConfig(
                    enabled=True, verify_annotation=True, url="https://rekor.sigstore.dev"
                )
            ),
        ),
        ({"artifacts.taskrun.signer": "x509", "other-key": "foo"}, _expected()),
        (
            {
                "artifacts.taskrun.signer": "x509",
                "signers.x509.fulcio.enabled": "true",
                "signers.x509.fulcio.address": "fulcio-address",
            },
            _expected(
                signers=SignerConfigs(
                    x509=X509Signer(
                        fulcio_enabled=True, fulcio_auth="google", fulcio_addr="fulcio-address"
                    )
                )
            ),
        ),
        (
            {"transparency.enabled": "true"},
            _expected(transparency=TransparencyConfig(enabled=True, url="https://rekor.sigstore.dev")),
        ),
    ],
    ids=["empty", "single", "manual transparency", "extra", "fulcio", "rekor - true"],
)
def test_parse(data, want):
    assert new_config_from_map(data) == want


def test_default_config_matches_empty_parse():
    assert default_config() == _expected()


def test_invalid_value_raises():
    with pytest.raises(ConfigError) as excinfo:
        new_config_from_map({"artifacts.taskrun.signer": "bogus"})
    assert str(excinfo.value) == 'failed to parse data: invalid value "bogus" wanted one of [kms x509]'


def test_invalid_storage_backend_raises():
    with pytest.raises(ConfigError, match="docdb gcs oci tekton"):
        new_config_from_map({"artifacts.oci.storage": "s3"})


def test_storage_values_pass_through():
    cfg = new_config_from_map(
        {
            "artifacts.taskrun.storage": "gcs",
            "storage.gcs.bucket": "my-bucket",
            "storage.oci.repository": "registry.example.com/sigs",
            "storage.docdb.url": "mem://chains/name",
            "signers.kms.kmsref": "kms-ref",
            "builder.id": "my-builder",
            "transparency.url": "https://tlog.example.com",
        }
    )
    assert cfg.artifacts.task_runs.storage_backend == "gcs"
    assert cfg.storage.gcs.bucket == "my-bucket"
    assert cfg.storage.oci.repository == "registry.example.com/sigs"
    assert cfg.storage.docdb.url == "mem://chains/name"
    assert cfg.signers.kms.kms_ref == "kms-ref"
    assert cfg.builder.id == "my-builder"
    assert cfg.transparency.url == "https://tlog.example.com"


@pytest.mark.parametrize(
    "raw, want", [("T", True), ("1", True), ("True", True), ("false", False), ("yes", False)]
)
def test_bool_parsing(raw, want):
    cfg = new_config_from_map({"storage.oci.repository.insecure": raw})
    assert cfg.storage.oci.insecure is want


def test_unparseable_bool_keeps_value():
    cfg = new_config_from_map({"signers.x509.fulcio.enabled": "maybe"})
    assert cfg.signers.x509.fulcio_enabled is False


def test_transparency_other_value_stays_disabled():
    cfg = new_config_from_map({"transparency.enabled": "false"})
    assert (cfg.transparency.enabled, cfg.transparency.verify_annotation) == (False, False)


def test_from_config_map():
    cfg = new_config_from_config_map(
        {"metadata": {"name": "chains-config"}, "data": {"artifacts.taskrun.format": "in-toto"}}
    )
    assert cfg.artifacts.task_runs.format == "in-toto"


def test_from_config_map_without_data():
    assert new_config_from_config_map({"metadata": {"name": "chains-config"}}) == _expected()


def test_storage_opts_defaults():
    opts = StorageOpts(key="k")
    assert (opts.key, opts.cert, opts.chain, opts.payload_format) == ("k", "", "", "")