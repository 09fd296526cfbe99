"""Storage backends for signed payloads, with in-memory stores, and a factory that builds them."""

__all__ = ["base", "tekton", "gcs", "docdb", "oci", "factory"]