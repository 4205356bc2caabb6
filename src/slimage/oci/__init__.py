"""Reproducible image layers and OCI image layouts."""

from .layer import (
    LAYER_GZIP_MEDIA_TYPE,
    LAYER_MEDIA_TYPE,
    LayerFile,
    archive_paths,
    build_layer,
    layer_from_archive,
    sha256_digest,
    source_date_epoch,
)
from .layout import (
    OCI_ARCH,
    LayoutInspection,
    LayoutWrite,
    image_config,
    image_manifest,
    manifest_digest,
    read_oci_layout,
    write_oci_layout,
)

__all__ = [
    "LAYER_GZIP_MEDIA_TYPE",
    "LAYER_MEDIA_TYPE",
    "LayerFile",
    "LayoutInspection",
    "LayoutWrite",
    "OCI_ARCH",
    "archive_paths",
    "build_layer",
    "image_config",
    "image_manifest",
    "layer_from_archive",
    "manifest_digest",
    "read_oci_layout",
    "sha256_digest",
    "source_date_epoch",
    "write_oci_layout",
]
