"""Unit tests for history formatting and fingerprints."""

import hashlib
from datetime import datetime

import pytest

from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.core.history import format_history, layers_from_manifest, version_from_manifest
from imagewatch.models.image import ImageLayer
from imagewatch.models.manifest import Manifest


class TestFormatHistory:
    """Tests for format_history."""

    def test_run_command(self):
        """Test shell commands become RUN."""
        assert format_history(["/bin/sh", "-c", "apt-get update"]) == "RUN apt-get update"

    def test_nop_directive(self):
        """Test #(nop) commands become the Dockerfile directive."""
        assert format_history(["/bin/sh", "-c", '#(nop) CMD ["nginx"]']) == 'CMD ["nginx"]'

    def test_copy_prefix_dropped(self):
        """Test the COPY placeholder prefix is removed."""
        cmd = ["/bin/sh", "-c", "#(nop) %s %s in %s  file:abc in /"]
        assert format_history(cmd) == "  file:abc in /"

    def test_empty(self):
        """Test empty input stays empty."""
        assert format_history(None) == ""
        assert format_history([]) == ""
        assert format_history(["/bin/sh", "-c", ""]) == ""

    def test_whitespace_trimmed(self):
        """Test surrounding whitespace is removed."""
        assert format_history(["  /bin/sh -c   echo hi  "]) == "RUN echo hi"


class TestFingerprint:
    """Tests for fingerprint_layers."""

    def test_deterministic(self):
        """Test equal layer commands give equal fingerprints."""
        a = [ImageLayer(blob_sum="x", command="RUN a"), ImageLayer(blob_sum="y", command="RUN b")]
        b = [ImageLayer(blob_sum="p", command="RUN a"), ImageLayer(blob_sum="q", command="RUN b")]
        assert fingerprint_layers(a) == fingerprint_layers(b)

    def test_matches_sha256_of_commands(self):
        """Test the hash is over the concatenated commands."""
        layers = [ImageLayer(command="RUN a"), ImageLayer(command="RUN b")]
        assert fingerprint_layers(layers) == hashlib.sha256(b"RUN aRUN b").hexdigest()

    def test_blob_sum_used_without_command(self):
        """Test empty commands fall back to the blob reference."""
        layers = [ImageLayer(blob_sum="sha256:abc", command=""), ImageLayer(command="RUN b")]
        assert fingerprint_layers(layers) == hashlib.sha256(b"sha256:abcRUN b").hexdigest()

    def test_order_matters(self):
        """Test reordering layers changes the fingerprint."""
        a = [ImageLayer(command="RUN a"), ImageLayer(command="RUN b")]
        assert fingerprint_layers(a) != fingerprint_layers(list(reversed(a)))

    def test_empty(self):
        """Test no layers hash the empty string."""
        assert fingerprint_layers([]) == hashlib.sha256(b"").hexdigest()


class TestManifestConversion:
    """Tests for building versions and layers from manifests."""

    @pytest.fixture
    def manifest(self, manifest_factory) -> Manifest:
        return Manifest.parse(
            manifest_factory(
                "org/app",
                "latest",
                [
                    ("base", ["/bin/sh", "-c", "#(nop) ADD file:abc in /"], "sha256:a"),
                    ("top", ["/bin/sh", "-c", "make install"], "sha256:b"),
                ],
                labels={"maintainer": "me"},
            )
        )

    def test_version_from_manifest(self, manifest):
        """Test the newest history entry describes the version."""
        version = version_from_manifest(manifest, "org/app")
        assert version.sha == "top"
        assert version.image_name == "org/app"
        assert version.author == "someone"
        assert version.layer_count == 2
        assert version.created == datetime(2016, 6, 1, 10, 0, 0, 123456)
        assert '"maintainer": "me"' in version.labels

    def test_version_without_history(self):
        """Test a manifest with no history is rejected."""
        with pytest.raises(ValueError, match="No history"):
            version_from_manifest(Manifest(name="org/app"), "org/app")

    def test_unreadable_created_time(self, manifest_factory):
        """Test a bad timestamp leaves created unset."""
        manifest = Manifest.parse(
            manifest_factory("org/app", "latest", [("top", None, "sha256:a")], created="yesterday")
        )
        assert version_from_manifest(manifest, "org/app").created is None

    def test_layers_in_build_order(self, manifest):
        """Test layers are reversed into build order with sizes attached."""
        layers = layers_from_manifest(manifest, [300, 100])
        assert [layer.command for layer in layers] == ["ADD file:abc in /", "RUN make install"]
        assert [layer.blob_sum for layer in layers] == ["sha256:a", "sha256:b"]
        assert [layer.download_size for layer in layers] == [100, 300]

    def test_layers_size_mismatch(self, manifest):
        """Test sizes must line up with the history."""
        with pytest.raises(ValueError):
            layers_from_manifest(manifest, [1])
