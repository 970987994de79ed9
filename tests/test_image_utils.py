"""Tests for image reference parsing and translation."""

import pytest

from image_clone.exceptions import InvalidReference
from image_clone.image_utils import (
    ImageReference,
    references_registry,
    translate_image,
    validate_reference,
)

BACKUP = "backup.local/ns"


class TestTranslateImage:
    """Tests for translate_image."""

    def test_flattens_nested_path(self):
        assert (
            translate_image("docker.io/service/platform/nginx:v2", BACKUP)
            == "backup.local/ns:service_platform_nginx_v2"
        )

    def test_bare_name_gets_latest(self):
        assert translate_image("nginx", BACKUP) == "backup.local/ns:nginx_latest"

    def test_bare_name_with_tag(self):
        assert translate_image("nginx:1.25", BACKUP) == "backup.local/ns:nginx_1.25"

    def test_docker_hub_user_repository(self):
        """A first segment without dot, colon or localhost is part of the path."""
        assert translate_image("myuser/app:v1", BACKUP) == "backup.local/ns:myuser_app_v1"

    def test_nested_path_without_tag_gets_latest(self):
        assert translate_image("gcr.io/project/app", BACKUP) == "backup.local/ns:project_app_latest"

    def test_registry_with_port(self):
        assert translate_image("registry.example.com:5000/team/app:2.0", BACKUP) == (
            "backup.local/ns:team_app_2.0"
        )

    def test_localhost_registry(self):
        assert translate_image("localhost/app:dev", BACKUP) == "backup.local/ns:app_dev"

    def test_localhost_with_port(self):
        assert translate_image("localhost:5000/app", BACKUP) == "backup.local/ns:app_latest"

    def test_deterministic(self):
        source = "quay.io/org/team/service:1.2.3"
        assert translate_image(source, BACKUP) == translate_image(source, BACKUP)

    def test_known_collision(self):
        """Flattening makes different sources share one destination."""
        assert translate_image("foo/bar:v1", BACKUP) == translate_image("foo_bar:v1", BACKUP)
        assert translate_image("a/b:c_d", BACKUP) == translate_image("a/b_c:d", BACKUP)

    def test_digest_pinned_source_is_not_addressable(self):
        """The digest separator ends up inside the destination tag."""
        digest_hex = "a" * 64
        destination = translate_image(f"nginx@sha256:{digest_hex}", BACKUP)

        assert destination == f"backup.local/ns:nginx@sha256_{digest_hex}"
        with pytest.raises(InvalidReference, match="bad digest"):
            validate_reference(destination)

    def test_translated_image_references_backup_registry(self):
        assert references_registry(translate_image("redis:7", BACKUP), BACKUP)


class TestImageReferenceParse:
    """Tests for ImageReference.parse."""

    def test_short_name(self):
        ref = ImageReference.parse("nginx")
        assert ref.registry == ""
        assert ref.repository == "nginx"
        assert ref.tag == ""
        assert ref.effective_registry == "docker.io"

    def test_full_reference(self):
        ref = ImageReference.parse("gcr.io/project/app:v1")
        assert ref.registry == "gcr.io"
        assert ref.repository == "project/app"
        assert ref.tag == "v1"

    def test_port_is_not_a_tag(self):
        ref = ImageReference.parse("localhost:5000/app")
        assert ref.registry == "localhost:5000"
        assert ref.repository == "app"
        assert ref.tag == ""

    def test_digest(self):
        digest = "sha256:" + "0" * 64
        ref = ImageReference.parse(f"gcr.io/project/app@{digest}")
        assert ref.digest == digest
        assert ref.tag == ""
        assert ref.name == "gcr.io/project/app"

    def test_backup_destination(self):
        ref = ImageReference.parse("backup.local/ns:nginx_latest")
        assert ref.registry == "backup.local"
        assert ref.repository == "ns"
        assert ref.tag == "nginx_latest"

    def test_pinned(self):
        ref = ImageReference.parse("nginx:1.25")
        assert ref.pinned("sha256:abc") == "nginx@sha256:abc"


class TestValidateReference:
    """Tests for validate_reference."""

    @pytest.mark.parametrize(
        "image",
        [
            "nginx",
            "nginx:latest",
            "library/nginx:1.25",
            "gcr.io/project/app:v1",
            "localhost:5000/app:dev",
            "backup.local/ns:service_platform_nginx_v2",
            "quay.io/org/app@sha256:" + "f" * 64,
        ],
    )
    def test_valid(self, image):
        assert validate_reference(image).repository

    @pytest.mark.parametrize(
        "image",
        [
            "",
            "   ",
            "Nginx:latest",
            "nginx:bad tag",
            "nginx@sha256:xyz",
            "localhost:5000:nginx_latest",
            "backup.local/ns:" + "a" * 200,
        ],
    )
    def test_invalid(self, image):
        with pytest.raises(InvalidReference):
            validate_reference(image)


class TestReferencesRegistry:
    """Tests for the substring containment check."""

    def test_contains(self):
        assert references_registry("backup.local/ns:nginx_latest", BACKUP)

    def test_other_registry(self):
        assert not references_registry("docker.io/nginx:latest", BACKUP)

    def test_substring_false_positive(self):
        """Containment is a substring test, so a path that embeds the registry matches."""
        assert references_registry("gcr.io/mirror/backup.local/ns/app:1", BACKUP)
