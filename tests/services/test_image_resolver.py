import pytest

from defenderpin.errors import (
    ArchiveLoadFailed,
    ArchiveNotFound,
    ArtifactMismatch,
    InstallerError,
    MissingImageSource,
    RegistryPullFailed,
    RetagFailed,
    SourceImageNotFound,
)
from defenderpin.models import ArchiveFile, ExistingImage, NoImageSource, Registry
from defenderpin.services.image_resolver import ImageResolver, local_image_name


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeDockerRuntime:
    def __init__(self, images=(), archive_images=(), fail=()):
        self.images = set(images)
        self.archive_images = list(archive_images)
        self.fail = set(fail)
        self.calls = []

    def image_exists(self, image):
        self.calls.append(("exists", image))
        return image in self.images

    def load_archive(self, path):
        self.calls.append(("load", path))
        if "load" in self.fail:
            raise InstallerError("load failed")
        self.images.update(self.archive_images)
        return list(self.archive_images)

    def tag(self, source, target):
        self.calls.append(("tag", source, target))
        if "tag" in self.fail:
            raise InstallerError("tag failed")
        self.images.add(target)

    def pull(self, image):
        self.calls.append(("pull", image))
        if "pull" in self.fail:
            raise InstallerError("pull failed")
        self.images.add(image)

    def mutations(self):
        return [call for call in self.calls if call[0] != "exists"]


def build_resolver(docker):
    return ImageResolver(docker_runtime_service=docker, logger=DummyLogger(), console=DummyConsole())


def test_local_image_name_uses_namespace_and_prefix():
    assert local_image_name("_1_2_3") == "twistlock/private:defender_1_2_3"


def test_existing_local_image_short_circuits(make_request):
    docker = FakeDockerRuntime(images={"twistlock/private:defender_9_9_9"})
    request = make_request(version_tag="_9_9_9", image_source=Registry("registry.example.com"))

    first = build_resolver(docker).resolve(request)
    second = build_resolver(docker).resolve(request)

    assert first == second == "twistlock/private:defender_9_9_9"
    assert docker.mutations() == []


def test_archive_is_loaded_and_verified(tmp_path, make_request):
    archive = tmp_path / "defender.tar.gz"
    archive.write_bytes(b"archive")
    docker = FakeDockerRuntime(archive_images=["twistlock/private:defender_9_9_9"])
    request = make_request(version_tag="_9_9_9", image_source=ArchiveFile(str(archive)))

    resolved = build_resolver(docker).resolve(request)

    assert resolved == "twistlock/private:defender_9_9_9"
    assert docker.mutations() == [("load", str(archive))]


def test_missing_archive_raises_before_loading(tmp_path, make_request):
    docker = FakeDockerRuntime()
    request = make_request(
        version_tag="_9_9_9",
        image_source=ArchiveFile(str(tmp_path / "missing.tar.gz")),
    )

    with pytest.raises(ArchiveNotFound, match="missing.tar.gz"):
        build_resolver(docker).resolve(request)

    assert docker.mutations() == []


def test_archive_load_failure_is_reported(tmp_path, make_request):
    archive = tmp_path / "broken.tar.gz"
    archive.write_bytes(b"broken")
    docker = FakeDockerRuntime(fail={"load"})
    request = make_request(version_tag="_9_9_9", image_source=ArchiveFile(str(archive)))

    with pytest.raises(ArchiveLoadFailed):
        build_resolver(docker).resolve(request)


def test_archive_with_other_image_is_a_mismatch(tmp_path, make_request):
    archive = tmp_path / "other.tar.gz"
    archive.write_bytes(b"archive")
    docker = FakeDockerRuntime(archive_images=["twistlock/private:defender_1_0_0"])
    request = make_request(version_tag="_9_9_9", image_source=ArchiveFile(str(archive)))

    with pytest.raises(ArtifactMismatch, match="defender_1_0_0"):
        build_resolver(docker).resolve(request)


def test_existing_image_is_retagged_without_removing_source(make_request):
    source = "registry.example.com/twistlock/defender:defender_9_9_9"
    docker = FakeDockerRuntime(images={source})
    request = make_request(version_tag="_9_9_9", image_source=ExistingImage(source))

    resolved = build_resolver(docker).resolve(request)

    assert docker.mutations() == [("tag", source, resolved)]
    assert source in docker.images


def test_missing_source_image_is_reported(make_request):
    docker = FakeDockerRuntime()
    request = make_request(version_tag="_9_9_9", image_source=ExistingImage("nope:latest"))

    with pytest.raises(SourceImageNotFound, match="nope:latest"):
        build_resolver(docker).resolve(request)

    assert docker.mutations() == []


def test_retag_failure_is_reported(make_request):
    docker = FakeDockerRuntime(images={"src:1"}, fail={"tag"})
    request = make_request(version_tag="_9_9_9", image_source=ExistingImage("src:1"))

    with pytest.raises(RetagFailed):
        build_resolver(docker).resolve(request)


def test_registry_image_is_pulled_then_tagged(make_request):
    docker = FakeDockerRuntime()
    request = make_request(version_tag="_9_9_9", image_source=Registry("registry.example.com/mirror/"))

    resolved = build_resolver(docker).resolve(request)

    remote = "registry.example.com/mirror/twistlock/private:defender_9_9_9"
    assert docker.mutations() == [("pull", remote), ("tag", remote, resolved)]


def test_registry_pull_failure_is_reported(make_request):
    docker = FakeDockerRuntime(fail={"pull"})
    request = make_request(version_tag="_9_9_9", image_source=Registry("registry.example.com"))

    with pytest.raises(RegistryPullFailed):
        build_resolver(docker).resolve(request)


def test_missing_image_source_raises(make_request):
    docker = FakeDockerRuntime()
    request = make_request(version_tag="_9_9_9", image_source=NoImageSource())

    with pytest.raises(MissingImageSource):
        build_resolver(docker).resolve(request)

    assert docker.calls == []
