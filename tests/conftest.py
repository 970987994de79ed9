"""Pytest configuration and fixtures."""

import copy

import pytest
from kubernetes import client

from image_clone.config import Settings
from image_clone.context import ExecutionContext
from image_clone.exceptions import ObjectNotFound
from image_clone.registry import Credentials, ImageHandle, RegistryCommandError
from image_clone.workitem import WorkloadKind, WorkloadRef
from image_clone.workloads import Workload

BACKUP_REGISTRY = "backup.local/ns"


def _pod_template(images, init_images=None):
    containers = [client.V1Container(name=f"c{i}", image=image) for i, image in enumerate(images)]
    init_containers = None
    if init_images:
        init_containers = [
            client.V1Container(name=f"init{i}", image=image) for i, image in enumerate(init_images)
        ]
    return client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels={"app": "test"}),
        spec=client.V1PodSpec(containers=containers, init_containers=init_containers),
    )


def make_deployment(name="server", namespace="test", images=("nginx:latest",), init_images=None):
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, resource_version="1"),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            template=_pod_template(list(images), init_images),
        ),
    )


def make_daemonset(name="server", namespace="test", images=("nginx:latest",), init_images=None):
    return client.V1DaemonSet(
        api_version="apps/v1",
        kind="DaemonSet",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, resource_version="1"),
        spec=client.V1DaemonSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            template=_pod_template(list(images), init_images),
        ),
    )


class FakeObjectStore:
    """In-memory ObjectStore recording every call."""

    def __init__(self):
        self.objects = {}
        self.get_calls = []
        self.update_calls = []
        self.update_error = None

    def add(self, kind, obj):
        self.objects[(kind, obj.metadata.namespace, obj.metadata.name)] = copy.deepcopy(obj)

    def stored(self, kind, namespace, name):
        return self.objects[(kind, namespace, name)]

    def get(self, ref, ctx):
        self.get_calls.append(ref)
        key = (ref.kind, ref.namespace, ref.name)
        if key not in self.objects:
            raise ObjectNotFound(f"could not find {ref}")
        return Workload(ref=ref, obj=copy.deepcopy(self.objects[key]))

    def update(self, workload, ctx):
        self.update_calls.append(workload.ref)
        if self.update_error is not None:
            raise self.update_error
        ref = workload.ref
        self.objects[(ref.kind, ref.namespace, ref.name)] = copy.deepcopy(workload.obj)


class FakeRegistry:
    """In-memory RegistryClient: reference -> digest."""

    def __init__(self, images=None):
        self.images = dict(images or {})
        self.fetch_calls = []
        self.writes = []
        self.write_error = None

    def fetch(self, reference, credentials, ctx):
        self.fetch_calls.append((reference, credentials))
        if reference not in self.images:
            raise RegistryCommandError(f"MANIFEST_UNKNOWN: {reference}", "not_found")
        return ImageHandle(reference=reference, digest=self.images[reference])

    def write(self, reference, handle, credentials, ctx):
        self.writes.append((reference, handle, credentials))
        if self.write_error is not None:
            raise self.write_error
        self.images[reference] = handle.digest

    def digest(self, handle):
        return handle.digest


@pytest.fixture
def settings():
    return Settings(backup_registry=BACKUP_REGISTRY)


@pytest.fixture
def ctx():
    return ExecutionContext()


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def registry():
    return FakeRegistry(
        {
            "nginx:latest": "sha256:" + "a" * 64,
            "docker.io/library/redis:7": "sha256:" + "b" * 64,
            "busybox:1.36": "sha256:" + "c" * 64,
        }
    )


@pytest.fixture
def deployment_ref():
    return WorkloadRef(kind=WorkloadKind.DEPLOYMENT, name="server", namespace="test")


@pytest.fixture
def basic_credentials():
    return Credentials(username="robot", password="s3cret")
