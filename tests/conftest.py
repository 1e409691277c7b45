"""
Shared fixtures: an in-memory stand-in for the docker SDK client and a fake
git client, so tests never need a daemon or a network.
"""
import itertools
import threading
from collections import namedtuple
from pathlib import Path

import pytest
from docker.errors import ImageNotFound, NotFound

from depcon.errors import SourceFetchError

ExecResult = namedtuple("ExecResult", ["exit_code", "output"])

_ids = itertools.count(1)
_ports = itertools.count(40000)


class FakeImage:
    def __init__(self, images, image_id):
        self._images = images
        self.id = image_id

    def tag(self, repository, tag=None):
        self._images.tags[f"{repository}:{tag or 'latest'}"] = self.id
        return True


class FakeImages:
    def __init__(self):
        self.tags = {}

    def add(self, reference, image_id=None):
        self.tags[reference] = image_id or f"sha256:{next(_ids):064x}"
        return self.tags[reference]

    def list(self, name=None):
        if name is None:
            return [FakeImage(self, i) for i in set(self.tags.values())]
        if name in self.tags:
            return [FakeImage(self, self.tags[name])]
        return []

    def get(self, reference):
        if reference not in self.tags:
            raise ImageNotFound(f"No such image: {reference}")
        return FakeImage(self, self.tags[reference])


class FakeContainer:
    def __init__(self, client, image, ports=None, environment=None, labels=None, **kwargs):
        self.client = client
        self.id = f"{next(_ids):064x}"
        self.short_id = self.id[:12]
        self.image = image
        self.environment = environment or {}
        self.labels = labels or {}
        self.kwargs = kwargs
        self.status = "created"
        self.removed = False
        self.exit_code = 0
        self.exec_results = []
        self.ports = {}
        for container_port, host_port in (ports or {}).items():
            if host_port is None:
                host_port = next(_ports)
            self.ports[container_port] = [{"HostIp": "0.0.0.0", "HostPort": str(host_port)}]

    @property
    def attrs(self):
        return {"Id": self.id, "Config": {"Image": self.image}}

    def start(self):
        self.status = "running"

    def stop(self):
        if self.removed:
            raise NotFound("No such container")
        self.status = "exited"

    def reload(self):
        pass

    def wait(self):
        self.status = "exited"
        return {"StatusCode": self.exit_code}

    def remove(self, force=False):
        if self.removed:
            raise NotFound("No such container")
        self.removed = True
        self.status = "removed"
        self.client.containers.all.remove(self)

    def exec_run(self, cmd):
        self.client.exec_calls.append((self.id, cmd))
        if self.exec_results:
            return ExecResult(self.exec_results.pop(0), b"")
        return ExecResult(0, b"")


class FakeContainers:
    def __init__(self, client):
        self.client = client
        self.all = []
        self.created = []
        self._lock = threading.Lock()

    def create(self, image, command=None, **kwargs):
        with self._lock:
            container = FakeContainer(self.client, image, **kwargs)
            container.command = command
            self.all.append(container)
            self.created.append(container)
            return container

    def run(self, image, command=None, detach=False, **kwargs):
        container = self.create(image, command=command, **kwargs)
        container.start()
        return container

    def list(self, **kwargs):
        with self._lock:
            return [c for c in self.all if c.status == "running"]

    def get(self, container_id):
        for container in self.all:
            if container.id == container_id:
                return container
        raise NotFound(f"No such container: {container_id}")


class FakeAPI:
    def __init__(self):
        self.frames = {}
        self.attached = []

    def attach(self, container_id, **kwargs):
        self.attached.append(container_id)
        return iter(self.frames.get(container_id, [(b"started\n", None)]))


class FakeDockerClient:
    def __init__(self):
        self.images = FakeImages()
        self.containers = FakeContainers(self)
        self.api = FakeAPI()
        self.exec_calls = []


class FakeGit:
    """Records git operations and simulates a remote with fixed refs."""

    def __init__(self, refs=None, head="a" * 40):
        self.refs = refs if refs is not None else [
            ("HEAD", "a" * 40),
            ("refs/heads/master", "a" * 40),
            ("refs/tags/v1.0", "b" * 40),
        ]
        self.head_sha = head
        self.calls = []
        self.fail_on = None

    def _record(self, *call):
        self.calls.append(call)
        if self.fail_on == call[0]:
            raise SourceFetchError(call[0], "fatal: unable to access", 128)

    def ls_remote(self, repository):
        self._record("ls-remote", repository)
        return list(self.refs)

    def clone(self, repository, branch, directory):
        self._record("clone", repository, branch, directory)
        (Path(directory) / ".git").mkdir(parents=True)

    def pull(self, directory):
        self._record("pull", directory)

    def fetch_tag(self, directory, tag):
        self._record("fetch-tag", directory, tag)

    def head(self, directory):
        self._record("rev-parse", directory)
        return self.head_sha


@pytest.fixture
def docker_client():
    return FakeDockerClient()


@pytest.fixture
def fake_git():
    return FakeGit()
