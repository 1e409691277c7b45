# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Builds dependency images with buildpacks and keeps them cached under two tags:
``name:ref`` (moves with the branch) and ``name:<commit sha>`` (the cache key).
"""
import logging
import subprocess
from pathlib import Path
from typing import List

import docker

from ..errors import BuildFailedError
from ..MANAGERS.log_aggregator import ContainerLogStream
from ..MODELS.container_identity import ContainerIdentity
from ..MODELS.orchestration_config import DEFAULT_BUILDER, DEFAULT_PACK_IMAGE
from ..REGISTRY.source_cache import SourceCache

logger = logging.getLogger(__name__)

DOCKER_SOCKET = "/var/run/docker.sock"
WORKSPACE = "/workspace"


def pack_command(identity: ContainerIdentity, builder: str) -> List[str]:
    """
    Arguments for ``pack build`` producing ``identity.image_tag``.
    """
    command = ["build", identity.image_tag, f"--builder={builder}"]
    if identity.subdirectory:
        command.append(f"--path={identity.subdirectory}")
    return command


class PackContainerRunner:
    """
    Runs ``pack`` inside a container with the source tree and the docker
    socket bind-mounted, so no pack binary is needed on the host.
    """
    def __init__(self,
                 client: docker.DockerClient,
                 builder: str = DEFAULT_BUILDER,
                 pack_image: str = DEFAULT_PACK_IMAGE):
        self.client = client
        self.builder = builder
        self.pack_image = pack_image

    def build(self, identity: ContainerIdentity, source_dir: Path) -> int:
        """
        Runs the build and returns the builder's exit code.
        """
        container = self.client.containers.create(
            self.pack_image,
            command=["pack", *pack_command(identity, self.builder)],
            working_dir=WORKSPACE,
            volumes={
                str(Path(source_dir).resolve()): {"bind": WORKSPACE, "mode": "rw"},
                DOCKER_SOCKET: {"bind": DOCKER_SOCKET, "mode": "rw"},
            },
        )
        try:
            container.start()
            ContainerLogStream(self.client, container.id, log=logger).follow()
            result = container.wait()
            return int(result.get("StatusCode", 1))
        finally:
            container.remove(force=True)


class PackCliRunner:
    """
    Runs a ``pack`` binary installed on the host.
    """
    def __init__(self, builder: str = DEFAULT_BUILDER, executable: str = "pack"):
        self.builder = builder
        self.executable = executable

    def build(self, identity: ContainerIdentity, source_dir: Path) -> int:
        command = [self.executable, *pack_command(identity, self.builder)]
        logger.info("Running %s", " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                cwd=str(source_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                shell=False
            )
        except OSError as e:
            logger.error("Failed to start %s: %s", self.executable, e)
            return 127

        for line in process.stdout:
            logger.info(line.rstrip())
        return process.wait()


class ImageBuilder:
    """
    Ensures a built image exists for a dependency's current commit, building
    only when one of its two tags is missing.
    """
    def __init__(self, client: docker.DockerClient, source_cache: SourceCache, runner=None):
        """
        Initializes the ImageBuilder.

        :param client: Runtime client used to look up and tag images.
        :param source_cache: Working copies the images are built from.
        :param runner: Object with ``build(identity, source_dir) -> exit code``.
        """
        self.client = client
        self.source_cache = source_cache
        self.runner = runner or PackContainerRunner(client)

    def has_image(self, reference: str) -> bool:
        return bool(self.client.images.list(name=reference))

    def ensure_image(self, identity: ContainerIdentity, source_dir: Path) -> bool:
        """
        Builds the identity's image unless both its ref tag and its commit tag
        already exist.

        :param identity: The dependency to build.
        :param source_dir: Its local working copy.
        :return: True if a build ran, False if the images were up to date.
        :raises BuildFailedError: If the builder exits non-zero.
        """
        sha = self.source_cache.head(identity).sha
        commit_tag = identity.commit_tag(sha)

        if self.has_image(commit_tag) and self.has_image(identity.image_tag):
            logger.info("Container images for %s were up-to-date", identity.name)
            return False

        logger.info("Building container image for %s", identity.name)
        exit_code = self.runner.build(identity, source_dir)
        if exit_code != 0:
            raise BuildFailedError(identity.image_tag, exit_code)

        self._tag_commit(identity, sha)
        return True

    def _tag_commit(self, identity: ContainerIdentity, sha: str) -> None:
        image = self.client.images.get(identity.image_tag)
        image.tag(identity.name, tag=sha)
        logger.debug("Tagged %s as %s", identity.image_tag, identity.commit_tag(sha))

    def ensure(self, identity: ContainerIdentity) -> Path:
        """
        Fetches the identity's source and ensures its image, in one step.
        """
        source_dir = self.source_cache.ensure(identity)
        self.ensure_image(identity, source_dir)
        return source_dir
