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
Lifecycle management for the runtime containers of buildpack dependencies.
"""
import logging
import threading
from typing import Dict, Optional

import docker
from docker.errors import APIError

from ..errors import ContainerStartError
from ..MODELS.container_identity import ContainerIdentity, RunningContainer
from ..UTILS.port_finder import PortAllocator
from .log_aggregator import ContainerLogStream
from .runtime_client import find_running_by_image, published_port, stop_container

logger = logging.getLogger(__name__)

CONTAINER_PORT = 8080


class ContainerManager:
    """
    Starts and stops one container per image tag. A running container for
    the same tag is reused, never duplicated.
    """
    def __init__(self,
                 client: docker.DockerClient,
                 port_allocator: Optional[PortAllocator] = None,
                 start_timeout: float = 30.0):
        """
        Initializes the container manager.

        :param client: Runtime client handle used for every call.
        :param port_allocator: Source of host ports, shared across a batch.
        :param start_timeout: Seconds to wait for a new container's log stream.
        """
        self.client = client
        self.port_allocator = port_allocator or PortAllocator()
        self.start_timeout = start_timeout
        self.log_streams: Dict[str, ContainerLogStream] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, image_tag: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(image_tag, threading.Lock())

    def find_running(self, identity: ContainerIdentity) -> Optional[RunningContainer]:
        """
        Looks up the running container for an identity's image tag.

        :return: The container and its published port, or None.
        """
        container = find_running_by_image(self.client, identity.image_tag)
        if container is None:
            return None
        port = published_port(container, CONTAINER_PORT)
        if port is None:
            raise ContainerStartError(
                f"Container {container.short_id} for {identity.image_tag} does not publish port {CONTAINER_PORT}"
            )
        return RunningContainer(image_tag=identity.image_tag, host_port=port, container_id=container.id)

    def start(self, identity: ContainerIdentity) -> RunningContainer:
        """
        Starts a container for the identity, or returns the one already running.

        :param identity: A dependency whose image has been built.
        :return: The running container; its ``url`` is the dependency endpoint.
        """
        with self._lock_for(identity.image_tag):
            existing = self.find_running(identity)
            if existing is not None:
                logger.info("Container for %s already running on port %d", identity.image_tag, existing.host_port)
                return existing
            return self._create_and_start(identity)

    def _create_and_start(self, identity: ContainerIdentity) -> RunningContainer:
        port = self.port_allocator.allocate()
        container = None
        try:
            container = self.client.containers.create(
                identity.image_tag,
                ports={f"{CONTAINER_PORT}/tcp": port},
                environment={"PORT": str(CONTAINER_PORT)},
                labels={"depcon.image": identity.image_tag},
            )

            logger.info("Starting container for %s", identity.image_tag)
            container.start()

            stream = ContainerLogStream(self.client, container.id, prefix=identity.image_tag).start()
            self.log_streams[identity.image_tag] = stream
            if not stream.wait_started(self.start_timeout):
                raise ContainerStartError(
                    f"No output stream from {identity.image_tag} within {self.start_timeout}s"
                )
        except Exception:
            self.port_allocator.release(port)
            if container is not None:
                self._discard(container, identity)
            raise

        return RunningContainer(image_tag=identity.image_tag, host_port=port, container_id=container.id)

    def stop(self, identity: ContainerIdentity) -> bool:
        """
        Stops the identity's container. Never-started or already stopped
        identities are a no-op.

        :return: True if a container was stopped.
        """
        with self._lock_for(identity.image_tag):
            container = find_running_by_image(self.client, identity.image_tag)
            stream = self.log_streams.pop(identity.image_tag, None)
            if stream is not None:
                stream.close()
            if container is None:
                return False

            port = published_port(container, CONTAINER_PORT)
            stopped = stop_container(container, identity.image_tag)
            if port is not None:
                self.port_allocator.release(port)
            return stopped

    def _discard(self, container, identity: ContainerIdentity) -> None:
        stream = self.log_streams.pop(identity.image_tag, None)
        if stream is not None:
            stream.close()
        try:
            container.remove(force=True)
        except APIError as e:
            logger.warning("Could not remove failed container for %s: %s", identity.image_tag, e)
