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
Orchestration of every declared dependency: build, start, stop.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Optional

import docker

from ..BUILDERS.image_builder import ImageBuilder, PackCliRunner, PackContainerRunner
from ..MODELS.container_identity import ContainerIdentity
from ..MODELS.orchestration_config import BuildMode, OrchestrationConfig
from ..REGISTRY.source_cache import SourceCache
from ..UTILS.port_finder import PortAllocator
from .container_manager import ContainerManager
from .runtime_client import create_docker_client
from .test_container_coordinator import TestContainerCoordinator, WorkerLauncher

logger = logging.getLogger(__name__)


class DependencyOrchestrator:
    """
    Runs the create, start and stop operations over a whole declaration.
    """
    def __init__(self,
                 config: OrchestrationConfig,
                 base_dir: str = ".",
                 client_factory: Optional[Callable[[], docker.DockerClient]] = None,
                 source_cache: Optional[SourceCache] = None,
                 launcher: Optional[WorkerLauncher] = None):
        """
        Initializes the orchestrator.

        :param config: The declared dependencies and settings.
        :param base_dir: Directory ``dep_dir`` is relative to.
        :param client_factory: Creates a runtime client per operation.
        :param source_cache: Working copies of dependency repositories.
        :param launcher: Spawns test container workers.
        """
        self.config = config
        self.dep_dir = Path(base_dir) / config.dep_dir
        self.client_factory = client_factory or (lambda: create_docker_client(config.docker_host))
        self.source_cache = source_cache or SourceCache(self.dep_dir)
        self.launcher = launcher or WorkerLauncher(docker_host=config.docker_host)

    def _build_runner(self, client: docker.DockerClient):
        if self.config.build_mode == BuildMode.LOCAL:
            return PackCliRunner(builder=self.config.builder)
        return PackContainerRunner(client, builder=self.config.builder, pack_image=self.config.pack_image)

    def _coordinator(self, client: docker.DockerClient) -> TestContainerCoordinator:
        return TestContainerCoordinator(
            client,
            self.dep_dir,
            launcher=self.launcher,
            timeout=self.config.handshake_timeout,
            poll_interval=self.config.handshake_poll_interval,
        )

    def create(self) -> None:
        """
        Fetches and builds every dependency in declaration order. The first
        failure aborts the rest of the batch.
        """
        client = self.client_factory()
        builder = ImageBuilder(client, self.source_cache, runner=self._build_runner(client))
        for identity in self.config.dependencies:
            builder.ensure(identity)

    def start(self, parallel: bool = False) -> Dict[str, str]:
        """
        Starts every dependency container and sidecar.

        :param parallel: Start dependency containers concurrently.
        :return: Environment variables for the consuming process.
        """
        client = self.client_factory()
        manager = ContainerManager(client, PortAllocator(), start_timeout=self.config.start_timeout)

        urls = self.start_containers(manager, parallel)
        sidecars = self._coordinator(client).start_all(self.config.test_containers)

        env = {identity.env_var: url for identity, url in urls.items()}
        # later entries win on collision
        for name in sorted(sidecars):
            env.update(sidecars[name])
        return env

    def start_containers(self, manager: ContainerManager, parallel: bool = False) -> Dict[ContainerIdentity, str]:
        """
        Starts the buildpack dependency containers.

        :return: Endpoint URL per identity.
        """
        identities = self.config.dependencies
        if parallel and len(identities) > 1:
            with ThreadPoolExecutor(max_workers=len(identities)) as pool:
                running = list(pool.map(manager.start, identities))
        else:
            running = [manager.start(identity) for identity in identities]
        return {identity: container.url for identity, container in zip(identities, running)}

    def stop(self) -> None:
        """
        Stops every declared dependency container and sidecar.
        """
        client = self.client_factory()
        manager = ContainerManager(client)
        for identity in self.config.dependencies:
            manager.stop(identity)

        coordinator = self._coordinator(client)
        for test_container in self.config.test_containers:
            coordinator.stop(test_container)

    def ps(self) -> Dict[str, Optional[str]]:
        """
        Returns the endpoint of each declared dependency, or None if stopped.
        """
        client = self.client_factory()
        manager = ContainerManager(client)
        status = {}
        for identity in self.config.dependencies:
            running = manager.find_running(identity)
            status[identity.image_tag] = running.url if running else None

        coordinator = self._coordinator(client)
        for test_container in self.config.test_containers:
            handshake = coordinator.running_handshake(test_container)
            status[test_container.name] = ", ".join(
                f"{k}={v}" for k, v in handshake.environment.items()
            ) if handshake else None
        return status
