"""
Helpers around the container runtime client handle.

The handle is always passed explicitly; nothing here keeps a global client.
"""
import logging
from typing import Optional

import docker
from docker.errors import NotFound
from docker.models.containers import Container

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"


def create_docker_client(docker_host: Optional[str] = None) -> docker.DockerClient:
    """
    Creates a fresh client for one logical operation.

    :param docker_host: Daemon endpoint; when unset the usual DOCKER_HOST
        environment lookup applies.
    """
    if docker_host:
        return docker.DockerClient(base_url=docker_host)
    return docker.from_env()


def container_image(container: Container) -> str:
    """
    The image reference a container was created from, as given at creation.
    """
    config = container.attrs.get("Config") or {}
    return config.get("Image") or container.attrs.get("Image", "")


def is_running(container: Container) -> bool:
    return container.status == "running"


def find_running_by_image(client: docker.DockerClient, image_tag: str) -> Optional[Container]:
    """
    Finds a running container created from ``image_tag``.
    """
    for container in client.containers.list():
        if container_image(container) == image_tag and is_running(container):
            return container
    return None


def find_by_id(client: docker.DockerClient, container_id: str) -> Optional[Container]:
    try:
        return client.containers.get(container_id)
    except NotFound:
        return None


def published_port(container: Container, container_port: int) -> Optional[int]:
    """
    Host port a container's TCP port is published on, if any.
    """
    bindings = (container.ports or {}).get(f"{container_port}/tcp") or []
    for binding in bindings:
        host_port = binding.get("HostPort")
        if host_port:
            return int(host_port)
    return None


def stop_container(container: Container, label: str) -> bool:
    """
    Stops a container if it is running. Missing or stopped containers are a no-op.

    :return: True if a stop was issued.
    """
    if not is_running(container):
        return False
    logger.info("Stopping container for %s", label)
    try:
        container.stop()
    except NotFound:
        logger.debug("Container for %s disappeared before it could be stopped", label)
        return False
    return True


def remove_container(container: Container, label: str) -> None:
    """
    Removes a container, killing it first if it still runs. Missing
    containers are a no-op.
    """
    try:
        container.remove(force=True)
    except NotFound:
        logger.debug("Container for %s already removed", label)
