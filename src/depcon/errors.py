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
Exceptions raised while creating, starting and stopping dependency containers.
"""
from typing import Optional


class DepContainersError(Exception):
    """Base class for all dependency container errors."""


class ConfigError(DepContainersError):
    """The declared configuration could not be read or validated."""


class RefNotFoundError(DepContainersError):
    """The requested branch or tag does not exist on the remote."""

    def __init__(self, repository: str, ref: str):
        self.repository = repository
        self.ref = ref
        super().__init__(f"Ref '{ref}' not found in {repository}")


class SourceFetchError(DepContainersError):
    """A clone, pull or other git transport operation failed."""

    def __init__(self, command: str, stderr: str, returncode: int):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"git {command} failed (exit {returncode}): {stderr}")


class BuildFailedError(DepContainersError):
    """The external image builder exited with a non-zero status."""

    def __init__(self, image_tag: str, exit_code: int):
        self.image_tag = image_tag
        self.exit_code = exit_code
        super().__init__(f"Build of {image_tag} did not succeed (exit {exit_code})")


class ContainerStartError(DepContainersError):
    """A dependency container was created but did not come up."""


class UnknownTestContainerError(DepContainersError):
    """No startup strategy is registered for a test container name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Do not know how to handle {name}")


class HandshakeParseError(DepContainersError):
    """A handshake file exists but does not have the expected shape."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Malformed handshake file {path}: {reason}")


class HandshakeTimeoutError(DepContainersError):
    """A test container worker did not write its handshake file in time."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for test container {name}")


class TestContainerWorkerError(DepContainersError):
    """A test container worker process exited before writing its handshake."""

    def __init__(self, name: str, exit_code: Optional[int], log_tail: str = ""):
        self.name = name
        self.exit_code = exit_code
        self.log_tail = log_tail
        message = f"Worker for test container {name} exited with {exit_code}"
        if log_tail:
            message += f":\n{log_tail}"
        super().__init__(message)


class WaitCancelledError(DepContainersError):
    """A blocking wait was cancelled by the caller."""
