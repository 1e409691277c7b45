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
Models for the declared set of dependency containers.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .container_identity import ContainerIdentity
from .test_container import TestContainer

DEFAULT_BUILDER = "gcr.io/buildpacks/builder"
DEFAULT_PACK_IMAGE = "gcr.io/k8s-skaffold/pack"
DEFAULT_DEP_DIR = "target/depcontainers"


class BuildMode(str, Enum):
    """
    Where the ``pack`` CLI runs.
    """
    CONTAINER = "container"
    LOCAL = "local"


class OrchestrationConfig(BaseModel):
    """
    Complete declaration of the containers a test run depends on.
    Equivalent to a parsed depcontainers.yml file.
    """
    dependencies: List[ContainerIdentity] = []
    test_containers: List[TestContainer] = []

    builder: str = DEFAULT_BUILDER
    pack_image: str = DEFAULT_PACK_IMAGE
    build_mode: BuildMode = BuildMode.CONTAINER

    dep_dir: str = DEFAULT_DEP_DIR
    docker_host: Optional[str] = None

    start_timeout: float = Field(default=30.0, gt=0)
    handshake_timeout: float = Field(default=120.0, gt=0)
    handshake_poll_interval: float = Field(default=1.0, gt=0)
