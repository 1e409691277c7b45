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
Models identifying a git-hosted, buildpack-buildable dependency and the
artifacts derived from it.
"""
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator

# user@host:path/to/repo.git
_SCP_LIKE = re.compile(r'^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$')
_TAG_INVALID = re.compile(r'[^A-Za-z0-9_.-]')


def _slug(segment: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', segment.lower()).strip('-')


class ContainerIdentity(BaseModel):
    """
    A (repository, ref, subdirectory) triple. Every derived name is a pure
    function of these three fields, so equal identities always map onto the
    same image tags and cache entries.
    """
    model_config = ConfigDict(frozen=True)

    repository: str
    ref: str
    subdirectory: Optional[str] = None

    @field_validator('repository', 'ref')
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator('subdirectory')
    @classmethod
    def _normalize_subdirectory(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().strip('/')
        return value or None

    def __truediv__(self, subdirectory: str) -> "ContainerIdentity":
        return self.model_copy(update={'subdirectory': subdirectory.strip('/') or None})

    @property
    def host_and_path(self) -> Tuple[str, str]:
        """
        Splits the repository URL into its host and its path without a
        trailing ``.git``. Handles both URLs and scp-like ``user@host:path``.
        """
        parsed = urlparse(self.repository)
        if parsed.scheme and parsed.netloc:
            host, path = parsed.hostname or parsed.netloc, parsed.path
        else:
            match = _SCP_LIKE.match(self.repository)
            if match:
                host, path = match.group('host'), match.group('path')
            else:
                host, path = "local", self.repository
        path = path.strip('/')
        if path.endswith('.git'):
            path = path[:-4]
        return host, path

    @property
    def path_parts(self) -> List[str]:
        _, path = self.host_and_path
        parts = [p for p in path.split('/') if p]
        if self.subdirectory:
            parts.extend(p for p in self.subdirectory.split('/') if p)
        return parts

    @property
    def name(self) -> str:
        parts = self.path_parts
        name = _slug(parts[-1]) if parts else ""
        if not name:
            raise ValueError(f"Cannot derive a container name from {self.repository}")
        return name

    @property
    def tag_ref(self) -> str:
        """The ref as it appears in an image tag (docker tags disallow '/')."""
        return _TAG_INVALID.sub('-', self.ref)[:128]

    @property
    def image_tag(self) -> str:
        return f"{self.name}:{self.tag_ref}"

    @property
    def env_var(self) -> str:
        return self.name.upper().replace('-', '_') + "_URL"

    @property
    def package_namespace(self) -> str:
        """
        Reverse-DNS namespace of the repository host followed by the path
        segments leading to the project, e.g. ``com.github.org``.
        """
        host, _ = self.host_and_path
        parts = [re.sub(r'[^a-z0-9]', '', p.lower()) for p in reversed(host.split('.'))]
        parts.extend(re.sub(r'[^a-z0-9]', '', p.lower()) for p in self.path_parts[:-1])
        return '.'.join(p for p in parts if p)

    def commit_tag(self, sha: str) -> str:
        """Immutable, content-keyed tag for a built commit."""
        return f"{self.name}:{sha}"

    def __str__(self) -> str:
        suffix = f" /{self.subdirectory}" if self.subdirectory else ""
        return f"{self.repository} @ {self.ref}{suffix}"


class ResolvedCommit(BaseModel):
    """
    The commit a ref pointed at when it was last fetched. Branches move, so
    this is only valid for the current run.
    """
    identity: ContainerIdentity
    sha: str


class RunningContainer(BaseModel):
    """
    A runtime container started (or reused) for an identity's image tag.
    """
    image_tag: str
    host_port: int
    container_id: str

    @property
    def url(self) -> str:
        return f"http://localhost:{self.host_port}/"
