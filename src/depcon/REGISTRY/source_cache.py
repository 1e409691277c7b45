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
Local working copies of dependency repositories.
One clone per (host, path, ref), updated in place on later runs.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..MODELS.container_identity import ContainerIdentity, ResolvedCommit
from .git_client import GitClient
from .ref_resolver import RefResolver

logger = logging.getLogger(__name__)


class SourceCache:
    """
    Maintains the local working copy of each dependency.
    Safe to call repeatedly: an existing clone is pulled, never re-cloned.
    """

    def __init__(self,
                 cache_dir: Union[str, Path],
                 git: Optional[GitClient] = None,
                 resolver: Optional[RefResolver] = None):
        """
        Initialize the source cache.

        Args:
            cache_dir: Directory under which clones are kept.
            git: Git command wrapper.
            resolver: Resolver used to find the remote ref to check out.
        """
        self.cache_dir = Path(cache_dir)
        self.git = git or GitClient()
        self.resolver = resolver or RefResolver(self.git)

    def path_for(self, identity: ContainerIdentity) -> Path:
        """
        Directory holding the working copy for an identity.
        """
        host, path = identity.host_and_path
        return self.cache_dir / host / path / identity.ref

    def ensure(self, identity: ContainerIdentity) -> Path:
        """
        Clone the identity's ref if absent, otherwise bring the clone up to date.

        Args:
            identity: The dependency to fetch.

        Returns:
            Path to the local working copy.
        """
        ref = self.resolver.resolve(identity)
        directory = self.path_for(identity)

        if (directory / ".git").exists():
            logger.info("Updating %s %s", identity.repository, ref.name)
            if ref.is_tag:
                # a tag checkout is a detached HEAD, which pull refuses
                self.git.fetch_tag(directory, ref.short_name)
            else:
                self.git.pull(directory)
        else:
            logger.info("Cloning %s %s", identity.repository, ref.name)
            self.git.clone(identity.repository, ref.short_name, directory)

        return directory

    def head(self, identity: ContainerIdentity) -> ResolvedCommit:
        """
        Commit currently checked out in the identity's working copy.
        """
        sha = self.git.head(self.path_for(identity))
        return ResolvedCommit(identity=identity, sha=sha)
