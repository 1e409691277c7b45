"""
Resolution of a mutable branch or tag name to the commit a remote advertises.
"""
import logging
from typing import Optional

from pydantic import BaseModel

from ..errors import RefNotFoundError
from ..MODELS.container_identity import ContainerIdentity
from .git_client import GitClient

logger = logging.getLogger(__name__)


class RemoteRef(BaseModel):
    """A ref as listed by the remote, e.g. ``refs/heads/main``."""
    name: str
    sha: str

    @property
    def is_tag(self) -> bool:
        return self.name.startswith("refs/tags/")

    @property
    def short_name(self) -> str:
        """
        Branch or tag name as git clone and fetch take it, e.g.
        ``feature/main`` for ``refs/heads/feature/main``.
        """
        for prefix in ("refs/heads/", "refs/tags/"):
            if self.name.startswith(prefix):
                return self.name[len(prefix):]
        return self.name


class RefResolver:
    """
    Finds the remote ref matching an identity's branch or tag.
    """
    def __init__(self, git: Optional[GitClient] = None):
        self.git = git or GitClient()

    def resolve(self, identity: ContainerIdentity) -> RemoteRef:
        """
        Lists the remote's refs and picks the first whose name ends with
        ``/<ref>``. Partial matches such as ``refs/heads/feature/main`` for
        ``main`` are accepted when they come first.

        :param identity: The dependency to resolve.
        :return: The matching remote ref.
        :raises RefNotFoundError: If no advertised ref matches.
        """
        suffix = "/" + identity.ref
        for name, sha in self.git.ls_remote(identity.repository):
            # peeled tag entries (refs/tags/x^{}) never match
            if name.endswith(suffix):
                ref = RemoteRef(name=name, sha=sha)
                logger.debug("Resolved %s to %s (%s)", identity, ref.name, ref.sha)
                return ref
        raise RefNotFoundError(identity.repository, identity.ref)
