"""
Reading and writing test container handshake files.

Line 1 holds the container id, every following line is a ``KEY=VALUE``
environment entry split on the first ``=``.
"""
import os
import tempfile
from pathlib import Path
from typing import Union

from ..errors import HandshakeParseError
from ..MODELS.test_container import TestContainerHandshake


class HandshakeParser:
    """
    Parser and writer for handshake files.
    """
    @staticmethod
    def parse(path: Union[str, Path]) -> TestContainerHandshake:
        """
        Parses a handshake file from a path.

        Args:
            path: Path to the handshake file.

        Returns:
            TestContainerHandshake: The container id and its environment.
        """
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
        return HandshakeParser.parse_from_string(content, source=str(path))

    @staticmethod
    def parse_from_string(content: str, source: str = "<string>") -> TestContainerHandshake:
        """
        Parses a handshake from its text.
        """
        lines = content.splitlines()
        if not lines or not lines[0].strip():
            raise HandshakeParseError(source, "missing container id")

        container_id = lines[0].strip()
        environment = {}
        for number, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            if '=' not in line:
                raise HandshakeParseError(source, f"line {number} is not KEY=VALUE")
            key, value = line.split('=', 1)
            key = key.strip()
            if not key:
                raise HandshakeParseError(source, f"line {number} has an empty key")
            environment[key] = value

        return TestContainerHandshake(container_id=container_id, environment=environment)

    @staticmethod
    def format(handshake: TestContainerHandshake) -> str:
        lines = [handshake.container_id]
        for key, value in handshake.environment.items():
            if '\n' in value or '\n' in key or '=' in key:
                raise ValueError(f"Cannot write environment entry {key!r} to a handshake file")
            lines.append(f"{key}={value}")
        return '\n'.join(lines) + '\n'

    @staticmethod
    def write(path: Union[str, Path], handshake: TestContainerHandshake) -> None:
        """
        Writes the handshake so that it appears all at once: its existence is
        what the waiting side polls for.

        Args:
            path: Destination of the handshake file.
            handshake: Container id and environment to record.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = HandshakeParser.format(handshake)

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
