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
Parsers for depcontainers.yml declaration files.
"""
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from ..MODELS.container_identity import ContainerIdentity
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.test_container import TestContainer
from ..UTILS.string_interpolation import interpolate


class ConfigParser:
    """
    Parser for depcontainers.yml files.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: A dictionary of environment variables for interpolation.
        """
        self.context = context if context is not None else dict(os.environ)

    def parse(self, config_path: str) -> OrchestrationConfig:
        """
        Parses a declaration file from a path.

        :param config_path: Path to the declaration file.
        :return: Parsed configuration.
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"Cannot read {config_path}: {e}") from e
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> OrchestrationConfig:
        """
        Parses a declaration from its YAML text.

        :param content: YAML content of the declaration.
        :return: Parsed configuration.
        """
        content = interpolate(content, self.context)

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}") from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top level of the declaration must be a mapping")

        settings = {k: v for k, v in data.items() if k not in ('dependencies', 'test_containers')}
        try:
            return OrchestrationConfig(
                dependencies=self._parse_dependencies(data.get('dependencies') or []),
                test_containers=[TestContainer(name=str(n)) for n in data.get('test_containers') or []],
                **settings,
            )
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    def _parse_dependencies(self, entries: Any) -> List[ContainerIdentity]:
        """
        Parses the ordered dependency list.
        """
        if not isinstance(entries, list):
            raise ConfigError("'dependencies' must be a list")

        identities = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ConfigError(f"dependencies[{index}] must be a mapping")
            # 'branch' and 'tag' read better for some entries
            ref = entry.get('ref', entry.get('branch', entry.get('tag')))
            if 'repository' not in entry or ref is None:
                raise ConfigError(f"dependencies[{index}] needs 'repository' and 'ref'")
            try:
                identities.append(ContainerIdentity(
                    repository=str(entry['repository']),
                    ref=str(ref),
                    subdirectory=entry.get('subdirectory'),
                ))
            except ValidationError as e:
                raise ConfigError(f"dependencies[{index}]: {e}") from e
        return identities
