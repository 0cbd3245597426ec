"""
Configuration sources.

A source returns the raw ``roles``, ``collections`` and ``teams`` documents and
a fingerprint that changes whenever they change (used for hot reload).
"""
import asyncio
import copy
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from ....config.constants import ConfigNames
from ....core.exceptions import ConfigurationSourceError


logger = logging.getLogger(__name__)

# Documents that may be absent; defaults apply
OPTIONAL_DOCUMENTS = frozenset({ConfigNames.TEAMS})


class JsonDirectoryConfigurationSource:
    """Reads ``roles.json``, ``collections.json`` and ``teams.json`` from a directory."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _file(self, name: str) -> Path:
        return self._path / f"{name}.json"

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        if not self._path.is_dir():
            raise ConfigurationSourceError(
                f"Configuration directory not found: {self._path}",
                details={"path": str(self._path)}
            )

        documents: Dict[str, Dict[str, Any]] = {}
        for name in ConfigNames.ALL:
            file_path = self._file(name)
            if not file_path.exists():
                if name in OPTIONAL_DOCUMENTS:
                    logger.debug(f"{file_path.name} not found, using defaults")
                    documents[name] = {}
                    continue
                raise ConfigurationSourceError(
                    f"Configuration file not found: {file_path}",
                    details={"path": str(file_path)}
                )
            try:
                with file_path.open(encoding="utf-8") as fp:
                    data = json.load(fp)
            except json.JSONDecodeError as e:
                raise ConfigurationSourceError(
                    f"Invalid JSON in {file_path.name}: {e}",
                    details={"path": str(file_path), "line": e.lineno}
                )
            except OSError as e:
                raise ConfigurationSourceError(
                    f"Failed to read {file_path}: {e}", details={"path": str(file_path)}
                )
            if not isinstance(data, dict):
                raise ConfigurationSourceError(
                    f"{file_path.name} must contain a JSON object", details={"path": str(file_path)}
                )
            documents[name] = data
        return documents

    def _stat_fingerprint(self) -> Optional[str]:
        digest = hashlib.sha256()
        for name in ConfigNames.ALL:
            file_path = self._file(name)
            try:
                stat = file_path.stat()
            except FileNotFoundError:
                digest.update(f"{name}:missing;".encode())
                continue
            digest.update(f"{name}:{stat.st_mtime_ns}:{stat.st_size};".encode())
        return digest.hexdigest()

    async def load(self) -> Dict[str, Dict[str, Any]]:
        return await asyncio.to_thread(self._read_all)

    async def fingerprint(self) -> Optional[str]:
        return await asyncio.to_thread(self._stat_fingerprint)

    def describe(self) -> str:
        return f"json:{self._path}"


class MappingConfigurationSource:
    """In-memory configuration documents, mainly for tests and embedding."""

    def __init__(self, documents: Mapping[str, Any]):
        self._documents: Dict[str, Any] = copy.deepcopy(dict(documents))
        self._revision = 0

    def update(self, documents: Mapping[str, Any]) -> None:
        """Replace one or more named documents."""
        for name, document in documents.items():
            self._documents[name] = copy.deepcopy(document)
        self._revision += 1

    async def load(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._documents)

    async def fingerprint(self) -> Optional[str]:
        return str(self._revision)

    def describe(self) -> str:
        return f"mapping:rev{self._revision}"


def packaged_defaults_path() -> Path:
    """Directory of the configuration bundled with the package."""
    return Path(__file__).resolve().parents[3] / "config" / "defaults"


def packaged_defaults_source() -> JsonDirectoryConfigurationSource:
    return JsonDirectoryConfigurationSource(packaged_defaults_path())
