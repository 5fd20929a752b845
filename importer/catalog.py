"""
Script Catalog - ordered, per-provider list of importable resources.

Each provider maps to an ordered list of ScriptDefinition entries. Order is
significant: later resources depend on earlier ones already being
persisted (commits need repositories, pipeline runs need pipelines), so the
orchestrator runs them strictly in catalog order per data source.

The only thing the orchestrator needs from provider-specific code is a
ResourceImporter: "import this resource, return a count or raise".
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable
import logging

from core.exceptions import ImporterNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportContext:
    """Everything an importer gets to know about the script it executes."""
    batch_id: str
    run_id: str
    data_source_id: str
    provider: str
    name: str
    env: Dict[str, str] = field(default_factory=dict)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    # Older history to fetch in this run; None once the window is backfilled
    backfill_start_date: Optional[datetime] = None
    backfill_end_date: Optional[datetime] = None


@dataclass(frozen=True)
class ImportResult:
    records_imported: int
    records_failed: int = 0


@runtime_checkable
class ResourceImporter(Protocol):
    async def import_resource(self, context: ImportContext) -> Union[int, ImportResult]:
        """Fetch and persist one resource; raise with a readable message on failure."""
        ...


class UnconfiguredImporter:
    """Placeholder for catalog resources nobody has registered an importer for."""

    def __init__(self, provider: str, resource: str):
        self.provider = provider
        self.resource = resource

    async def import_resource(self, context: ImportContext) -> int:
        raise ImporterNotConfiguredError(
            f"No importer registered for {self.provider}:{self.resource}",
            context={"provider": self.provider, "resource": self.resource},
        )


@dataclass(frozen=True)
class ScriptDefinition:
    provider: str
    resource: str
    importer: ResourceImporter
    import_window_days: int = 90


def normalize_result(result: Union[int, ImportResult, None]) -> ImportResult:
    """Importers may return a bare count or an ImportResult."""
    if isinstance(result, ImportResult):
        return result
    if result is None:
        return ImportResult(records_imported=0)
    return ImportResult(records_imported=int(result))


class ScriptCatalog:
    """Static provider -> ordered scripts map."""

    def __init__(self, resources: Optional[Dict[str, Iterable[str]]] = None):
        self._scripts: Dict[str, List[ScriptDefinition]] = {}
        for provider, names in (resources or {}).items():
            self._scripts[provider.lower()] = [
                ScriptDefinition(
                    provider=provider.lower(),
                    resource=resource,
                    importer=UnconfiguredImporter(provider.lower(), resource),
                )
                for resource in names
            ]

    @property
    def providers(self) -> List[str]:
        return list(self._scripts)

    def scripts_for(self, provider: str) -> List[ScriptDefinition]:
        """Ordered scripts for a provider; unknown providers have none."""
        return list(self._scripts.get(provider.lower(), []))

    def resources_for(self, provider: str) -> List[str]:
        return [script.resource for script in self.scripts_for(provider)]

    def total_scripts(self, providers: Iterable[str]) -> int:
        return sum(len(self.scripts_for(provider)) for provider in providers)

    def register(
        self,
        provider: str,
        resource: str,
        importer: ResourceImporter,
        import_window_days: Optional[int] = None,
    ) -> None:
        """Attach an importer to an existing catalog entry, keeping its position."""
        scripts = self._scripts.get(provider.lower())
        if scripts is None:
            raise KeyError(f"Unknown provider: {provider}")

        for index, script in enumerate(scripts):
            if script.resource == resource:
                updated = replace(script, importer=importer)
                if import_window_days is not None:
                    updated = replace(updated, import_window_days=import_window_days)
                scripts[index] = updated
                logger.debug(f"Registered importer for {provider}:{resource}")
                return

        raise KeyError(f"Unknown resource {resource!r} for provider {provider}")

    def copy(self) -> "ScriptCatalog":
        clone = ScriptCatalog()
        clone._scripts = {provider: list(scripts) for provider, scripts in self._scripts.items()}
        return clone


PROVIDER_RESOURCES: Dict[str, List[str]] = {
    "github": [
        "repository",
        "contributor",
        "commit",
        "pull-request",
        "project",
        "issue",
        "pipeline",
        "pipeline-run",
    ],
    "gitlab": [
        "repository",
        "contributor",
        "commit",
        "merge-request",
        "project",
        "issue",
        "pipeline",
        "pipeline-run",
    ],
    "jira": [
        "project",
        "board",
        "sprint",
        "issue",
        "status-transition",
    ],
}

DEFAULT_CATALOG = ScriptCatalog(PROVIDER_RESOURCES)
