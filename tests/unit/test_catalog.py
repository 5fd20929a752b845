import pytest
from importer.catalog import (
    DEFAULT_CATALOG,
    ImportContext,
    ImportResult,
    ScriptCatalog,
    normalize_result,
)
from core.exceptions import ImporterNotConfiguredError


class CountingImporter:
    async def import_resource(self, context):
        return 3


def test_default_catalog_order():
    assert DEFAULT_CATALOG.resources_for("github") == [
        "repository", "contributor", "commit", "pull-request",
        "project", "issue", "pipeline", "pipeline-run",
    ]
    assert DEFAULT_CATALOG.resources_for("gitlab")[3] == "merge-request"
    assert DEFAULT_CATALOG.resources_for("jira") == [
        "project", "board", "sprint", "issue", "status-transition",
    ]


def test_unknown_provider_has_no_scripts():
    assert DEFAULT_CATALOG.scripts_for("bitbucket") == []
    assert DEFAULT_CATALOG.total_scripts(["bitbucket"]) == 0


def test_provider_lookup_is_case_insensitive():
    assert DEFAULT_CATALOG.resources_for("GitHub") == DEFAULT_CATALOG.resources_for("github")


def test_total_scripts_counts_each_data_source():
    # two GitHub sources and one Jira source
    assert DEFAULT_CATALOG.total_scripts(["github", "github", "jira"]) == 8 + 8 + 5


def test_register_keeps_position_and_does_not_leak_into_copies():
    catalog = DEFAULT_CATALOG.copy()
    importer = CountingImporter()

    catalog.register("github", "commit", importer, import_window_days=30)

    script = catalog.scripts_for("github")[2]
    assert script.resource == "commit"
    assert script.importer is importer
    assert script.import_window_days == 30
    assert DEFAULT_CATALOG.scripts_for("github")[2].importer is not importer


def test_register_unknown_entry_raises():
    catalog = DEFAULT_CATALOG.copy()

    with pytest.raises(KeyError):
        catalog.register("bitbucket", "commit", CountingImporter())
    with pytest.raises(KeyError):
        catalog.register("github", "wiki", CountingImporter())


@pytest.mark.asyncio
async def test_unconfigured_importer_fails_with_readable_message():
    script = ScriptCatalog({"jira": ["board"]}).scripts_for("jira")[0]
    context = ImportContext(batch_id="b", run_id="r", data_source_id="d", provider="jira", name="Jira")

    with pytest.raises(ImporterNotConfiguredError) as exc_info:
        await script.importer.import_resource(context)

    assert exc_info.value.message == "No importer registered for jira:board"


def test_normalize_result():
    assert normalize_result(7) == ImportResult(records_imported=7)
    assert normalize_result(None) == ImportResult(records_imported=0)
    assert normalize_result(ImportResult(4, 1)) == ImportResult(4, 1)
