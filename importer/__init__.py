"""
Import batch orchestration.

Modules:
    catalog: Per-provider ordered script lists and the importer seam
    date_window: Date range each script should fetch
    run_tracker: Run rows and live batch aggregation
    batch_registry: Batch rows and the single-running-batch guard
    trigger: Entry point that starts (or declines to start) a batch
    runner: Background orchestrator executing a batch
    sweeper: Crash recovery for abandoned runs and batches
    scheduler: APScheduler integration for the periodic sweep
    projection: Pure per-data-source status view

Architecture:
    UI action -> TriggerService -> BatchRegistry (guard + create)
              -> ImportOrchestrator (background) -> RunTracker (writes)
    Status endpoint -> RunTracker / projection (reads) <- client poller

Usage:
    from importer.trigger import TriggerService

    service = TriggerService()
    result = await service.trigger_import("ada@example.com")
    print(result.status, result.batch_id)

Registering an importer:
    from importer.catalog import DEFAULT_CATALOG

    DEFAULT_CATALOG.register("github", "commit", GitHubCommitImporter())
"""
