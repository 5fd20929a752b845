"""
Pydantic schemas for the import API.

Every response model serializes with camelCase keys (batchId,
totalScripts, ...) because the importing screen consumes them directly:

Schemas:
    api: batch/run views, status projection, trigger and health responses

Usage:
    from schemas.api import BatchView, ImportOverviewResponse

Example:
    # Poll responses validate back into the same models
    view = BatchView.model_validate(response.json())
    view.completed_scripts
"""
