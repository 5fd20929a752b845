"""
Client-side helpers for following an import from outside the server.

Modules:
    poller: Batch status poller, httpx status client and progress merging
"""
