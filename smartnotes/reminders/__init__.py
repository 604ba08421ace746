"""Reminder dispatch (scheduler, lease claims, delivery router, retention).

Runs as its own service: the Celery worker and beat drive the periodic
dispatch and retention jobs, and a small FastAPI app exposes ingestion,
force-send and health endpoints.
"""
