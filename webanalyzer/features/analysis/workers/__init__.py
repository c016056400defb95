"""Analysis workers: the queue-draining runner and Celery housekeeping tasks."""
