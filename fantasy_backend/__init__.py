"""Fantasy Flicks backend: FastAPI service and job worker."""
