from typing import Dict, Any
from threading import Lock

_progress: Dict[str, Dict[str, Any]] = {}
_lock = Lock()


# -------------------------------------------------
# Job Initialization
# -------------------------------------------------

def init_job(job_id: str, product_id: str = None, user_id: str = None):
    with _lock:
        _progress[job_id] = {
            "job_id": job_id,
            "status": "queued",          # queued | running | done | error
            "step": "queued",
            "progress": 0,               # 0..100
            "message": "Queued",
            "error": None,
            "error_kind": None,
            "product_id": product_id,
            "user_id": user_id,
            "result": None,              # {"url", "width", "height", ...} when done
        }


# -------------------------------------------------
# Update job fields
# -------------------------------------------------

def update_job(job_id: str, **kwargs):
    with _lock:
        if job_id not in _progress:
            _progress[job_id] = {"job_id": job_id}
        _progress[job_id].update(kwargs)


def fail_job(job_id: str, error: str, kind: str = None):
    update_job(job_id, status="error", step="error", message="Export failed", error=error, error_kind=kind)


# -------------------------------------------------
# Get job state
# -------------------------------------------------

def has_job(job_id: str) -> bool:
    with _lock:
        return job_id in _progress


def get_job(job_id: str) -> Dict[str, Any]:
    with _lock:
        job = _progress.get(job_id)
        if job is None:
            return {
                "job_id": job_id,
                "status": "unknown",
                "step": "unknown",
                "progress": 0,
                "message": "Job not found",
                "error": "not_found",
            }
        return dict(job)


def clear_jobs():
    with _lock:
        _progress.clear()
