"""Admin job control — schedule status and manual triggers."""
from __future__ import annotations

from dataclasses import asdict, is_dataclass

from fastapi import APIRouter, Depends, HTTPException

from src.auth import require_admin
from src.services.scheduler import JOBS, get_job_status, trigger_job

router = APIRouter(prefix="/api/v1/admin/jobs", tags=["admin", "jobs"])


@router.get("")
async def list_jobs(admin=Depends(require_admin)):
    return {"jobs": get_job_status()}


@router.post("/{name}/run")
async def run_job(name: str, admin=Depends(require_admin)):
    """Run a pipeline job now. Returns the job's result summary."""
    if name not in JOBS:
        raise HTTPException(404, f"Unknown job: {name}")
    result = await trigger_job(name)
    if result is None:
        return {"job": name, "status": "skipped"}
    return {"job": name, "status": "completed", "result": asdict(result) if is_dataclass(result) else result}
