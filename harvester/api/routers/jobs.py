"""Job endpoints.

Routes
------
POST /jobs/daily              Create one job per active scraping source
GET  /jobs/{id}               Job record (status, counts, artifact location)
GET  /jobs/{id}/results       Stored per-URL results of a finished job
POST /jobs/{id}/cancel        Request cancellation of a running job
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


@router.post("/daily", status_code=202, response_model=dict[str, Any])
def run_daily(request: Request) -> dict[str, Any]:
    job_ids = request.app.state.service.run_daily()
    return {"job_ids": job_ids, "count": len(job_ids)}


@router.get("/{job_id}", response_model=dict[str, Any])
def get_job(job_id: str, request: Request) -> dict[str, Any]:
    """Return the job record for *job_id*."""
    job = request.app.state.service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
    return job


@router.get("/{job_id}/results", response_model=dict[str, Any])
def get_results(job_id: str, request: Request) -> dict[str, Any]:
    """Return stored results; 404 until the job has completed."""
    service = request.app.state.service
    if service.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
    results = service.get_results(job_id)
    if results is None:
        raise HTTPException(status_code=404, detail=f"No results yet for job '{job_id}'.")
    return results


@router.post("/{job_id}/cancel", response_model=dict[str, Any])
def cancel_job(job_id: str, request: Request) -> dict[str, Any]:
    service = request.app.state.service
    if service.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
    return {"job_id": job_id, "cancelled": service.cancel(job_id)}
