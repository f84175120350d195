"""Project and training job API endpoints."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..models import (
    DGXProject,
    JobCreate,
    JobUpdate,
    Operation,
    ProjectCreate,
    ProjectUpdate,
    TrainingJob,
    get_db,
)
from ..utils import success_response
from .connections import _get_connection_or_404, _http_error, _internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dgx")


def _get_project_or_404(db: Session, project_id: str) -> DGXProject:
    project = db.get(DGXProject, project_id)
    if project is None:
        raise _http_error(404, "Not Found", f"Project '{project_id}' not found")
    return project


def _get_job_or_404(db: Session, job_id: str) -> TrainingJob:
    job = db.get(TrainingJob, job_id)
    if job is None:
        raise _http_error(404, "Not Found", f"Job '{job_id}' not found")
    return job


# Projects


@router.get("/projects")
async def list_projects(
    connection_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """List projects, most recently updated first."""
    try:
        query = db.query(DGXProject)
        if connection_id:
            query = query.filter(DGXProject.connection_id == connection_id)
        projects = query.order_by(DGXProject.updated_at.desc()).limit(limit).all()
        return success_response([p.to_dict() for p in projects])
    except Exception as e:
        raise _internal_error("list projects", e)


@router.get("/projects/{project_id}")
async def get_project(project_id: str, db: Session = Depends(get_db)):
    """A project together with its jobs, newest first."""
    try:
        project = _get_project_or_404(db, project_id)
        jobs = (
            db.query(TrainingJob)
            .filter(TrainingJob.project_id == project_id)
            .order_by(TrainingJob.created_at.desc())
            .all()
        )
        return success_response({**project.to_dict(), "jobs": [j.to_dict() for j in jobs]})
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get project", e)


@router.post("/projects")
async def create_project(payload: ProjectCreate, db: Session = Depends(get_db)):
    try:
        _get_connection_or_404(db, payload.connection_id)
        project = DGXProject(**payload.model_dump())
        db.add(project)
        db.commit()
        db.refresh(project)
        logger.info(f"Project created: {project.id} ({project.name})")
        return success_response(project.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("create project", e)


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str, payload: ProjectUpdate, db: Session = Depends(get_db)
):
    try:
        project = _get_project_or_404(db, project_id)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            raise _http_error(400, "Bad Request", "No valid fields to update")

        for field, value in updates.items():
            setattr(project, field, value)
        project.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(project)
        return success_response(project.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("update project", e)


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str, db: Session = Depends(get_db)):
    """Delete a project and its jobs. Operations keep running, unlinked."""
    try:
        project = _get_project_or_404(db, project_id)
        db.query(TrainingJob).filter(TrainingJob.project_id == project_id).delete(
            synchronize_session=False
        )
        db.query(Operation).filter(Operation.project_id == project_id).update(
            {Operation.project_id: None}, synchronize_session=False
        )
        db.delete(project)
        db.commit()
        return success_response({"deleted": project_id})
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("delete project", e)


# Training jobs


@router.get("/jobs")
async def list_jobs(
    project_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(TrainingJob)
        if project_id:
            query = query.filter(TrainingJob.project_id == project_id)
        jobs = query.order_by(TrainingJob.created_at.desc()).limit(limit).all()
        return success_response([j.to_dict() for j in jobs])
    except Exception as e:
        raise _internal_error("list jobs", e)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, db: Session = Depends(get_db)):
    try:
        return success_response(_get_job_or_404(db, job_id).to_dict())
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get job", e)


@router.post("/jobs")
async def create_job(payload: JobCreate, db: Session = Depends(get_db)):
    try:
        project = _get_project_or_404(db, payload.project_id)
        job = TrainingJob(**payload.model_dump())
        db.add(job)
        project.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(job)
        logger.info(f"Training job created: {job.id} ({job.name}) in {project.name}")
        return success_response(job.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("create job", e)


@router.put("/jobs/{job_id}")
async def update_job(job_id: str, payload: JobUpdate, db: Session = Depends(get_db)):
    """Edit a job. Moving to running or a finished status stamps the time."""
    try:
        job = _get_job_or_404(db, job_id)
        updates = payload.model_dump(exclude_unset=True, mode="json")
        if not updates:
            raise _http_error(400, "Bad Request", "No valid fields to update")

        status = updates.pop("status", None)
        for field, value in updates.items():
            setattr(job, field, value)
        if status is not None:
            job.apply_status(status)
        db.commit()
        db.refresh(job)
        return success_response(job.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("update job", e)


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, db: Session = Depends(get_db)):
    try:
        job = _get_job_or_404(db, job_id)
        db.delete(job)
        db.commit()
        return success_response({"deleted": job_id})
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("delete job", e)
