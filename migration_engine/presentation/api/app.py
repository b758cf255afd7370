"""FastAPI application."""

import threading
import uuid
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from migration_engine.application.dtos.migration_dto import ExecutionOptions, GenerationOptions
from migration_engine.domain.entities.difference import ComparisonMode, ComparisonOptions
from migration_engine.domain.entities.migration import RiskLevel
from migration_engine.domain.exceptions import InputValidationError, MigrationEngineError
from migration_engine.infrastructure.di_container import DIContainer
from migration_engine.presentation.serializers import comparison_to_dict, result_to_dict, script_to_dict


# Pydantic models for API
class CompareInput(BaseModel):
    """Input model for a schema comparison."""
    source_ref: str = Field(..., min_length=1)
    target_ref: str = Field(..., min_length=1)
    mode: Optional[str] = None
    ignore_schemas: List[str] = []
    object_types: List[str] = []
    include_system_objects: bool = False


class PlanInput(CompareInput):
    """Input model for generating a migration plan."""
    include_rollback: bool = True
    include_validation: bool = True
    author: Optional[str] = None
    business_justification: Optional[str] = None


class ExecuteInput(BaseModel):
    """Input model for executing a generated plan."""
    plan_job_id: str
    target_ref: str = Field(..., min_length=1)
    dry_run: bool = False
    validate_only: bool = False
    stop_on_error: bool = True


class RollbackInput(BaseModel):
    """Input model for rolling back an execution."""
    execution_job_id: str
    target_ref: str = Field(..., min_length=1)


class PlanOutput(BaseModel):
    """Output model for a migration plan. No job is stored when there is nothing to migrate."""
    job_id: Optional[str] = None
    steps_count: int
    risk_level: str
    estimated_execution_minutes: float
    rollback_complete: bool
    warnings: List[str]
    script: Dict[str, Any]


class JobOutput(BaseModel):
    """Output model for a background job."""
    job_id: str
    kind: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# Job storage (in production, use Redis or database)
jobs_store: Dict[str, Dict[str, Any]] = {}


def create_app(container: Optional[DIContainer] = None) -> FastAPI:
    """Create and configure FastAPI application."""

    if container is None:
        container = DIContainer().configure()

    app = FastAPI(
        title="Schema Migration Engine",
        description="Compare, plan, execute and roll back PostgreSQL schema migrations",
        version="1.0.0"
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _http_error(error: MigrationEngineError) -> HTTPException:
        if isinstance(error, InputValidationError):
            return HTTPException(status_code=400, detail=str(error))
        return HTTPException(status_code=500, detail=str(error))

    def _job(job_id: str, kind: Optional[str] = None) -> Dict[str, Any]:
        job = jobs_store.get(job_id)
        if job is None or (kind and job["kind"] != kind):
            raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
        return job

    def _comparison_options(data: CompareInput) -> ComparisonOptions:
        try:
            mode = ComparisonMode(data.mode) if data.mode else container.comparison_mode
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown comparison mode: {data.mode}")
        return ComparisonOptions(
            mode=mode,
            ignore_schemas=tuple(data.ignore_schemas),
            object_types=tuple(data.object_types),
            include_system_objects=data.include_system_objects,
        )

    def _run(job_id: str, action):
        job = jobs_store[job_id]
        job["status"] = "running"
        try:
            result = action()
        except MigrationEngineError as e:
            job["status"] = "failed"
            job["error"] = str(e)
            return
        job["result"] = result
        job["status"] = result.status.value

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "name": "Schema Migration Engine",
            "version": "1.0.0",
            "endpoints": {
                "compare": "/api/v1/compare",
                "plan": "/api/v1/plan",
                "execute": "/api/v1/execute",
                "rollback": "/api/v1/rollback",
                "jobs": "/api/v1/jobs/{job_id}"
            }
        }

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.post("/api/v1/compare")
    def compare_schemas(input_data: CompareInput):
        """Compare two schemas."""
        options = _comparison_options(input_data)
        try:
            result = container.get_compare_use_case().execute(
                input_data.source_ref, input_data.target_ref, options
            )
        except MigrationEngineError as e:
            raise _http_error(e)
        return comparison_to_dict(result)

    @app.post("/api/v1/plan", response_model=PlanOutput)
    def generate_plan(input_data: PlanInput):
        """Compare two schemas and generate a migration plan."""
        options = _comparison_options(input_data)
        try:
            comparison = container.get_compare_use_case().execute(
                input_data.source_ref, input_data.target_ref, options
            )
            if not comparison.differences:
                return PlanOutput(
                    steps_count=0,
                    risk_level=RiskLevel.LOW.value,
                    estimated_execution_minutes=0.0,
                    rollback_complete=True,
                    warnings=["Schemas are identical - nothing to migrate"],
                    script={},
                )
            script = container.get_generate_use_case().execute(
                input_data.source_ref,
                input_data.target_ref,
                comparison.differences,
                GenerationOptions(
                    include_rollback=input_data.include_rollback,
                    include_validation=input_data.include_validation,
                    author=input_data.author,
                    business_justification=input_data.business_justification,
                ),
            )
        except MigrationEngineError as e:
            raise _http_error(e)

        job_id = str(uuid.uuid4())
        jobs_store[job_id] = {"job_id": job_id, "kind": "plan", "status": "completed", "script": script}
        return PlanOutput(
            job_id=job_id,
            steps_count=len(script.steps),
            risk_level=script.risk_level.value,
            estimated_execution_minutes=script.estimated_execution_minutes,
            rollback_complete=script.rollback_script.is_complete,
            warnings=list(script.warnings),
            script=script_to_dict(script),
        )

    @app.post("/api/v1/execute", response_model=JobOutput, status_code=202)
    def execute_plan(input_data: ExecuteInput, background_tasks: BackgroundTasks):
        """Execute a generated plan in the background."""
        script = _job(input_data.plan_job_id, "plan")["script"]
        cancel_event = threading.Event()
        options = ExecutionOptions(
            dry_run=input_data.dry_run,
            validate_only=input_data.validate_only,
            stop_on_error=input_data.stop_on_error,
            cancel_event=cancel_event,
        )
        executor = container.get_executor()

        job_id = str(uuid.uuid4())
        jobs_store[job_id] = {
            "job_id": job_id, "kind": "execution", "status": "pending",
            "script": script, "cancel_event": cancel_event,
        }
        background_tasks.add_task(
            _run, job_id, lambda: executor.execute(script, input_data.target_ref, options)
        )
        return JobOutput(job_id=job_id, kind="execution", status="pending")

    @app.post("/api/v1/rollback", response_model=JobOutput, status_code=202)
    def rollback_execution(input_data: RollbackInput, background_tasks: BackgroundTasks):
        """Roll back the completed steps of an execution job."""
        execution_job = _job(input_data.execution_job_id, "execution")
        if execution_job.get("result") is None:
            raise HTTPException(status_code=400, detail="Execution has not finished")
        orchestrator = container.get_orchestrator()

        job_id = str(uuid.uuid4())
        jobs_store[job_id] = {"job_id": job_id, "kind": "rollback", "status": "pending"}
        background_tasks.add_task(
            _run,
            job_id,
            lambda: orchestrator.rollback(
                execution_job["script"], execution_job["result"], input_data.target_ref
            ),
        )
        return JobOutput(job_id=job_id, kind="rollback", status="pending")

    @app.post("/api/v1/jobs/{job_id}/cancel", response_model=JobOutput)
    def cancel_job(job_id: str):
        """Request cancellation; the execution stops before its next step."""
        job = _job(job_id, "execution")
        job["cancel_event"].set()
        return _job_output(job)

    @app.get("/api/v1/jobs/{job_id}", response_model=JobOutput)
    def get_job(job_id: str):
        """Get job status."""
        return _job_output(_job(job_id))

    return app


def _job_output(job: Dict[str, Any]) -> JobOutput:
    result = job.get("result")
    if job["kind"] == "plan":
        payload = script_to_dict(job["script"])
    else:
        payload = result_to_dict(result) if result is not None else None
    return JobOutput(
        job_id=job["job_id"],
        kind=job["kind"],
        status=job["status"],
        result=payload,
        error=job.get("error"),
    )
