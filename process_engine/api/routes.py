"""
FastAPI routes for the process engine API.

Implements the boundary operations:
- POST /instances - Create an instance
- GET /instances/:id/status - Instance status read model
- GET /instances/:id/history - Instance audit trail
- GET /tasks/pending - Pending tasks of an assignee
- POST /tasks/:id/complete - Complete a task
- POST /tasks/:id/fail - Fail a task
- POST /process-queue - Drain the execution queue
- /templates and /functions - Template and function registry administration
- GET /health - Health check

The caller's identity is passed in the X-Actor-Id header; authentication
happens upstream.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from process_engine import __version__
from process_engine.core.errors import (
    DuplicateFunctionCode,
    DuplicateTemplateCode,
    FunctionNotFound,
    InstanceNotFound,
    MissingAssignment,
    SchemaValidationError,
    TaskAlreadyResolved,
    TaskNotAssigned,
    TaskNotFound,
    TemplateInactive,
    TemplateNotFound,
    TemplateValidationError,
)
from process_engine.core.models import (
    FunctionRegistryEntry,
    GraphDefinition,
    HistoryEvent,
    ImplementationType,
    WorkflowTemplate,
)
from process_engine.orchestrator.engine import InstanceStatusView, ProcessEngine
from process_engine.orchestrator.tasks import PendingTask

router = APIRouter(prefix="/v1", tags=["process-engine"])


# ==================== Request/Response Models ====================

class CreateInstanceRequest(BaseModel):
    """Request body for instance creation."""

    template_id: UUID
    instance_name: Optional[str] = Field(default=None, max_length=255)
    task_assignments: dict[str, str] = Field(
        default_factory=dict,
        description="TASK node id -> assignee",
    )
    initial_context: dict[str, Any] = Field(default_factory=dict)


class CreateInstanceResponse(BaseModel):
    """Response for instance creation."""

    instance_id: str
    message: str = "Workflow instance created successfully"


class HistoryResponse(BaseModel):
    instance_id: str
    events: list[HistoryEvent]


class PendingTasksResponse(BaseModel):
    tasks: list[PendingTask]
    count: int


class CompleteTaskRequest(BaseModel):
    """Request body for task completion."""

    output_data: dict[str, Any] = Field(default_factory=dict)


class CompleteTaskResponse(BaseModel):
    success: bool = True
    task_id: str
    instance_id: str


class FailTaskRequest(BaseModel):
    error_message: str = Field(..., min_length=1)


class FailTaskResponse(BaseModel):
    task_id: str
    instance_id: str
    status: str


class ProcessQueueResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int = 0


class CreateTemplateRequest(BaseModel):
    """Request body for template creation."""

    template_code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    workflow_type: str = Field(..., min_length=1, max_length=100)
    maturity_gate: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    definition: GraphDefinition

    class Config:
        json_schema_extra = {
            "example": {
                "template_code": "ONBOARDING",
                "name": "Client Onboarding",
                "workflow_type": "onboarding",
                "definition": {
                    "nodes": [
                        {"id": "start", "type": "START"},
                        {"id": "review", "type": "TASK", "function_code": "REVIEW_APPLICATION"},
                        {"id": "end", "type": "END"},
                    ],
                    "transitions": [
                        {"id": "t1", "from_node_id": "start", "to_node_id": "review"},
                        {"id": "t2", "from_node_id": "review", "to_node_id": "end"},
                    ],
                },
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    services: dict[str, str]


# ==================== Dependency Injection ====================

async def get_engine(request: Request) -> ProcessEngine:
    """Get process engine from app state."""
    return request.app.state.engine


# ==================== Instance Routes ====================

@router.post(
    "/instances",
    response_model=CreateInstanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow instance",
    description="Instantiate an active template at its START node and advance it.",
)
async def create_instance(
    request: CreateInstanceRequest,
    engine: ProcessEngine = Depends(get_engine),
) -> CreateInstanceResponse:
    """Create a new workflow instance."""
    try:
        instance = await engine.create_instance(
            request.template_id,
            assignments=request.task_assignments,
            initial_context=request.initial_context,
            instance_name=request.instance_name,
        )
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except TemplateInactive as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except MissingAssignment as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": e.message, "node_ids": e.node_ids},
        )
    except TemplateValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    return CreateInstanceResponse(instance_id=str(instance.id))


@router.get(
    "/instances/{instance_id}/status",
    response_model=InstanceStatusView,
    summary="Get instance status",
    description="Current node, status and per-task progress of an instance.",
)
async def get_instance_status(
    instance_id: UUID,
    engine: ProcessEngine = Depends(get_engine),
) -> InstanceStatusView:
    try:
        return await engine.get_instance_status(instance_id)
    except (InstanceNotFound, TemplateNotFound) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.get(
    "/instances/{instance_id}/history",
    response_model=HistoryResponse,
    summary="Get instance history",
)
async def get_instance_history(
    instance_id: UUID,
    engine: ProcessEngine = Depends(get_engine),
) -> HistoryResponse:
    try:
        events = await engine.get_history(instance_id)
    except InstanceNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return HistoryResponse(instance_id=str(instance_id), events=events)


# ==================== Task Routes ====================

@router.get(
    "/tasks/pending",
    response_model=PendingTasksResponse,
    summary="List pending tasks",
    description="PENDING tasks assigned to the caller, with their function's data contract.",
)
async def get_pending_tasks(
    assignee: Optional[str] = Query(default=None),
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: ProcessEngine = Depends(get_engine),
) -> PendingTasksResponse:
    who = assignee or actor_id
    if not who:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="assignee query parameter or X-Actor-Id header is required",
        )
    tasks = await engine.get_pending_tasks(who)
    return PendingTasksResponse(tasks=tasks, count=len(tasks))


@router.post(
    "/tasks/{task_id}/complete",
    response_model=CompleteTaskResponse,
    summary="Complete a task",
    description="Validate the output against the function's output schema and advance the instance.",
    responses={400: {"description": "Output validation failed"}},
)
async def complete_task(
    task_id: UUID,
    request: CompleteTaskRequest,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: ProcessEngine = Depends(get_engine),
):
    """Complete a pending task."""
    try:
        task = await engine.complete_task(task_id, request.output_data, actor_id=actor_id)
    except SchemaValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": e.message, "errors": e.errors},
        )
    except TaskNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except TaskNotAssigned as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except TaskAlreadyResolved as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    return CompleteTaskResponse(task_id=str(task.id), instance_id=str(task.workflow_instance_id))


@router.post(
    "/tasks/{task_id}/fail",
    response_model=FailTaskResponse,
    summary="Fail a task",
    description="Mark a task FAILED. The instance stays at the task's node.",
)
async def fail_task(
    task_id: UUID,
    request: FailTaskRequest,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: ProcessEngine = Depends(get_engine),
) -> FailTaskResponse:
    try:
        task = await engine.fail_task(task_id, request.error_message, actor_id=actor_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except TaskNotAssigned as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except TaskAlreadyResolved as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    return FailTaskResponse(
        task_id=str(task.id),
        instance_id=str(task.workflow_instance_id),
        status=task.status.value,
    )


# ==================== Queue Routes ====================

@router.post(
    "/process-queue",
    response_model=ProcessQueueResponse,
    summary="Drain the execution queue",
    description="Process up to `limit` pending queue items. Safe to call redundantly or on a timer.",
)
async def process_queue(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    engine: ProcessEngine = Depends(get_engine),
) -> ProcessQueueResponse:
    result = await engine.process_queue(limit)
    return ProcessQueueResponse(**result.to_dict())


# ==================== Template Routes ====================

@router.post(
    "/templates",
    response_model=WorkflowTemplate,
    status_code=status.HTTP_201_CREATED,
    summary="Create a template",
)
async def create_template(
    request: CreateTemplateRequest,
    engine: ProcessEngine = Depends(get_engine),
) -> WorkflowTemplate:
    try:
        return await engine.templates.create_template(request.model_dump())
    except TemplateValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": e.message,
                "errors": [
                    {"code": err.code, "message": err.message, "node_id": err.node_id}
                    for err in e.errors
                ],
            },
        )
    except DuplicateTemplateCode as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get(
    "/templates",
    response_model=list[WorkflowTemplate],
    summary="List templates",
)
async def list_templates(
    workflow_type: Optional[str] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    engine: ProcessEngine = Depends(get_engine),
) -> list[WorkflowTemplate]:
    return await engine.templates.list_templates(workflow_type, is_active)


@router.get(
    "/templates/{template_id}",
    response_model=WorkflowTemplate,
    summary="Get a template",
)
async def get_template(
    template_id: UUID,
    engine: ProcessEngine = Depends(get_engine),
) -> WorkflowTemplate:
    try:
        return await engine.templates.get_template(template_id)
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.put(
    "/templates/{template_id}/definition",
    response_model=WorkflowTemplate,
    summary="Replace a template definition",
    description="Validates and replaces the whole definition. In-flight instances are not migrated.",
)
async def replace_template_definition(
    template_id: UUID,
    definition: GraphDefinition,
    engine: ProcessEngine = Depends(get_engine),
) -> WorkflowTemplate:
    try:
        return await engine.templates.replace_definition(template_id, definition)
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except TemplateValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post(
    "/templates/{template_id}/activate",
    response_model=WorkflowTemplate,
    summary="Activate a template",
)
async def activate_template(
    template_id: UUID,
    engine: ProcessEngine = Depends(get_engine),
) -> WorkflowTemplate:
    try:
        return await engine.templates.set_active(template_id, True)
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.post(
    "/templates/{template_id}/deactivate",
    response_model=WorkflowTemplate,
    summary="Deactivate a template",
)
async def deactivate_template(
    template_id: UUID,
    engine: ProcessEngine = Depends(get_engine),
) -> WorkflowTemplate:
    try:
        return await engine.templates.set_active(template_id, False)
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


# ==================== Function Registry Routes ====================

@router.post(
    "/functions",
    response_model=FunctionRegistryEntry,
    status_code=status.HTTP_201_CREATED,
    summary="Register a function",
)
async def register_function(
    entry: FunctionRegistryEntry,
    engine: ProcessEngine = Depends(get_engine),
) -> FunctionRegistryEntry:
    try:
        return await engine.registry.register(entry)
    except DuplicateFunctionCode as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get(
    "/functions",
    response_model=list[FunctionRegistryEntry],
    summary="List registered functions",
)
async def list_functions(
    implementation_type: Optional[ImplementationType] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    engine: ProcessEngine = Depends(get_engine),
) -> list[FunctionRegistryEntry]:
    return await engine.registry.list(implementation_type, is_active)


@router.get(
    "/functions/{function_code}",
    response_model=FunctionRegistryEntry,
    summary="Get a registered function",
)
async def get_function(
    function_code: str,
    engine: ProcessEngine = Depends(get_engine),
) -> FunctionRegistryEntry:
    entry = await engine.registry.lookup(function_code)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=FunctionNotFound(function_code).message,
        )
    return entry


# ==================== Health Check Routes ====================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the engine's backing services.",
)
async def health_check(request: Request) -> HealthResponse:
    """Check health of all services."""
    resources = getattr(request.app.state, "resources", None)
    services = await resources.health() if resources is not None else {}

    unhealthy_count = sum(1 for s in services.values() if s == "unhealthy")
    if unhealthy_count == 0:
        overall_status = "healthy"
    elif unhealthy_count == len(services):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        services=services,
    )
