"""
Dependency FastAPI condivise dai router.
"""
from typing import Dict, Optional

from fastapi import Header, HTTPException, Request

from core.database import SqlWineStore, get_db
from core.session import SessionContext, require_session
from ingest.confirmation import ConfirmationWorkflow, Phase, WorkflowState
from ingest.errors import WineImportError


async def get_session_context(authorization: Optional[str] = Header(None)) -> SessionContext:
    """Sessione dall'header `Authorization: Bearer <jwt>` (vuota se assente)."""
    return SessionContext.from_bearer(authorization)


async def get_store():
    async for db in get_db():
        yield SqlWineStore(db)


def http_error(error: WineImportError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict()["error"])


async def get_user_workflow(request: Request, session: SessionContext) -> ConfirmationWorkflow:
    """
    Workflow di conferma dell'utente corrente (uno per utente).

    Un workflow resta in `app.state.workflows` solo mentre è attivo: viene
    registrato quando lascia IDLE e rimosso quando ci torna (commit o
    annullamento).

    Raises:
        HTTPException 401: sessione assente o non valida
    """
    try:
        user_id = await require_session(session)
    except WineImportError as e:
        raise http_error(e)

    workflows: Dict[str, ConfirmationWorkflow] = request.app.state.workflows
    if user_id in workflows:
        return workflows[user_id]

    workflow = ConfirmationWorkflow()

    def track(state: WorkflowState):
        if state.phase == Phase.IDLE:
            workflows.pop(user_id, None)
        else:
            workflows[user_id] = workflow

    workflow.subscribe(track)
    return workflow
