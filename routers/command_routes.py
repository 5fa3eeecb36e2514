# routers/command_routes.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from routers.portfolio_routes import get_portfolio_state
from schemas.actions import (
    ClassifiedIntent,
    CommandTextRequest,
    ExecuteRequest,
    MutationPreview,
    MutationResult,
    PreviewRequest,
)
from services.actions.intent_parser import IntentParser, get_intent_parser
from services.actions.intent_router import classify_intent
from services.actions.mutation_executor import MutationExecutor
from services.actions.tool_registry import CONFIRM_MUTATION_TOOLS, MUTATION_TOOL_NAMES, TOOL_REGISTRY
from services.portfolio_repository import commit_mutation
from services.portfolio_store import PortfolioState

router = APIRouter()


def get_parser() -> IntentParser:
    return get_intent_parser()


@router.get("/tools")
def list_tools():
    return [
        {
            "id": t.id,
            "type": t.type,
            "description": t.description,
            "requires_confirmation": t.id in CONFIRM_MUTATION_TOOLS,
        }
        for t in TOOL_REGISTRY
    ]


@router.post("/classify", response_model=ClassifiedIntent)
def classify(body: CommandTextRequest):
    return classify_intent(body.text)


@router.post("/parse")
async def parse_command(
    body: CommandTextRequest,
    state: PortfolioState = Depends(get_portfolio_state),
    parser: IntentParser = Depends(get_parser),
):
    """Text -> tool call; mutation tools come back with their preview attached."""
    call = await parser.parse(body.text, state.positions)
    out: Dict[str, Any] = {"tool_call": call, "preview": None}
    if call is not None and call.tool in MUTATION_TOOL_NAMES:
        out["preview"] = MutationExecutor(state).preview(call.tool, call.args)
    return out


@router.post("/preview", response_model=MutationPreview)
def preview(body: PreviewRequest, state: PortfolioState = Depends(get_portfolio_state)):
    return MutationExecutor(state).preview(body.tool, body.args)


@router.post("/execute", response_model=MutationResult)
def execute(body: ExecuteRequest, db: Session = Depends(get_db)):
    """Failed results leave the state untouched and nothing is saved."""
    return commit_mutation(
        db,
        lambda state: MutationExecutor(state).execute(body.tool, body.resolved_args),
        accept=lambda result: result.success,
    )
