"""FastAPI application for the green action rewards engine."""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from green_rewards.config.rules import get_criteria, get_subcategories
from green_rewards.config.settings import get_config
from green_rewards.errors import EngineError, Forbidden, InvalidState, InvalidSubmission, NotFound
from green_rewards.orchestration.runner import Engine, build_engine, process_submission, retry_verification
from green_rewards.types import ActionCategory, ActionQuery, ActionStatus, DistributionStatus, UserRole
from green_rewards.utils.circuit_breaker import get_circuit_breaker
from green_rewards.utils.file_operations import dataframe_to_csv_text, leaderboard_to_dataframe

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Green Rewards API",
    description="Verification and rewards engine for green actions, scored by Google Gemini",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure as needed for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_engine: Optional[Engine] = None

# Roles allowed to see and manage other users' actions
ADMIN_ROLES = (UserRole.ADMIN, UserRole.DLH)

_ERROR_STATUS = {
    InvalidSubmission: 400,
    Forbidden: 403,
    NotFound: 404,
    InvalidState: 409,
}


@app.on_event("shutdown")
def shutdown_event():
    """Release engine resources on application shutdown."""
    global _engine
    if _engine is not None:
        logger.info("Application shutdown: closing engine...")
        _engine.close()
        _engine = None


def get_engine() -> Engine:
    """Get or create the engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_config())
    return _engine


class Requester:
    """Identity supplied by the upstream auth layer via headers."""

    def __init__(self, user_id: str, role: UserRole):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_requester(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Requester:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        role = UserRole((x_user_role or UserRole.WARGA.value).upper())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    return Requester(x_user_id, role)


def require_webhook_key(x_sha_key: Optional[str] = Header(None)) -> None:
    """Exact match of the x-sha-key header against SHA_WEBHOOK_SECRET."""
    expected_secret = get_config().webhook_secret
    if not expected_secret:
        raise HTTPException(status_code=401, detail="Webhook secret not configured on server")
    if not x_sha_key:
        raise HTTPException(status_code=401, detail="Missing x-sha-key header")
    if x_sha_key != expected_secret:
        raise HTTPException(status_code=401, detail="Invalid x-sha-key")


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    status_code = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status_code == 500:
        logger.error(f"Unhandled engine error on {request.url.path}: {exc}", exc_info=exc)
    return error_response(status_code, str(exc))


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, exc.detail, headers=exc.headers)


def error_response(status_code: int, message, headers=None) -> JSONResponse:
    """Errors share the success envelope's statusCode/message keys."""
    return JSONResponse(
        status_code=status_code,
        content={"statusCode": status_code, "message": message},
        headers=headers,
    )


def envelope(message: str, data=None, meta=None, status_code: int = 200) -> dict:
    body = {"statusCode": status_code, "message": message, "data": jsonable_encoder(data)}
    if meta is not None:
        body["meta"] = jsonable_encoder(meta)
    return body


def _parse_category(category: str) -> ActionCategory:
    try:
        return ActionCategory(category)
    except ValueError:
        raise InvalidSubmission(f"Unknown category: {category}")


@app.get("/health")
def health_check():
    """Health check endpoint."""
    config = get_config()
    return {
        "status": "healthy",
        "gemini_configured": bool(config.gemini_api_key),
        "groq_configured": bool(config.groq_api_key),
        "circuit_breakers": {
            "gemini": get_circuit_breaker("gemini").get_stats(),
            "groq": get_circuit_breaker("groq").get_stats(),
        },
    }


# ----------------------------------------------------------------------
# Green actions
# ----------------------------------------------------------------------

@app.get("/green-actions/categories")
def categories_info():
    """Public: categories, subcategories and their point rules."""
    data = {
        category.value: {
            subcategory: jsonable_encoder(get_criteria(category, subcategory))
            for subcategory in get_subcategories(category)
        }
        for category in ActionCategory
    }
    return envelope("Categories retrieved successfully", data)


@app.post("/green-actions", status_code=201)
def submit_green_action(
    file: UploadFile = File(...),
    category: str = Form(...),
    subcategory: str = Form(...),
    description: Optional[str] = Form(None),
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    """Upload evidence of a green action and have it scored."""
    media_bytes = file.file.read()
    action = process_submission(
        engine,
        user_id=requester.user_id,
        media_bytes=media_bytes,
        mime_type=file.content_type or "",
        category=_parse_category(category),
        subcategory=subcategory,
        description=description,
    )
    return envelope("Green action submitted successfully", action, status_code=201)


def _action_query(page, limit, category, subcategory, status) -> ActionQuery:
    return ActionQuery(page=page, limit=limit, category=category, subcategory=subcategory, status=status)


@app.get("/green-actions/me")
def my_green_actions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[ActionCategory] = None,
    subcategory: Optional[str] = None,
    status: Optional[ActionStatus] = None,
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    result = engine.ledger.list_for_user(
        requester.user_id, _action_query(page, limit, category, subcategory, status)
    )
    return envelope("Green actions retrieved successfully", result.data, result.meta)


@app.get("/green-actions/stats")
def my_green_action_stats(
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    stats = engine.ledger.user_stats(requester.user_id)
    return envelope("Statistics retrieved successfully", stats)


@app.get("/green-actions")
def all_green_actions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[ActionCategory] = None,
    subcategory: Optional[str] = None,
    status: Optional[ActionStatus] = None,
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    """Admin view of all actions."""
    if not requester.is_admin:
        raise Forbidden("Admin or DLH role required")
    result = engine.ledger.list_all(_action_query(page, limit, category, subcategory, status))
    return envelope("Green actions retrieved successfully", result.data, result.meta)


@app.get("/green-actions/{action_id}")
def get_green_action(
    action_id: str,
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    action = engine.ledger.get(action_id, requester.user_id, requester.is_admin)
    return envelope("Green action retrieved successfully", action)


@app.delete("/green-actions/{action_id}")
def delete_green_action(
    action_id: str,
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    engine.ledger.delete(action_id, requester.user_id, requester.is_admin)
    return envelope("Green action deleted successfully")


@app.post("/green-actions/{action_id}/retry")
def retry_green_action(
    action_id: str,
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    action = retry_verification(engine, action_id, requester.user_id)
    return envelope("Verification retry processed", action)


# ----------------------------------------------------------------------
# Leaderboard
# ----------------------------------------------------------------------

@app.get("/leaderboard")
def leaderboard(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    format: str = Query("json", pattern="^(json|csv)$"),
    engine: Engine = Depends(get_engine),
):
    """All-time leaderboard, as JSON or CSV."""
    result = engine.ranking.page(page, limit)
    if format == "csv":
        csv_text = dataframe_to_csv_text(leaderboard_to_dataframe(result.data))
        return Response(
            content=csv_text,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=leaderboard_page_{page}.csv"},
        )
    return envelope("Leaderboard retrieved successfully", result.data, result.meta)


@app.get("/leaderboard/top-three")
def leaderboard_top_three(engine: Engine = Depends(get_engine)):
    return envelope("Top three retrieved successfully", engine.ranking.top(3))


@app.get("/leaderboard/my-rank")
def leaderboard_my_rank(
    requester: Requester = Depends(get_requester),
    engine: Engine = Depends(get_engine),
):
    return envelope("Rank retrieved successfully", engine.ranking.user_rank(requester.user_id))


@app.post("/leaderboard/distribute-reward", dependencies=[Depends(require_webhook_key)])
def distribute_reward(
    period: Optional[str] = Query(None),
    engine: Engine = Depends(get_engine),
):
    """Webhook for the scheduler: pay today's leaderboard bonus."""
    outcome = engine.distribution.distribute(period)
    if outcome.status == DistributionStatus.FAILED:
        raise HTTPException(status_code=500, detail=outcome.message)
    return envelope(outcome.message, outcome)
