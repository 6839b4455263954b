# main.py
import logging
import sys
from typing import Annotated, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatsync import aggregates
from chatsync.config import (MAX_BODY_BYTES, MAX_USER_ID_LEN, SERVICE_NAME, SERVICE_VERSION,
                             Settings, SettingsError, load_settings)
from chatsync.database import Database
from chatsync.errors import ChatSyncError
from chatsync.merge_engine import MergeEngine
from chatsync.records import TrainingStore, add_learning_pattern, add_script_event
from chatsync.schemas import (BayesianPayload, LearningPayload, PreferencesPayload,
                              ScriptEventPayload, SyncPayload, TrainingPayload, VocabSavePayload,
                              parse_vocab_map)
from chatsync.sync import SyncCoordinator
from chatsync.utils import clamp_limit, iso_now

logger = logging.getLogger("chatsync.api")

router = APIRouter()

UserId = Annotated[str, Path(min_length=1, max_length=MAX_USER_ID_LEN)]


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        # close() rolls back anything left uncommitted and returns the connection
        db.close()


@router.get("/health")
def health(database: Database = Depends(get_database)):
    return {
        "status": "healthy",
        "db": "connected" if database.ping() else "error",
        "version": SERVICE_VERSION,
        "ts": iso_now(),
    }


@router.post("/api/sync")
def sync(payload: SyncPayload, db: Session = Depends(get_db)):
    result = SyncCoordinator(db).apply(payload.user_id, payload.data)
    return {
        "success": True,
        "interactions": result.interactions,
        "vocabUpdates": result.vocab_updates,
        "ts": iso_now(),
    }


@router.post("/api/vocab/save")
def save_vocab(payload: VocabSavePayload, db: Session = Depends(get_db)):
    entries = parse_vocab_map(payload.vocab)
    with db.begin():
        saved = MergeEngine(db).save_vocab_snapshot(payload.user_id, entries)
    return {"success": True, "saved": saved}


@router.get("/api/vocab/{user_id}")
def load_vocab(user_id: UserId, db: Session = Depends(get_db)):
    vocab = aggregates.ranked_vocab(db, user_id)
    return {"vocab": vocab, "count": len(vocab), "ts": iso_now()}


@router.get("/api/user/{user_id}")
def user_data(user_id: UserId, limit: Optional[str] = None,
              database: Database = Depends(get_database)):
    snapshot = aggregates.user_snapshot(database, user_id, clamp_limit(limit))
    snapshot["ts"] = iso_now()
    return snapshot


@router.put("/api/user/{user_id}/preferences")
def update_preferences(payload: PreferencesPayload, user_id: UserId,
                       db: Session = Depends(get_db)):
    with db.begin():
        MergeEngine(db).update_preferences(user_id, payload.personality, payload.settings)
    return {"success": True}


@router.post("/api/learning")
def save_learning(payload: LearningPayload, db: Session = Depends(get_db)):
    add_learning_pattern(db, payload)
    return {"success": True}


@router.post("/api/bayesian/update")
def update_bayesian(payload: BayesianPayload, db: Session = Depends(get_db)):
    with db.begin():
        MergeEngine(db).replace_bayesian(payload.user_id, payload.intent, payload.prior_prob,
                                         payload.conditional_probs)
    return {"success": True}


@router.get("/api/bayesian/{user_id}")
def load_bayesian(user_id: UserId, db: Session = Depends(get_db)):
    return {"probabilities": aggregates.bayesian_probabilities(db, user_id), "ts": iso_now()}


@router.post("/api/analytics/script")
def record_script(payload: ScriptEventPayload, db: Session = Depends(get_db)):
    add_script_event(db, payload)
    return {"success": True}


@router.get("/api/analytics/{user_id}")
def analytics(user_id: UserId, db: Session = Depends(get_db)):
    return {
        "scriptStats": aggregates.script_stats(db, user_id),
        "interactionStats": aggregates.daily_interactions(db, user_id),
        "ts": iso_now(),
    }


@router.get("/api/stats/global")
def stats_global(db: Session = Depends(get_db)):
    stats = aggregates.global_stats(db)
    stats["ts"] = iso_now()
    return stats


@router.post("/api/training/save")
def save_training(payload: TrainingPayload, db: Session = Depends(get_db)):
    pair = TrainingStore(db).save(payload)
    return {"success": True, "id": pair.id, "created_at": pair.to_dict()["created_at"]}


@router.get("/api/training/{user_id}")
def load_training(user_id: UserId, db: Session = Depends(get_db)):
    pairs = aggregates.trained_pairs(db, user_id)
    return {"pairs": pairs, "count": len(pairs), "ts": iso_now()}


@router.delete("/api/training/{user_id}/{pair_id}")
def delete_training(pair_id: int, user_id: UserId, db: Session = Depends(get_db)):
    deleted = TrainingStore(db).delete(user_id, pair_id)
    return {"success": True, "deleted": deleted}


def _install_error_handlers(app: FastAPI, expose_details: bool):
    def _server_error(exc: Exception) -> JSONResponse:
        message = str(exc) if expose_details else "Internal server error"
        return JSONResponse(status_code=500, content={"error": message})

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400,
                            content={"error": "Invalid body", "detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(ChatSyncError)
    async def _domain_error(request: Request, exc: ChatSyncError):
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        return _server_error(exc)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _install_body_limit(app: FastAPI, max_bytes: int):
    @app.middleware("http")
    async def _limit_body(request: Request, call_next):
        length = request.headers.get("content-length")
        if length is not None and length.isdigit() and int(length) > max_bytes:
            logger.warning("Refusing %s %s: body of %s bytes", request.method, request.url.path, length)
            return JSONResponse(status_code=413, content={"error": "Payload too large"})
        return await call_next(request)


def create_app(database: Database, settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION)
    app.state.database = database

    # registered before CORS so refusals still carry CORS headers
    _install_body_limit(app, settings.max_body_bytes if settings else MAX_BODY_BYTES)
    origins = settings.cors_origins if settings else ["*"]
    app.add_middleware(CORSMiddleware, allow_origins=origins, allow_methods=["*"], allow_headers=["*"])
    _install_error_handlers(app, settings.expose_error_details if settings else False)
    app.include_router(router)
    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


def main() -> None:
    configure_logging()
    try:
        settings = load_settings()
    except SettingsError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(settings.log_level)

    database = Database.from_settings(settings)
    try:
        database.init_schema()
    except SQLAlchemyError as exc:
        logger.error("Startup failed, schema could not be created: %s", exc)
        sys.exit(1)

    logger.info("%s v%s", SERVICE_NAME, SERVICE_VERSION)
    logger.info("Port     : %s", settings.port)
    logger.info("Database : %s", database.dialect)
    logger.info("Health   : /health")

    uvicorn.run(create_app(database, settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
