"""
api/app.py — FastAPI 앱 조립

저장소 생성 → 세션 모듈 설정 → 쿠키 세션 미들웨어 → 라우터 → 정적 파일 순으로 붙인다.
"""

import logging
import os
import threading
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

import api.session as session
from api.routes import router
from config import DATA_DIR, SESSION_TTL, STATIC_DIR
from topik_cbt.services.repository import (
    AccessPolicy,
    AnnotationRepository,
    CanvasRepository,
    ExamRepository,
    HistoryRepository,
)

SESSION_COOKIE = "topik_session"

logger = logging.getLogger(__name__)


def _attach_session_cookie(app: FastAPI) -> None:
    # 요청마다 쿠키의 세션 ID를 확인하고, 없거나 만료됐으면 새 세션을 발급한다
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()
            logger.debug(f"새 세션 발급: {sid[:8]}")
        request.state.session_id = sid

        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            max_age=SESSION_TTL,
            httponly=True,
            samesite="lax",
        )
        return response


def _serve_frontend(app: FastAPI) -> None:
    index_path = os.path.join(STATIC_DIR, "index.html")

    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/")
    async def serve_index():
        if not os.path.exists(index_path):
            return {"error": "index.html not found", "ui": "streamlit run topik_cbt/app.py"}
        return FileResponse(index_path)


def _start_session_janitor(interval: float) -> threading.Thread:
    def _loop():
        while True:
            time.sleep(interval)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    thread = threading.Thread(target=_loop, name="session-janitor", daemon=True)
    thread.start()
    return thread


def create_app(
    data_dir: str = DATA_DIR,
    access_policy: AccessPolicy | None = None,
    timer_factory=None,
    cleanup_interval: float | None = 300,
) -> FastAPI:
    """
    Args:
        data_dir:         JSON 저장소 디렉토리
        access_policy:    유료 시험 접근 정책 (기본: USER_TIER 설정)
        timer_factory:    세션별 카운트다운 생성 함수 (테스트에서 교체)
        cleanup_interval: 만료 세션 정리 주기(초). None이면 정리 스레드를 띄우지 않는다
    """
    app = FastAPI(title="TOPIK CBT", docs_url=None, redoc_url=None)

    app.state.exams = ExamRepository(data_dir)
    app.state.history = HistoryRepository(data_dir)
    app.state.annotations = AnnotationRepository(data_dir)
    app.state.canvas = CanvasRepository(data_dir)
    app.state.access_policy = access_policy or AccessPolicy()
    session.configure(
        exams=app.state.exams,
        history=app.state.history,
        annotations=app.state.annotations,
        canvas=app.state.canvas,
        access_policy=app.state.access_policy,
        timer_factory=timer_factory,
    )
    logger.info(f"데이터 디렉토리: {data_dir} / 이용 등급: {app.state.access_policy.tier}")

    # 브라우저 앱 창, 모바일 등 여러 출처에서 접근
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _attach_session_cookie(app)
    app.include_router(router)
    _serve_frontend(app)

    if cleanup_interval:
        _start_session_janitor(cleanup_interval)
    return app
