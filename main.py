"""
main.py — TOPIK CBT 실행기

    python main.py                    # FastAPI 서버 + 브라우저 앱 창
    TOPIK_UI=streamlit python main.py # streamlit 화면

서버가 응답할 때까지 기다린 뒤 브라우저를 열고, 종료 신호가 올 때까지 메인 스레드를 유지한다.
"""

import logging
import os
import shutil
import socket
import subprocess
import sys
import threading
import time
import traceback

_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

logger = logging.getLogger(__name__)

# 앱 창 모드(--app)를 지원하는 브라우저 실행 파일 이름
_APP_BROWSERS = ("google-chrome", "chrome", "chromium", "msedge", "microsoft-edge")


class _NullStream:
    """콘솔 없이(pythonw, 패키징 빌드) 실행될 때 sys.stdout/stderr 대신 쓴다."""
    def write(self, data): pass
    def flush(self): pass
    def isatty(self): return False
    def close(self): pass


def _configure_logging() -> None:
    if sys.stdout is None:
        sys.stdout = _NullStream()
    if sys.stderr is None:
        sys.stderr = _NullStream()

    handlers = [logging.StreamHandler(sys.stdout)]
    try:
        handlers.append(logging.FileHandler(LOG_FILE, encoding="utf-8"))
    except PermissionError:
        # 다른 프로세스가 로그 파일을 잡고 있으면 콘솔에만 남긴다
        pass
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


# ── 포트 / 서버 ──────────────────────────────────────────────────────────────

def _pick_port() -> int:
    """DEFAULT_PORT가 비어 있으면 그대로 쓰고, 사용 중이면 OS가 고른 빈 포트."""
    for candidate in (DEFAULT_PORT, 0):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((DEFAULT_HOST, candidate))
            except OSError:
                logger.info(f"포트 {candidate} 사용 중")
                continue
            return s.getsockname()[1]
    raise RuntimeError("사용할 수 있는 포트가 없습니다.")


def _wait_until_listening(port: int, timeout: float = 15.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.2)
    return False


def _serve_api(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"API 서버 시작: http://{DEFAULT_HOST}:{port}")
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"API 서버 오류:\n{traceback.format_exc()}")


def _spawn_streamlit(port: int) -> subprocess.Popen:
    script = os.path.join(BASE_DIR, "topik_cbt", "app.py")
    logger.info(f"streamlit 화면 시작: {script} (port {port})")
    return subprocess.Popen([
        sys.executable, "-m", "streamlit", "run", script,
        "--server.port", str(port),
        "--server.address", DEFAULT_HOST,
        "--server.headless", "true",
    ])


def _open_window(url: str) -> None:
    """크롬/엣지가 있으면 앱 창으로, 없으면 기본 브라우저로 연다."""
    for name in _APP_BROWSERS:
        path = shutil.which(name)
        if path:
            logger.info(f"앱 창 실행: {path}")
            subprocess.Popen([path, f"--app={url}", "--no-first-run", "--window-size=1280,900"])
            return

    import webbrowser
    webbrowser.open(url)


# ── 진입점 ───────────────────────────────────────────────────────────────────

def main() -> int:
    _configure_logging()
    os.chdir(BASE_DIR)
    logger.info("=== TOPIK CBT 시작 ===")

    port = _pick_port()
    ui_process = None
    if os.getenv("TOPIK_UI", "").lower() == "streamlit":
        ui_process = _spawn_streamlit(port)
    else:
        threading.Thread(target=_serve_api, args=(port,), daemon=True).start()

    try:
        if not _wait_until_listening(port):
            logger.error("서버가 제한 시간 안에 응답하지 않았습니다. 이전 실행이 남아 있는지 확인하세요.")
            return 1

        _open_window(f"http://{DEFAULT_HOST}:{port}")
        while True:
            time.sleep(10)
    except KeyboardInterrupt:
        logger.info("사용자 종료")
        return 0
    finally:
        if ui_process is not None:
            ui_process.terminate()


if __name__ == "__main__":
    sys.exit(main())
