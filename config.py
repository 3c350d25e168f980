import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
DATA_DIR = os.getenv("TOPIK_DATA_DIR", os.path.join(BASE_DIR, "data"))
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))  # 1시간

# 시험지 구성 (TOPIK II 고정 형식)
QUESTIONS_PER_EXAM = 50
OPTIONS_PER_QUESTION = 4
DEFAULT_QUESTION_SCORE = 2
PASS_PERCENTAGE = 60.0

# 렌더링 설정
LONG_OPTION_CHARS = 25      # 보기 중 하나라도 이 길이를 넘으면 1열 배치
TIME_WARNING_SECONDS = 300  # 남은 시간 5분 미만이면 경고 표시

# 타이머 / 필기 레이어
TIMER_INTERVAL_SECONDS = 1.0
CANVAS_DEBOUNCE_MS = int(os.getenv("CANVAS_DEBOUNCE_MS", "1000"))

# 이용 등급 (FREE 사용자는 유료 시험에 접근 불가)
USER_TIER = os.getenv("TOPIK_USER_TIER", "FREE").upper()
