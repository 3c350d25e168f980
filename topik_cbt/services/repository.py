"""
services/repository.py

엔진 외부 협력자(백엔드) 구현 — DATA_DIR 아래 JSON 파일 저장소.

  - ExamRepository       : 시험 목록 / 시험 문항 조회
  - HistoryRepository    : 응시 기록 저장 / 삭제
  - AnnotationRepository : 텍스트 주석 저장 (id 기준 upsert)
  - CanvasRepository     : 필기 데이터 로드 / 저장
  - AccessPolicy         : 유료 시험 접근 권한

모든 레코드는 camelCase JSON으로 저장한다 (프론트엔드와 같은 형태).
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from config import DATA_DIR, USER_TIER
from topik_cbt.errors import ContentLoadError
from topik_cbt.models.annotation_model import Annotation, CanvasData, TargetType
from topik_cbt.models.question_model import Exam, Question
from topik_cbt.models.session_state import ExamAttempt
from topik_cbt.services.sample_exams import SAMPLE_EXAMS

logger = logging.getLogger(__name__)


class JsonFileStore:
    """JSON 문서 하나를 스레드 안전하게 읽고 쓴다. 쓰기는 임시 파일 교체로 원자적으로 처리."""

    def __init__(self, path: str, default_factory: Callable[[], Any]):
        self.path = path
        self._default_factory = default_factory
        self._lock = threading.RLock()

    def read(self) -> Any:
        """
        Raises:
            ContentLoadError: 파일이 손상되어 JSON으로 읽을 수 없는 경우
        """
        with self._lock:
            if not os.path.exists(self.path):
                return self._default_factory()
            with open(self.path, "r", encoding="utf-8") as f:
                try:
                    return json.load(f)
                except ValueError as e:
                    raise ContentLoadError(f"{os.path.basename(self.path)} 파일이 손상되었습니다: {e}") from e

    def write(self, data: Any) -> None:
        with self._lock:
            directory = os.path.dirname(self.path) or "."
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise

    def update(self, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            data = fn(self.read())
            self.write(data)
            return data


class ExamRepository:
    """
    시험 콘텐츠 저장소.

    exams.json 이 없으면 내장 샘플 시험을 사용한다.
    """

    def __init__(self, data_dir: str = DATA_DIR, exams: Optional[List[Exam]] = None):
        self._store = JsonFileStore(os.path.join(data_dir, "exams.json"), list)
        self._fixed = exams

    def _load_all(self) -> List[Exam]:
        if self._fixed is not None:
            return list(self._fixed)
        try:
            raw = self._store.read()
        except (OSError, ValueError) as e:
            raise ContentLoadError(f"시험 목록을 읽지 못했습니다: {e}") from e
        if not raw:
            return list(SAMPLE_EXAMS)
        try:
            return [Exam.model_validate(item) for item in raw]
        except ValidationError as e:
            raise ContentLoadError(f"시험 데이터 형식이 올바르지 않습니다: {e.error_count()}건") from e

    def list_exams(self) -> List[Exam]:
        """목록 화면용 시험 요약 (문항 제외)."""
        return [exam.summary() for exam in self._load_all()]

    def get_exam(self, exam_id: str) -> Optional[Exam]:
        for exam in self._load_all():
            if exam.id == exam_id:
                return exam.summary()
        return None

    def get_exam_questions(self, exam_id: str) -> List[Question]:
        """
        시험 문항을 반환한다. 콘텐츠가 없으면 예외가 아니라 빈 리스트.

        Raises:
            ContentLoadError: 저장소를 읽지 못한 경우
        """
        for exam in self._load_all():
            if exam.id == exam_id:
                logger.info(f"[get_exam_questions] {exam_id}: {len(exam.questions)}문항")
                return list(exam.questions)
        logger.warning(f"[get_exam_questions] 문항 없음: {exam_id}")
        return []

    def save_exams(self, exams: List[Exam]) -> None:
        self._store.write([e.model_dump(mode="json", by_alias=True) for e in exams])


class HistoryRepository:
    def __init__(self, data_dir: str = DATA_DIR):
        self._store = JsonFileStore(os.path.join(data_dir, "history.json"), list)

    def list_history(self) -> List[ExamAttempt]:
        try:
            raw = self._store.read()
        except (OSError, ValueError) as e:
            raise ContentLoadError(f"응시 기록을 읽지 못했습니다: {e}") from e
        try:
            return [ExamAttempt.model_validate(item) for item in raw]
        except ValidationError as e:
            raise ContentLoadError(f"응시 기록 형식이 올바르지 않습니다: {e.error_count()}건") from e

    def save_history(self, attempt: ExamAttempt) -> None:
        """새 기록을 덧붙인다. 기존 기록은 변경하지 않는다."""
        record = attempt.model_dump(mode="json", by_alias=True)
        self._store.update(lambda items: [*items, record])
        logger.info(f"응시 기록 저장: {attempt.id} ({attempt.exam_id}) {attempt.score}/{attempt.max_score}")

    def delete_history(self, attempt_id: str) -> bool:
        removed = False

        def _drop(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            nonlocal removed
            kept = [item for item in items if item.get("id") != attempt_id]
            removed = len(kept) != len(items)
            return kept

        self._store.update(_drop)
        if removed:
            logger.info(f"응시 기록 삭제: {attempt_id}")
        return removed


class AnnotationRepository:
    def __init__(self, data_dir: str = DATA_DIR):
        self._store = JsonFileStore(os.path.join(data_dir, "annotations.json"), dict)

    def list_annotations(self, context_prefix: Optional[str] = None) -> List[Annotation]:
        """
        Raises:
            ContentLoadError: annotations.json이 손상됐거나 레코드 형식이 올바르지 않은 경우
        """
        raw: Dict[str, Any] = self._store.read()
        try:
            items = [Annotation.model_validate(v) for v in raw.values()]
        except (AttributeError, ValidationError) as e:
            raise ContentLoadError(f"주석 데이터 형식이 올바르지 않습니다: {e}") from e
        if context_prefix:
            items = [a for a in items if a.context_key.startswith(f"{context_prefix}-")]
        return items

    def save_annotation(self, annotation: Annotation) -> None:
        record = annotation.model_dump(mode="json", by_alias=True)
        self._store.update(lambda items: {**items, annotation.id: record})


def canvas_key(target_id: str, target_type: TargetType, page_index: int) -> str:
    return f"{TargetType(target_type).value}:{target_id}:{page_index}"


class CanvasRepository:
    def __init__(self, data_dir: str = DATA_DIR):
        self._store = JsonFileStore(os.path.join(data_dir, "canvas.json"), dict)

    def load_canvas(self, target_id: str, target_type: TargetType, page_index: int) -> Optional[CanvasData]:
        key = canvas_key(target_id, target_type, page_index)
        try:
            raw = self._store.read().get(key)
            return CanvasData.model_validate(raw) if raw else None
        except (AttributeError, ValidationError) as e:
            raise ContentLoadError(f"필기 데이터 형식이 올바르지 않습니다: {key}") from e

    def save_canvas(self, target_id: str, target_type: TargetType, page_index: int, data: CanvasData) -> None:
        key = canvas_key(target_id, target_type, page_index)
        record = data.model_dump(mode="json", by_alias=True)

        def _merge(items: Dict[str, Any]) -> Dict[str, Any]:
            # 더 오래된 version은 덮어쓰지 않는다
            current = items.get(key)
            if current and current.get("version", 0) > data.version:
                logger.info(f"오래된 필기 버전 무시: {key} v{data.version}")
                return items
            return {**items, key: record}

        self._store.update(_merge)


class AccessPolicy:
    """FREE 등급은 유료(is_paid) 시험에 접근할 수 없다."""

    def __init__(self, tier: str = USER_TIER):
        self.tier = tier.upper()

    def can_access_content(self, exam: Exam) -> bool:
        return not exam.is_paid or self.tier == "PAID"
