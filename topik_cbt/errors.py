"""
errors.py

시험 엔진 예외 계층.

  - StructureIntegrityError : 섹션 구조표 손상. 로드 시점에 즉시 실패 (사용자에게 노출되지 않음)
  - ContentLoadError        : 문제/응시 기록 로드 실패. 목록 화면에 머무르며 재시도 가능
  - AccessDeniedError       : 유료 콘텐츠 접근 거부. 업그레이드 안내로 분기
  - AnnotationMatchMiss     : 주석 문구가 본문에 없음. 렌더링 중에는 조용히 건너뜀
  - IllegalTransitionError  : 현재 화면 상태에서 허용되지 않는 전이
"""


class TopikCbtError(Exception):
    """엔진 공통 기반 예외."""


class StructureIntegrityError(TopikCbtError, ValueError):
    """섹션 범위가 1~50을 빈틈/중복 없이 덮지 않는 경우."""


class ContentLoadError(TopikCbtError, RuntimeError):
    """백엔드(저장소)에서 시험 콘텐츠를 가져오지 못한 경우."""


class AccessDeniedError(TopikCbtError):
    """접근 권한이 없는 시험을 선택한 경우."""

    def __init__(self, exam_id: str):
        super().__init__(f"시험 '{exam_id}'에 접근할 수 없습니다.")
        self.exam_id = exam_id


class AnnotationMatchMiss(TopikCbtError, LookupError):
    """주석 문구를 원문에서 찾을 수 없는 경우."""


class IllegalTransitionError(TopikCbtError, ValueError):
    """상태 머신에서 정의되지 않은 전이를 요청한 경우."""

    def __init__(self, view: str, event: str):
        super().__init__(f"'{view}' 상태에서 '{event}' 전이는 허용되지 않습니다.")
        self.view = view
        self.event = event
