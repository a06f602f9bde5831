from typing import Optional
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from os import getenv


class AppException(Exception):
    """애플리케이션 커스텀 예외 베이스 클래스"""
    # 응답 본문의 error 필드 (None이면 클래스 이름 사용)
    kind: Optional[str] = None

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail or message
        super().__init__(self.message)

    @property
    def error_kind(self) -> str:
        return self.kind or self.__class__.__name__

    @property
    def status_code(self) -> int:
        """HTTP 상태 코드 반환"""
        return status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFoundError(AppException):
    """리소스를 찾을 수 없음 (404)"""
    kind = "NotFound"

    @property
    def status_code(self) -> int:
        return status.HTTP_404_NOT_FOUND


class ValidationError(AppException):
    """입력 검증 실패 (400)"""
    @property
    def status_code(self) -> int:
        return status.HTTP_400_BAD_REQUEST


class ConflictError(AppException):
    """리소스 충돌 (409)"""
    @property
    def status_code(self) -> int:
        return status.HTTP_409_CONFLICT


class ForbiddenError(AppException):
    """권한 없음 (403)"""
    @property
    def status_code(self) -> int:
        return status.HTTP_403_FORBIDDEN


class InternalError(AppException):
    """예상치 못한 서버 에러 (500)"""
    pass


class ServiceUnavailableError(AppException):
    """저장소 재시도 소진 (503)"""
    kind = "ServiceUnavailable"

    @property
    def status_code(self) -> int:
        return status.HTTP_503_SERVICE_UNAVAILABLE


# ============================================================================
# 승진 투표 도메인 예외
# ============================================================================

class InvalidPromotionPathError(ValidationError):
    """목표 직위가 현재 직위의 다음 단계가 아님"""
    kind = "InvalidPromotionPath"


class TerminalPositionError(ValidationError):
    """최상위 직위라 승진 경로 없음"""
    kind = "TerminalPosition"


class DuplicateOpenProposalError(ConflictError):
    """신청자에게 이미 진행 중인 승진 투표가 있음"""
    kind = "DuplicateOpenProposal"


class NoQualifiedVotersError(AppException):
    """자격 있는 투표자가 한 명도 없음 (422)"""
    kind = "NoQualifiedVoters"

    @property
    def status_code(self) -> int:
        return status.HTTP_422_UNPROCESSABLE_ENTITY


class SelfVoteForbiddenError(ForbiddenError):
    kind = "SelfVoteForbidden"


class NotQualifiedError(ForbiddenError):
    kind = "NotQualified"


class AlreadyVotedError(ConflictError):
    kind = "AlreadyVoted"


class ProposalNotOpenError(ConflictError):
    kind = "ProposalNotOpen"


class DeadlinePassedError(ConflictError):
    kind = "DeadlinePassed"


def is_development() -> bool:
    """개발 환경인지 확인"""
    env = getenv("ENVIRONMENT", "development").lower()
    return env in ("development", "dev", "local")


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """커스텀 애플리케이션 예외 핸들러"""
    response_data = {
        "error": exc.error_kind,
        "message": exc.message,
        "detail": exc.detail,
    }

    # 개발 환경에서만 스택 트레이스 포함 (예상치 못한 에러만)
    if is_development() and isinstance(exc, InternalError):
        import traceback
        response_data["traceback"] = traceback.format_exc()

    return JSONResponse(
        status_code=exc.status_code,
        content=response_data,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """요청 본문/쿼리 검증 실패를 ValidationError 형태로 변환"""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}")

    app_exc = ValidationError(
        message="Invalid request",
        detail="; ".join(messages) or "Invalid request"
    )
    return await app_exception_handler(request, app_exc)


async def sqlalchemy_integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """SQLAlchemy IntegrityError 핸들러 (중복 키, 외래 키 제약 등)"""
    error_message = str(exc.orig) if hasattr(exc, 'orig') else str(exc)

    # 중복 키 에러 감지
    if "unique" in error_message.lower() or "duplicate" in error_message.lower():
        app_exc = ConflictError(
            message="Resource conflict",
            detail=f"Resource already exists: {error_message}"
        )
    else:
        app_exc = ConflictError(
            message="Database integrity error",
            detail=error_message
        )

    return await app_exception_handler(request, app_exc)


async def sqlalchemy_operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """SQLAlchemy OperationalError 핸들러 (DB 연결 에러 등)"""
    error_message = str(exc.orig) if hasattr(exc, 'orig') else str(exc)

    app_exc = ServiceUnavailableError(
        message="Database operation failed",
        detail=error_message if is_development() else "Database operation failed"
    )

    return await app_exception_handler(request, app_exc)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """일반 예외 핸들러 (예상치 못한 에러)"""
    app_exc = InternalError(
        message="Internal server error",
        detail=str(exc) if is_development() else "An unexpected error occurred"
    )

    return await app_exception_handler(request, app_exc)
