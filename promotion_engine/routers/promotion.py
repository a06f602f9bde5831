from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from promotion_engine.models.promotion import PromotionStatusType
from promotion_engine.services.promotion.facade import PromotionService
from promotion_engine.schemas.promotion import (
    PromotionVoteCreateRequest,
    PromotionVoteSummaryResponse,
    ActivePromotionVoteResponse,
    PromotionVoteDetailResponse,
    VoteSubmitRequest,
    VoteSubmitResponse,
)
from promotion_engine.dependencies.services import get_promotion_service


router = APIRouter(tags=["promotion-votes"])


@router.post(
    "/promotion-votes",
    response_model=PromotionVoteSummaryResponse,
    status_code=status.HTTP_201_CREATED
)
def initiate_promotion_vote(
    request: PromotionVoteCreateRequest,
    promotion_service: PromotionService = Depends(get_promotion_service),
) -> PromotionVoteSummaryResponse:
    """
    승진 투표 발의 API
    - 목표 직위는 현재 직위의 바로 위 단계만 허용
    - 신청자당 진행 중 투표 하나
    - 자격 투표자 수는 발의 시점에 고정
    """
    return promotion_service.initiate_promotion_vote(request)


@router.get("/promotion-votes/active", response_model=List[ActivePromotionVoteResponse])
def get_active_promotion_vote(
    employee_id: str = Query(min_length=1, max_length=64),
    promotion_service: PromotionService = Depends(get_promotion_service),
) -> List[ActivePromotionVoteResponse]:
    """조회자가 신청자이거나 투표 자격자인 진행 중 투표 목록"""
    return promotion_service.get_active_promotion_vote(employee_id)


@router.get("/promotion-votes/history", response_model=List[PromotionVoteSummaryResponse])
def get_vote_history(
    employee_id: str | None = Query(default=None, max_length=64),
    store_name: str | None = Query(default=None, max_length=100),
    status: PromotionStatusType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    promotion_service: PromotionService = Depends(get_promotion_service),
) -> List[PromotionVoteSummaryResponse]:
    """
    종료된 투표 이력 API
    - PASSED / FAILED / EXPIRED만 포함, 최신 발의 순
    - start_date / end_date는 발의 시각 기준
    """
    return promotion_service.get_vote_history(
        employee_id=employee_id,
        store_name=store_name,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/promotion-votes/{proposal_id}", response_model=PromotionVoteDetailResponse)
def get_promotion_vote(
    proposal_id: UUID,
    promotion_service: PromotionService = Depends(get_promotion_service),
) -> PromotionVoteDetailResponse:
    """승진 투표 상세 (실시간 집계 + 투표 기록)"""
    return promotion_service.get_promotion_vote(proposal_id)


@router.post(
    "/promotion-votes/{proposal_id}/votes",
    response_model=VoteSubmitResponse,
    status_code=status.HTTP_201_CREATED
)
def submit_vote(
    proposal_id: UUID,
    request: VoteSubmitRequest,
    promotion_service: PromotionService = Depends(get_promotion_service),
) -> VoteSubmitResponse:
    """
    투표 제출 API
    - 자격자 1인 1표, 신청자 본인 투표 불가
    - 과반 동의 확정 / 과반 불가능 시 즉시 종료
    """
    return promotion_service.submit_vote(proposal_id, request)
