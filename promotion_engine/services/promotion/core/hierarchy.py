"""직위 서열 및 승진 경로"""
from os import getenv

from promotion_engine.exceptions import InvalidPromotionPathError, TerminalPositionError

DEFAULT_LADDER = (
    "Clerk",
    "Senior Clerk",
    "Team Lead",
    "Assistant Store Manager",
    "Store Manager",
    "Area Manager",
    "General Manager",
)


class PositionHierarchy:
    """
    하위 → 상위 순서의 고정 직위 사다리
    - 각 직위의 승진 대상은 바로 위 한 단계뿐
    - 최상위 직위는 승진 대상 없음
    """

    def __init__(self, ladder: tuple[str, ...] | list[str] = DEFAULT_LADDER):
        ladder = tuple(position.strip() for position in ladder if position and position.strip())
        if not ladder:
            raise ValueError("Position ladder must not be empty")
        if len(set(ladder)) != len(ladder):
            raise ValueError(f"Position ladder contains duplicates: {ladder}")
        self._ladder = ladder
        self._ranks = {position: index for index, position in enumerate(ladder)}

    @classmethod
    def from_env(cls) -> "PositionHierarchy":
        """POSITION_LADDER (쉼표 구분, 하위 직위부터) 환경 변수로 생성"""
        raw = getenv("POSITION_LADDER", "").strip()
        if not raw:
            return cls()
        return cls(raw.split(","))

    @property
    def positions(self) -> tuple[str, ...]:
        return self._ladder

    def rank(self, position: str) -> int | None:
        return self._ranks.get(position)

    def next_position(self, current: str) -> str | None:
        rank = self.rank(current)
        if rank is None or rank + 1 >= len(self._ladder):
            return None
        return self._ladder[rank + 1]

    def is_terminal(self, position: str) -> bool:
        return self.next_position(position) is None

    def is_at_or_above(self, position: str, reference: str) -> bool:
        rank = self.rank(position)
        reference_rank = self.rank(reference)
        if rank is None or reference_rank is None:
            return False
        return rank >= reference_rank

    def validate_path(self, current: str, target: str) -> None:
        """target이 current의 유일한 다음 직위인지 검증"""
        if self.rank(current) is None:
            raise InvalidPromotionPathError(
                message="Invalid promotion path",
                detail=f"Unknown position: {current}"
            )
        expected = self.next_position(current)
        if expected is None:
            raise TerminalPositionError(
                message="Terminal position",
                detail=f"{current} is the top position and cannot be promoted"
            )
        if target != expected:
            raise InvalidPromotionPathError(
                message="Invalid promotion path",
                detail=f"{current} can only be promoted to {expected}, not {target}"
            )
