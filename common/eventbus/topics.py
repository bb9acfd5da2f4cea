from __future__ import annotations

from .core import Topic


# 잔액/멤버십/추천/입출금 상태 변경 도메인 이벤트
TOPIC_LEDGER = Topic("nsl-ledger.ledger")
# 환율 소스 전환 등 관리자 변경 이력
TOPIC_RATES = Topic("nsl-ledger.rates")
