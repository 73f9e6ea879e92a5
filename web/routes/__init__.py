"""
API 라우트 패키지

각 기능별 라우터 모듈:
- health: 헬스 체크
- ledger: 라운드업 원장
- queue: 마켓 큐 스테이징/실행
- renewals: 구독 갱신
- finance: 재무제표, 수수료 대사
"""
