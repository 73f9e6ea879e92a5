"""
Web API 모델 패키지

요청/응답 Pydantic 스키마
"""
