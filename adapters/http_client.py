"""
협력자 REST 클라이언트 베이스

httpx.AsyncClient 기반 JSON API 호출 + 재시도.

재시도 규칙:
- 429: Retry-After 헤더(정수 초)만큼 대기 후 재시도, 해석 불가 시 선형 백오프
- 5xx / 타임아웃 / 연결 오류: 선형 백오프 후 재시도
- 재시도 소진: CollaboratorUnavailableError
- 4xx: 서브클래스의 _raise_rejected()로 확정 실패 변환 (재시도 안 함)
"""

import asyncio
import logging
from typing import Any, NoReturn

import httpx

from core.domain.errors import CollaboratorUnavailableError, RoundupError

logger = logging.getLogger(__name__)


class JsonApiClient:
    """JSON REST API 클라이언트 베이스

    Args:
        base_url: API 기본 URL
        api_key: 인증 키 (Authorization: Bearer)
        timeout: 요청 타임아웃 (초)
        max_retries: 최대 시도 횟수
        retry_backoff: 재시도 대기 단위 (초, 시도마다 선형 증가)
        transport: 테스트용 httpx 트랜스포트 (httpx.MockTransport)
    """

    service_name: str = "api"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _raise_rejected(self, status_code: int, message: str, data: dict) -> NoReturn:
        """4xx 응답을 도메인 예외로 변환 (서브클래스 재정의)"""
        raise RoundupError(message, code=f"HTTP_{status_code}")

    def _retry_after_delay(self, response: httpx.Response, attempt: int) -> float:
        """429 응답의 대기 시간 (초)

        Retry-After가 정수 초가 아니면 (HTTP-date, 누락 등) 선형 백오프로 대체.
        """
        try:
            seconds = int(response.headers.get("Retry-After"))
        except (TypeError, ValueError):
            return self.retry_backoff * (attempt + 1)
        return max(seconds, 0) * self.retry_backoff

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """API 요청 실행

        Raises:
            CollaboratorUnavailableError: 재시도 소진 (결과 불명)
            RoundupError: 4xx 거부 (서브클래스별 예외)
        """
        client = await self._get_client()
        last_error = "unknown"

        for attempt in range(self.max_retries):
            try:
                response = await client.request(method, path, json=json, headers=headers)

                if response.status_code == 429:
                    delay = self._retry_after_delay(response, attempt)
                    last_error = "rate limited"
                    logger.warning(
                        f"{self.service_name} rate limit, {delay}초 후 재시도",
                        extra={
                            "path": path,
                            "attempt": attempt + 1,
                            "retry_after": response.headers.get("Retry-After"),
                        },
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(delay)
                    continue

                if response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        f"{self.service_name} 서버 오류",
                        extra={
                            "path": path,
                            "status": response.status_code,
                            "attempt": attempt + 1,
                        },
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(self.retry_backoff * (attempt + 1))
                    continue

                if response.status_code >= 400:
                    data = _safe_json(response)
                    message = data.get("message") or data.get("error") or response.text
                    logger.warning(
                        f"{self.service_name} 요청 거부: {message}",
                        extra={"path": path, "status": response.status_code},
                    )
                    self._raise_rejected(response.status_code, str(message), data)

                return _safe_json(response)

            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(
                    "Request timeout",
                    extra={"service": self.service_name, "path": path, "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_backoff * (attempt + 1))

            except httpx.RequestError as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "Request error",
                    extra={
                        "service": self.service_name,
                        "path": path,
                        "error": last_error,
                        "attempt": attempt + 1,
                    },
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_backoff * (attempt + 1))

        raise CollaboratorUnavailableError(
            f"{self.service_name} 요청 실패 ({self.max_retries}회 시도): {last_error}"
        )


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}
