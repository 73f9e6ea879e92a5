"""
Idempotency 유틸리티

외부 협력자 호출용 결정적 멱등 키 생성 및 파싱
규칙:
- 주문: rq-{queue_item_id}
- 결제: rn-{renewal_item_id}-{attempt}
"""

ORDER_KEY_PREFIX: str = "rq"
CHARGE_KEY_PREFIX: str = "rn"


def make_order_key(queue_item_id: int) -> str:
    """마켓 주문 멱등 키 생성

    재큐잉 후 재실행되어도 같은 키를 사용하므로 브로커가 중복 주문을 거른다.

    Example:
        >>> make_order_key(42)
        'rq-42'
    """
    if queue_item_id is None:
        raise ValueError("queue_item_id는 비어 있을 수 없습니다")
    return f"{ORDER_KEY_PREFIX}-{queue_item_id}"


def make_charge_key(renewal_item_id: int, attempt: int) -> str:
    """갱신 결제 멱등 키 생성 (시도별)

    Example:
        >>> make_charge_key(7, 2)
        'rn-7-2'
    """
    if renewal_item_id is None:
        raise ValueError("renewal_item_id는 비어 있을 수 없습니다")
    if attempt < 1:
        raise ValueError(f"attempt는 1 이상이어야 합니다: {attempt}")
    return f"{CHARGE_KEY_PREFIX}-{renewal_item_id}-{attempt}"


def parse_order_key(key: str) -> int | None:
    """주문 멱등 키에서 큐 항목 ID 추출

    Example:
        >>> parse_order_key("rq-42")
        42
        >>> parse_order_key("other-1")
        None
    """
    if not key:
        return None

    prefix = f"{ORDER_KEY_PREFIX}-"
    if not key.startswith(prefix):
        return None

    suffix = key[len(prefix):]
    return int(suffix) if suffix.isdigit() else None
