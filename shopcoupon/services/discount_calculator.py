"""
할인 금액 계산기

목적: 쿠폰 할인 유형과 장바구니 금액으로 할인 금액 계산 (부작용 없는 순수 함수)

금액은 항상 Decimal로 계산하며, 마지막에 화폐 단위(기본 0.01)로 반올림합니다.
"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Union

from shopcoupon.config import settings


class DiscountType(str, Enum):
    """할인 유형"""

    PERCENTAGE = "PERCENTAGE"  # 정률 할인 (예: 10%)
    FIXED_AMOUNT = "FIXED_AMOUNT"  # 정액 할인 (예: 5,000원)


HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Union[Decimal, int, str, None]) -> Optional[Decimal]:
    """
    금액 값을 Decimal로 변환

    float는 이진 부동소수점 오차가 섞이므로 받지 않습니다.
    """
    if value is None:
        return None
    if isinstance(value, float):
        raise TypeError("금액은 float가 아닌 Decimal, int 또는 문자열이어야 합니다")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantize_money(amount: Decimal) -> Decimal:
    """화폐 단위로 반올림 (ROUND_HALF_UP)"""
    return amount.quantize(settings.MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_discount(
    cart_total: Decimal,
    discount_type: Union[DiscountType, str],
    discount_value: Decimal,
    max_discount_amount: Optional[Decimal] = None,
) -> Decimal:
    """
    장바구니 금액에 대한 할인 금액 계산

    Args:
        cart_total: 장바구니 총액 (0 이상)
        discount_type: 할인 유형 (PERCENTAGE, FIXED_AMOUNT)
        discount_value: 할인 값 (정률이면 %, 정액이면 금액)
        max_discount_amount: 최대 할인 금액 (None이면 제한 없음)

    Returns:
        할인 금액 (0 이상, 장바구니 총액 이하)

    Raises:
        ValueError: 장바구니 금액이 음수이거나 할인 유형을 알 수 없는 경우
    """
    cart_total = to_decimal(cart_total)
    discount_value = to_decimal(discount_value)
    max_discount_amount = to_decimal(max_discount_amount)

    if cart_total < ZERO:
        raise ValueError("장바구니 금액은 0 이상이어야 합니다")

    discount_type = DiscountType(discount_type)

    if discount_type is DiscountType.PERCENTAGE:
        discount = cart_total * discount_value / HUNDRED
    else:
        discount = discount_value

    # 최대 할인 금액 제한
    if max_discount_amount is not None and discount > max_discount_amount:
        discount = max_discount_amount

    # 결제 금액이 음수가 되지 않도록 장바구니 총액으로 제한
    discount = max(min(discount, cart_total), ZERO)

    return quantize_money(discount)
