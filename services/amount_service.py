"""
金額服務：定點數（18 位小數）與十進位字串之間的轉換

所有金額在資料庫與 API 上都是十進位字串（例如 "133.333333333333333333"），
計算時一律轉成整數 minor units（10^-18），絕對不用 float。
"""
from decimal import Decimal, InvalidOperation

from core.exceptions import InvalidAmount

DECIMALS = 18
UNIT = 10 ** DECIMALS


def parse_amount(value) -> int:
    """
    十進位字串 -> minor units

    規則：
    - 最多 18 位小數（多出來的非零位數視為錯誤，不做四捨五入）
    - 不接受負數、NaN、Infinity

    範例：
        parse_amount("10") -> 10 * 10**18
        parse_amount("0.5") -> 5 * 10**17

    異常：
        InvalidAmount: 無法解析
    """
    if value is None or isinstance(value, (bool, float)):
        raise InvalidAmount(f"Invalid amount: {value!r}")

    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidAmount(f"Invalid amount: {value!r}")

    if not parsed.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")

    sign, digits, exponent = parsed.as_tuple()
    coefficient = int("".join(str(d) for d in digits) or "0")

    # 直接操作係數，避開 Decimal context 的精度限制（預設 28 位）
    shift = exponent + DECIMALS
    if shift >= 0:
        minor = coefficient * 10 ** shift
    else:
        divisor = 10 ** -shift
        if coefficient % divisor:
            raise InvalidAmount(f"Amount has more than {DECIMALS} decimal places: {value}")
        minor = coefficient // divisor

    if sign and minor:
        raise InvalidAmount(f"Amount must not be negative: {value}")

    return minor


def format_amount(minor: int) -> str:
    """
    minor units -> 十進位字串（去掉多餘的 0）

    範例：
        format_amount(100 * 10**18) -> "100"
        format_amount(133333333333333333333) -> "133.333333333333333333"
        format_amount(0) -> "0"
    """
    whole, frac = divmod(abs(minor), UNIT)
    text = str(whole)
    if frac:
        text += "." + str(frac).rjust(DECIMALS, "0").rstrip("0")
    return "-" + text if minor < 0 else text


def add_amounts(*values: str) -> str:
    """把多個十進位字串精確相加"""
    return format_amount(sum(parse_amount(v) for v in values))
