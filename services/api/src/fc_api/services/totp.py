"""基于时间的一次性口令（RFC 6238）工具。"""

import base64
import binascii
import hashlib
import hmac
import secrets
import time
from urllib.parse import quote

TOTP_INTERVAL_SECONDS = 30
TOTP_DIGITS = 6
# 允许前后各一个时间步的时钟偏差。
TOTP_WINDOW_STEPS = 1


def generate_totp_secret() -> str:
    """生成 160 位 base32 密钥（不含填充）。"""
    return base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=")


def generate_totp(secret: str, timestamp: float, *, interval: int = TOTP_INTERVAL_SECONDS, digits: int = TOTP_DIGITS) -> str:
    """计算指定时间点的验证码，密钥非法时返回空串。"""
    normalized = secret.strip().replace(" ", "").upper()
    padded = normalized + "=" * ((8 - len(normalized) % 8) % 8)
    try:
        key = base64.b32decode(padded, casefold=True)
    except (binascii.Error, ValueError):
        return ""
    counter = int(timestamp // interval).to_bytes(8, "big")
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF) % (10**digits)
    return str(code_int).zfill(digits)


def verify_totp(secret: str | None, code: str | None, *, now: float | None = None) -> bool:
    """校验验证码，允许 ±1 个时间步。"""
    if not secret or not code:
        return False
    candidate = code.strip().replace(" ", "")
    if len(candidate) != TOTP_DIGITS or not candidate.isdigit():
        return False
    current = time.time() if now is None else now
    for step in range(-TOTP_WINDOW_STEPS, TOTP_WINDOW_STEPS + 1):
        generated = generate_totp(secret, current + step * TOTP_INTERVAL_SECONDS)
        if generated and hmac.compare_digest(generated, candidate):
            return True
    return False


def build_otpauth_uri(*, secret: str, account: str, issuer: str) -> str:
    """构造验证器应用可扫描的 otpauth 地址。"""
    label = quote(f"{issuer}:{account}")
    return (
        f"otpauth://totp/{label}?secret={secret}&issuer={quote(issuer)}"
        f"&algorithm=SHA1&digits={TOTP_DIGITS}&period={TOTP_INTERVAL_SECONDS}"
    )
