import math

TRUTHY = {"1", "true", "yes", "on"}


def parse_int(v, default=None, minv=None, maxv=None):
    if v is None or v == "" or isinstance(v, bool):
        return default
    # 2021.0 is fine, 2021.9 is not silently truncated
    if isinstance(v, float) and not v.is_integer():
        return default
    try:
        n = int(v)
    except (TypeError, ValueError, OverflowError):
        return default
    if minv is not None and n < minv:
        return default
    if maxv is not None and n > maxv:
        return default
    return n


def parse_float(v, default=None, minv=None):
    if v is None or v == "" or isinstance(v, bool):
        return default
    try:
        n = float(v)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(n):
        return default
    if minv is not None and n < minv:
        return default
    return n


def parse_bool(v) -> bool:
    return str(v or "").strip().lower() in TRUTHY


def clean_str(v, max_len=None):
    if v is None:
        return None
    s = str(v).strip()
    if not s:
        return None
    return s[:max_len] if max_len else s
