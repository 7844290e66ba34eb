"""
基础统计函数
所有函数对空输入、非有限值返回 0，不抛出异常
"""

import math
from typing import Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def finite(values: Iterable[Optional[float]]) -> List[float]:
    """过滤掉 None / NaN / inf，保留有限数值"""
    out = []
    for v in values:
        if v is None or isinstance(v, bool):
            continue
        try:
            f = float(v)
        except (TypeError, ValueError):
            continue
        if math.isfinite(f):
            out.append(f)
    return out


def total(nums: Iterable[float]) -> float:
    return sum(nums, 0.0)


def average(nums: List[float]) -> float:
    if not nums:
        return 0.0
    return total(nums) / len(nums)


def median(nums: List[float]) -> float:
    if not nums:
        return 0.0
    ordered = sorted(nums)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def std_dev(nums: List[float]) -> float:
    """样本标准差（n-1），少于 2 个点时返回 0"""
    if len(nums) < 2:
        return 0.0
    mean = average(nums)
    variance = sum((n - mean) ** 2 for n in nums) / (len(nums) - 1)
    return math.sqrt(variance)


def group_by(items: Iterable[T], key_fn: Callable[[T], K]) -> Dict[K, List[T]]:
    """按 key 分组，保留首次出现顺序"""
    groups: Dict[K, List[T]] = {}
    for item in items:
        groups.setdefault(key_fn(item), []).append(item)
    return groups


def clamp(num: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, num))


def percent_change(current: float, previous: float) -> float:
    """涨跌幅（%），上期为 0 时返回 0"""
    if not previous:
        return 0.0
    return (current / previous - 1) * 100


def format_year_month(date_iso: str) -> str:
    """YYYY-MM-DD → YYYY-MM"""
    return date_iso[:7]
