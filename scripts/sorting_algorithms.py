"""In-place sorts used as sample clients (they mutate their input)."""
from __future__ import annotations


def merge_sort(v: list) -> None:
    if len(v) > 1:
        mid = len(v) // 2
        left, right = v[:mid], v[mid:]
        merge_sort(left)
        merge_sort(right)
        i = j = k = 0
        while i < len(left) and j < len(right):
            if left[i] < right[j]:
                v[k] = left[i]
                i += 1
            else:
                v[k] = right[j]
                j += 1
            k += 1
        v[k:] = left[i:] + right[j:]


def quick_sort(v: list, lo: int = 0, hi: int | None = None) -> None:
    # Lomuto partition; fine on random data, quadratic on sorted input
    if hi is None:
        hi = len(v) - 1
    while lo < hi:
        pivot = v[hi]
        i = lo
        for j in range(lo, hi):
            if v[j] < pivot:
                v[i], v[j] = v[j], v[i]
                i += 1
        v[i], v[hi] = v[hi], v[i]
        # recurse into the smaller half to bound the stack depth
        if i - lo < hi - i:
            quick_sort(v, lo, i - 1)
            lo = i + 1
        else:
            quick_sort(v, i + 1, hi)
            hi = i - 1


def insertion_sort(v: list) -> None:
    for i in range(1, len(v)):
        key, j = v[i], i - 1
        while j >= 0 and v[j] > key:
            v[j + 1] = v[j]
            j -= 1
        v[j + 1] = key
