"""
Minimal-period algorithms used as sample clients of the measurement pipeline.

The period of s is the smallest p >= 1 with s[i] == s[i + p] for every valid i
(len(s) for a string with no shorter period).
"""


def period_naive1(s: str) -> int:
    # O(n^2): compare every shift character by character
    n = len(s)
    for p in range(1, n):
        for j in range(n - p):
            if s[j] != s[j + p]:
                break
        else:
            return p
    return n


def period_naive2(s: str) -> int:
    # O(n^2) as well, but the comparison runs in C
    n = len(s)
    for p in range(1, n):
        if s[:n - p] == s[p:]:
            return p
    return n


def period_smart(s: str) -> int:
    """O(n) via the border (failure) function: period = n - longest border."""
    n = len(s)
    if n == 0:
        return 0
    border = [0] * n
    for i in range(1, n):
        x = border[i - 1]
        while x > 0 and s[x] != s[i]:
            x = border[x - 1]
        if s[x] == s[i]:
            x += 1
        border[i] = x
    return n - border[-1]
