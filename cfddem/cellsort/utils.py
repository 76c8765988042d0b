# =====================================
# Utils
# =====================================
def next_pow2(x: int) -> int:
    """Smallest power of two that is >= x (x >= 1, up to 2**32)."""
    x -= 1
    x |= (x >> 1)
    x |= (x >> 2)
    x |= (x >> 4)
    x |= (x >> 8)
    x |= (x >> 16)
    return x + 1


# sentinel for cells that hold no particles in the sorted tables
EMPTY_CELL = -1
