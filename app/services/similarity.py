import numpy as np


def cosine(a, b) -> float:
    """Cosine similarity over the common prefix of *a* and *b*.

    Vectors of different lengths are compared on their first
    ``min(len(a), len(b))`` components.  Returns 0.0 if either side is empty
    or has zero norm, and when the result is not finite (NaN or infinite
    components).
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    va = np.asarray(a[:n], dtype=np.float64)
    vb = np.asarray(b[:n], dtype=np.float64)
    with np.errstate(invalid="ignore", over="ignore"):
        na = np.linalg.norm(va)
        nb = np.linalg.norm(vb)
        if na == 0 or nb == 0:
            return 0.0
        score = float(np.dot(va, vb) / (na * nb))
    if not np.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))
