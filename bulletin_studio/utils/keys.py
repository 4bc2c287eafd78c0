import hashlib

MOD = 2 ** 31


def make_key(*parts: str, mod: int = MOD) -> int:
    h = hashlib.sha256("||".join(map(str, parts)).encode()).hexdigest()
    return int(h[:8], 16) % mod


def render_lock_key(bulletin_id) -> int:
    """Stable advisory-lock key for one bulletin; identical across processes."""
    return make_key(f"render_bulletin_{bulletin_id}")
