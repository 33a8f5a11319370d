"""
Consistent hashing for percentage-based rollouts.

Each (actor, feature) pair lands in a stable bucket in [0, 100). The input is
``"<actor_id>:<feature_key>"`` accumulated djb2-style (times 33 plus the code
point). Feature keys of equal length would otherwise shift every actor's
bucket by a near-constant offset, so the accumulator goes through a 32-bit
avalanche finalizer before the bucket is taken.
"""

_SEED = 5381
_MULTIPLIER = 33
_MASK = 0xFFFFFFFF


def _to_int32(value: int) -> int:
    value &= _MASK
    return value - 0x100000000 if value & 0x80000000 else value


def _finalize(value: int) -> int:
    # murmur3 fmix32
    value &= _MASK
    value ^= value >> 16
    value = (value * 0x85EBCA6B) & _MASK
    value ^= value >> 13
    value = (value * 0xC2B2AE35) & _MASK
    value ^= value >> 16
    return value


def rollout_hash(actor_id: str, feature_key: str) -> int:
    """Bucket for ``actor_id`` under ``feature_key``, in [0, 100)."""
    accumulator = _SEED
    for char in f"{actor_id}:{feature_key}":
        accumulator = _to_int32(accumulator * _MULTIPLIER + ord(char))
    return abs(_to_int32(_finalize(accumulator))) % 100


def in_rollout(actor_id: str, feature_key: str, percentage: int) -> bool:
    """Whether the actor falls inside a rollout of ``percentage`` percent."""
    return rollout_hash(actor_id, feature_key) < percentage
