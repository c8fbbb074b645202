"""
Deterministic, storage-free shuffling of test sections and choices.

The order a candidate sees is a pure function of their token: section items are
shuffled with a seed derived from ``token|sec|<sectionId>`` and the choices of
each multiple-choice item with a seed from ``token|q|<itemId>``. Reloading the
page therefore always renders the same order.
"""
import copy

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
MASK32 = 0xFFFFFFFF

CHOICE_TYPES = ("mcq", "listening-mcq")


def fnv1a_32(text):
    """32-bit FNV-1a hash of the UTF-8 bytes of `text`."""
    h = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & MASK32
    return h


class XorShift32:
    """Marsaglia xorshift32 generator. A zero seed is replaced so the stream never sticks at 0."""

    def __init__(self, seed):
        self.state = (seed & MASK32) or 0x9E3779B9

    def next_uint32(self):
        x = self.state
        x ^= (x << 13) & MASK32
        x ^= x >> 17
        x ^= (x << 5) & MASK32
        self.state = x & MASK32
        return self.state

    def below(self, n):
        """Uniform-ish integer in [0, n)."""
        return self.next_uint32() % n


def shuffled_indices(n, seed):
    """Fisher-Yates permutation of range(n); result[i] is the original index shown at position i."""
    order = list(range(n))
    rng = XorShift32(seed)
    for i in range(n - 1, 0, -1):
        j = rng.below(i + 1)
        order[i], order[j] = order[j], order[i]
    return order


def section_seed(token, section_id):
    return fnv1a_32(f"{token}|sec|{section_id}")


def item_seed(token, item_id):
    return fnv1a_32(f"{token}|q|{item_id}")


def randomize_payload(payload, token):
    """
    Returns ``(shuffled_payload, choice_maps)``.

    ``choice_maps`` maps item id -> list where ``perm[shown_index] == original_index``.
    Every choice item gets an entry; when the payload sets ``randomize`` to False
    the permutation is the identity so callers keep a single code path.
    The input payload is never mutated.
    """
    out = copy.deepcopy(payload or {})
    enabled = out.get("randomize", True) is not False
    choice_maps = {}

    for sec in out.get("sections") or []:
        items = sec.get("items") or []
        if enabled and len(items) > 1:
            order = shuffled_indices(len(items), section_seed(token, sec.get("id", "")))
            sec["items"] = [items[i] for i in order]

        for item in sec.get("items") or []:
            if not isinstance(item, dict) or not item.get("id") or item.get("type") not in CHOICE_TYPES:
                continue
            choices = list(item.get("choices") or [])
            if enabled and len(choices) > 1:
                perm = shuffled_indices(len(choices), item_seed(token, item.get("id", "")))
            else:
                perm = list(range(len(choices)))
            item["choices"] = [choices[i] for i in perm]
            choice_maps[item["id"]] = perm

    return out, choice_maps


def to_original_index(choice_maps, item_id, shown_index):
    """Translates a shown choice index back to the authored index; None if out of range."""
    perm = choice_maps.get(item_id)
    if perm is None:
        return shown_index
    if shown_index is None or not 0 <= shown_index < len(perm):
        return None
    return perm[shown_index]


def to_shown_index(choice_maps, item_id, original_index):
    """Inverse of to_original_index."""
    perm = choice_maps.get(item_id)
    if perm is None:
        return original_index
    try:
        return perm.index(original_index)
    except ValueError:
        return None


def translate_answers_to_original(answers, choice_maps):
    """Converts shown-index choice answers to authored indices before storage or grading."""
    out = {}
    for item_id, raw in (answers or {}).items():
        if item_id in choice_maps:
            idx = _as_index(raw)
            out[item_id] = to_original_index(choice_maps, item_id, idx) if idx is not None else None
        else:
            out[item_id] = raw
    return out


def _as_index(raw):
    if isinstance(raw, bool) or raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
