# trustchain_core/subjects.py
"""Token-wise subject containment, used to pick the export a subject belongs to."""

PWC = "*"
FWC = ">"


def tokens(subject: str):
    return subject.split(".")


def is_contained_in(subject: str, pattern: str) -> bool:
    """
    True when every subject matched by ``subject`` is also matched by
    ``pattern``: ``foo.bar`` is contained in ``foo.*`` and ``foo.>``.
    """
    s, p = tokens(subject), tokens(pattern)
    for i, pt in enumerate(p):
        if pt == FWC:
            return len(s) > i
        if i >= len(s):
            return False
        if pt == PWC:
            if s[i] == FWC:
                return False
            continue
        if pt != s[i]:
            return False
    return len(s) == len(p)
