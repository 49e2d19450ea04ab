import string

# Letters, digits, "." and "-" only. No DNS label rules, no length limit.
_ALLOWED = frozenset(string.ascii_letters + string.digits + ".-")


def valid_name(name) -> bool:
    """Character-class check for subject names and store keys."""
    if not isinstance(name, str) or name == "":
        return False
    if name[0] == "-":
        return False
    return all(char in _ALLOWED for char in name)
