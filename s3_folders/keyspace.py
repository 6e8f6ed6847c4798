from __future__ import annotations
"""Pure helpers mapping flat object keys onto folders and display names."""

SEPARATOR = "/"
ROOT = ""


def derive_display_name(key: str, scope_prefix: str) -> str | None:
    """Return the row name for ``key`` inside ``scope_prefix``.

    ``None`` means the key is structural (the folder's own marker object) and
    must not be rendered. Keys outside the scope are returned unchanged.
    """

    if not scope_prefix:
        return key
    if key == scope_prefix:
        return None
    if not key.startswith(scope_prefix):
        return key
    remainder = key[len(scope_prefix):]
    if not remainder:
        return None
    if remainder.startswith(SEPARATOR):
        remainder = remainder[len(SEPARATOR):]
    return remainder


def belongs_to_scope(key: str, scope_prefix: str) -> bool:
    return not scope_prefix or key.startswith(scope_prefix)


def normalize_prefix(prefix: str | None) -> str:
    cleaned = (prefix or "").strip().lstrip(SEPARATOR)
    if cleaned and not cleaned.endswith(SEPARATOR):
        cleaned += SEPARATOR
    return cleaned


def compose_key(folder: str | None, name: str) -> str:
    key_name = name.strip()
    if not key_name:
        raise ValueError("Object name cannot be empty")
    return f"{normalize_prefix(folder)}{key_name}"


def parent_prefix(prefix: str) -> str:
    trimmed = prefix.rstrip(SEPARATOR)
    if SEPARATOR not in trimmed:
        return ROOT
    return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR


def object_filename(key: str) -> str:
    cleaned = key.strip().rstrip(SEPARATOR)
    if not cleaned:
        return "download"
    return cleaned.rsplit(SEPARATOR, 1)[-1] or "download"


def bundle_filename(prefix: str) -> str:
    stem = prefix.strip().strip(SEPARATOR).replace(SEPARATOR, "_")
    return f"{stem or 'bundle'}.zip"
