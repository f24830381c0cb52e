"""Tag name normalization and validation rules."""
import re
from typing import Iterable, List, Optional

from .constants import MAX_TAG_NAME_LENGTH, MAX_TAGS_PER_IMAGE
from .exceptions import DuplicateException, ValidationException

TAG_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")


def normalize_tag_name(name: str) -> str:
    """Trim surrounding whitespace and lowercase."""
    return name.strip().lower()


def validate_tag_name(name: str) -> str:
    """
    Normalize ``name`` and check it against the tag naming rules.

    Returns:
        The normalized name

    Raises:
        ValidationException: Empty, too long, or outside ``[a-z0-9-]``
    """
    normalized = normalize_tag_name(name)
    if not normalized:
        raise ValidationException("tag name cannot be empty", field="tags")
    if len(normalized) > MAX_TAG_NAME_LENGTH:
        raise ValidationException(
            f"tag name too long (max {MAX_TAG_NAME_LENGTH} characters): {normalized}",
            field="tags"
        )
    if not TAG_NAME_PATTERN.match(normalized):
        raise ValidationException(
            f"tag name may only contain lowercase letters, digits and hyphens: {name!r}",
            field="tags"
        )
    return normalized


def normalize_tag_names(names: Iterable[str]) -> List[str]:
    """
    Normalize and validate a tag set requested for a single image.

    Order is preserved. Two names that only differ by case or surrounding
    whitespace are rejected rather than silently merged.

    Raises:
        ValidationException: A name breaks the naming rules, or too many tags
        DuplicateException: Two names are equal after normalization
    """
    names = list(names)
    if len(names) > MAX_TAGS_PER_IMAGE:
        raise ValidationException(
            f"too many tags (max {MAX_TAGS_PER_IMAGE})", field="tags"
        )

    seen = set()
    normalized = []
    for name in names:
        tag = validate_tag_name(name)
        if tag in seen:
            raise DuplicateException("Tag", tag)
        seen.add(tag)
        normalized.append(tag)
    return normalized


def clean_tag_filter(names: Optional[Iterable[str]]) -> List[str]:
    """
    Normalize a tag filter taken from a query.

    Unlike :func:`normalize_tag_names` this is lenient: blanks are dropped
    and repeats collapse, because a filter naming the same tag twice is
    still a well-defined query.
    """
    result = []
    for name in names or ():
        tag = normalize_tag_name(name)
        if tag and tag not in result:
            result.append(tag)
    return result
