"""Category domain model."""

import re

from pydantic import BaseModel, Field


class Category(BaseModel):
    """Task category, identified by a slug of its display name."""

    id: str = Field(..., description="Slug derived from the name (e.g. 'side-projects')")
    name: str = Field(..., description="Display name")


def category_slug(name: str) -> str:
    """Derive a category id: trimmed, lowercased, whitespace runs replaced with hyphens."""
    return re.sub(r"\s+", "-", name.strip().lower())
