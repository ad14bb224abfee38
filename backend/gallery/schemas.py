"""
Public JSON shapes served by /api/collections and /api/collection/{id}.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class CollectionSummary(BaseModel):
    """One entry of the collections listing."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Notion page ID")
    title: str = Field("Untitled", description="Name property")
    subtitle: str = ""
    location: str = ""
    year: int
    description: str = ""
    count: int = Field(0, description="Number of images on the record")
    cover: str = Field("", description="First cached image URL")
    preview_images: List[str] = Field(default_factory=list, alias="previewImages")


class CollectionImage(BaseModel):
    url: str
    title: str
    description: str = ""


class CollectionDetail(BaseModel):
    """A single collection with all its images."""
    id: str
    title: str = "Untitled"
    subtitle: str = ""
    location: str = ""
    year: int
    description: str = ""
    count: int = 0
    cover: str = ""
    images: List[CollectionImage] = Field(default_factory=list)
