"""
Database Schemas

MongoDB collection schemas defined as Pydantic models.
This file serves as the single source of truth for your data structure.

Collections:
    users   -> User
    posts   -> Post
    samples -> Sample (sample_id and qr_code are assigned by the service)
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


class User(BaseModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    full_name: Optional[str] = Field(None, validation_alias=AliasChoices("full_name", "fullName"))


class Post(BaseModel):
    title: str = Field(..., min_length=1)
    content: str
    author: Optional[str] = None


class SampleType(str, Enum):
    SOIL = "Soil"
    PLANT = "Plant"
    WATER = "Water"
    INSECT = "Insect"


class Sample(BaseModel):
    """A collected sample.

    Only `type` is required. Measurements (pH, temperature, ...) and other
    descriptive attributes are kept as extra fields and never touch the
    identifier logic.
    """

    model_config = ConfigDict(extra="allow")

    type: SampleType
    project_code: Optional[str] = None
    location: Optional[str] = None
    collected_by: Optional[str] = None
    notes: Optional[str] = None
