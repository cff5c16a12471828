from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID

class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Name of the location")
    address: Optional[str] = Field(default=None, description="Address of the location")
    phone_number: Optional[str] = Field(default=None, description="Phone number of the location")
    is_main: bool = Field(default=False, description="If this is the main location")
    is_active: bool = Field(default=True, description="Indicates if the location is active")

class LocationOutput(BaseModel):
    id: UUID
    name: str
    address: Optional[str] = None
    phone_number: Optional[str] = None
    is_main: bool
    is_active: bool

    model_config = {"from_attributes": True}

class LocationList(BaseModel):
    locations: List[LocationOutput]
    total: int
    limit: int
    offset: int
