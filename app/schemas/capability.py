"""
Capability schemas
"""
from typing import Optional, List
from pydantic import BaseModel


class CapabilityResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category: str

    class Config:
        from_attributes = True


class CapabilityAssign(BaseModel):
    capability_id: int


class RoleCapabilityResponse(BaseModel):
    id: int
    role: str
    capability_id: int

    class Config:
        from_attributes = True


class UserCapabilityResponse(BaseModel):
    id: int
    user_id: int
    capability_id: int
    granted_by: Optional[int] = None

    class Config:
        from_attributes = True


class MyCapabilitiesResponse(BaseModel):
    role: str
    capabilities: List[str]
