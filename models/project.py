from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

class ProjectBase(BaseModel):
    name: str
    code: Optional[str] = None

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Project name is required')
        return v.strip()

class ProjectCreate(ProjectBase):
    pass

class Project(ProjectBase):
    id: str
    created_by: Optional[str] = None
    created_at: datetime
