from pydantic import BaseModel


class TeacherResponse(BaseModel):
    """Teacher directory entry; never includes the password."""

    id: int
    username: str
    name: str
    role: str

    class Config:
        from_attributes = True
