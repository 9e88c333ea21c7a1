from pydantic import BaseModel


class OkResponse(BaseModel):
    result: bool = True


class ErrorResponse(BaseModel):
    result: bool = False
    error: str
