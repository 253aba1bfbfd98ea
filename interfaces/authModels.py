from pydantic import BaseModel, ConfigDict, Field, model_validator

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8)
    password_confirmation: str | None = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password_confirmation is not None and self.password_confirmation != self.password:
            raise ValueError("password confirmation does not match")
        return self

class Token(BaseModel):
    access_token: str
    token_type: str

class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class TokenData(BaseModel):
    email: str | None = None
