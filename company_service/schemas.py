"""Pydantic schemas for request validation and response projection in the Company Service."""

from pydantic import AliasChoices, BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List

# Request bodies accept camelCase (taxId, legalName, ...) as well as snake_case.
INPUT_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# --- Company schemas ---

class CompanyCreate(BaseModel):
    """Fields required to register a new company. The id is generated by the store."""
    tax_id: str = Field(..., min_length=1, description="Tax id (CNPJ) checked against the registry")
    legal_name: str = Field(..., min_length=1, description="Legal name (razão social)")
    trade_name: str = Field(..., min_length=1, description="Trade name (nome fantasia)")

    model_config = INPUT_CONFIG

class CompanyUpdate(CompanyCreate):
    """Full replacement of a company. The id must match the path id when one is given."""
    id: int


# --- User schemas ---

class UserCreate(BaseModel):
    """Fields required to create a user inside an existing company."""
    name: str = Field(..., min_length=1, description="Display name")
    username: str = Field(..., min_length=1, description="Login name")
    password: str = Field(..., min_length=1, description="Credential secret, stored hashed")
    company_id: int = Field(
        ...,
        validation_alias=AliasChoices("companyRef", "companyId", "empresaId", "company_id"),
        description="Id of the owning company",
    )

    model_config = INPUT_CONFIG

class UserUpdate(UserCreate):
    id: int


# --- Response schemas ---

class UserSummary(BaseModel):
    """
    User as nested inside a company response.
    Carries neither the owning company nor the credential.
    """
    id: int
    name: str
    username: str
    company_id: int

    model_config = ConfigDict(from_attributes=True)

class CompanyResponse(BaseModel):
    """Company with its users listed as summaries."""
    id: int
    tax_id: str
    legal_name: str
    trade_name: str
    users: List[UserSummary] = []

    model_config = ConfigDict(from_attributes=True)

class UserResponse(BaseModel):
    """User with the owning company's legal name inlined instead of the full company."""
    id: int
    name: str
    username: str
    company_id: int
    company_legal_name: str

    @classmethod
    def from_row(cls, user, company_legal_name: str) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            username=user.username,
            company_id=user.company_id,
            company_legal_name=company_legal_name,
        )

class CompanyDeleteResponse(BaseModel):
    id: int
    removed_users: int = 0

class UserDeleteResponse(BaseModel):
    id: int
