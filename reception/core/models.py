"""Modèles Pydantic pour l'API."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from reception.core.lot_states import EntryType, ItemType, LotStatus, normalize_state, normalize_text


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    role: str = Field(..., pattern=r"^(admin|user)$")


class User(UserBase):
    id: int
    is_active: bool = True


class LoginRequest(BaseModel):
    username: str
    password: str


class Marque(BaseModel):
    id: int
    name: str


class Modele(BaseModel):
    id: int
    name: str
    marque_id: int


class MarqueWithModeles(Marque):
    modeles: list[Modele] = Field(default_factory=list)


class MarqueCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Le nom est requis")
        return stripped


class ModeleCreate(MarqueCreate):
    pass


class LotItemInput(BaseModel):
    """Ligne saisie à la réception, avant insertion."""

    serial_number: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("serial_number", "serialNumber"),
    )
    type: ItemType
    marque_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("marque_id", "marqueId"))
    modele_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("modele_id", "modeleId"))
    entry_type: EntryType = Field(default="manual", validation_alias=AliasChoices("entry_type", "entryType"))
    date: Optional[str] = None
    time: Optional[str] = None
    state: Optional[str] = None
    technician: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def _strip_serial(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Le numéro de série est requis")
        return stripped

    @field_validator("state", mode="before")
    @classmethod
    def _normalize_state(cls, value: object) -> Optional[str]:
        return normalize_state(value)

    @field_validator("technician", mode="before")
    @classmethod
    def _normalize_technician(cls, value: object) -> Optional[str]:
        return normalize_text(value)


class LotCreate(BaseModel):
    items: list[LotItemInput] = Field(default_factory=list)
    lot_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("lot_name", "lotName"))
    lot_details: Optional[str] = Field(default=None, validation_alias=AliasChoices("lot_details", "lotDetails"))

    @field_validator("lot_name", "lot_details", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> Optional[str]:
        return normalize_text(value)


class LotCreated(BaseModel):
    id: int
    total: int


class LotItem(BaseModel):
    id: int
    lot_id: int
    serial_number: str
    type: str
    marque_id: Optional[int] = None
    modele_id: Optional[int] = None
    marque_name: Optional[str] = None
    modele_name: Optional[str] = None
    entry_type: str = "manual"
    date: Optional[str] = None
    time: Optional[str] = None
    state: Optional[str] = None
    technician: Optional[str] = None
    state_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("state", mode="before")
    @classmethod
    def _normalize_state(cls, value: object) -> Optional[str]:
        return normalize_state(value)

    @field_validator("technician", mode="before")
    @classmethod
    def _normalize_technician(cls, value: object) -> Optional[str]:
        return normalize_text(value)


class LotItemUpdate(BaseModel):
    """Modification partielle: seuls les champs fournis sont appliqués."""

    state: Optional[str] = None
    technician: Optional[str] = None

    @field_validator("state", mode="before")
    @classmethod
    def _normalize_state(cls, value: object) -> Optional[str]:
        return normalize_state(value)

    @field_validator("technician", mode="before")
    @classmethod
    def _normalize_technician(cls, value: object) -> Optional[str]:
        return normalize_text(value)


class ItemUpdateResult(BaseModel):
    item: LotItem
    lot_finished: bool = Field(
        default=False,
        validation_alias=AliasChoices("lot_finished", "lotFinished"),
        serialization_alias="lotFinished",
    )


class LotSummary(BaseModel):
    id: int
    created_at: datetime
    finished_at: Optional[datetime] = None
    recovered_at: Optional[datetime] = None
    lot_name: Optional[str] = None
    lot_details: Optional[str] = None
    pdf_path: Optional[str] = None
    total: int = 0
    pending: int = 0
    recond: int = 0
    pieces: int = 0
    hs: int = 0
    undefined: int = 0


class Lot(LotSummary):
    items: list[LotItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _items_never_missing(cls, value: object) -> object:
        return [] if value is None else value


class LotUpdate(BaseModel):
    lot_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("lot_name", "lotName"))
    lot_details: Optional[str] = Field(default=None, validation_alias=AliasChoices("lot_details", "lotDetails"))
    status: Optional[str] = Field(default=None, pattern=r"^(active|finished|recovered)$")
    finished_at: Optional[datetime] = None
    recovered_at: Optional[datetime] = None

    @field_validator("lot_name", "lot_details", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> Optional[str]:
        return normalize_text(value)


class LotListResponse(BaseModel):
    items: list[LotSummary]


class LotDetailResponse(BaseModel):
    item: Lot


class PdfUpload(BaseModel):
    pdf_base64: Optional[str] = Field(default=None, validation_alias=AliasChoices("pdf_base64", "pdfBase64"))


class PdfPathResponse(BaseModel):
    pdf_path: str


class EmailRequest(BaseModel):
    recipient: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    message: Optional[str] = Field(default=None, max_length=2000)


class EmailResponse(BaseModel):
    recipient: str
    link: str
    message: Optional[str] = None


class PdfDiagnostics(BaseModel):
    renderer_mode: str
    renderer_active: str
    template_available: bool
    playwright_status: str
    playwright_available: bool
    browser_available: bool
    playwright_version: Optional[str] = None
    python_executable: str
    os: str


class HealthResponse(BaseModel):
    status: str = "ok"
    backend: str


__all__ = [
    "EmailRequest",
    "EmailResponse",
    "HealthResponse",
    "ItemUpdateResult",
    "LoginRequest",
    "Lot",
    "LotCreate",
    "LotCreated",
    "LotDetailResponse",
    "LotItem",
    "LotItemInput",
    "LotItemUpdate",
    "LotListResponse",
    "LotStatus",
    "LotSummary",
    "LotUpdate",
    "Marque",
    "MarqueCreate",
    "MarqueWithModeles",
    "Modele",
    "ModeleCreate",
    "PdfDiagnostics",
    "PdfPathResponse",
    "PdfUpload",
    "Token",
    "User",
]
