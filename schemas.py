import math

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional, Union

Number = Union[int, float]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Record(CamelModel):
    """Fixed known fields plus an open ``metadata`` map.

    Keys that are not declared fields are folded into ``metadata`` instead
    of being rejected or dropped.
    """

    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extras(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set()
        for name, field in cls.model_fields.items():
            known.add(name)
            if field.alias:
                known.add(field.alias)
        extras = {k: v for k, v in data.items() if k not in known}
        if not extras:
            return data
        data = {k: v for k, v in data.items() if k in known}
        metadata = dict(data.get("metadata") or {})
        metadata.update(extras)
        data["metadata"] = metadata
        return data


# Stored records
class User(Record):
    id: str
    email: str
    password: str = Field(..., description="PBKDF2 digest, or plain text for records created before hashing")
    password_salt: Optional[str] = None
    name: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    profile_pic: Optional[str] = None
    created_at: Optional[str] = None

    def public(self) -> "PublicUser":
        return PublicUser.model_validate(self.model_dump(exclude={"password", "password_salt"}))


class PublicUser(Record):
    id: str
    email: str
    name: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    profile_pic: Optional[str] = None
    created_at: Optional[str] = None


class Item(Record):
    id: str
    user_id: str
    name: str = ""
    stock: int = Field(0, ge=0)
    price: Optional[float] = None
    description: Optional[str] = None
    item_image: Optional[str] = None
    date_added: Optional[str] = None

    # older or hand-edited files may hold stock as a string or a fraction
    @field_validator("stock", mode="before")
    @classmethod
    def _stored_stock(cls, value: Any) -> int:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return 0
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return 0
        return max(int(value), 0)

    @field_validator("price", mode="before")
    @classmethod
    def _stored_price(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            price = float(value)
        except (TypeError, ValueError):
            return None
        return price if math.isfinite(price) else None

    @field_validator("name", "description", mode="before")
    @classmethod
    def _stored_text(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return "" if info.field_name == "name" else None
        return value if isinstance(value, str) else str(value)


class Activity(Record):
    id: str
    user_id: str
    item_id: str
    item_name: Optional[str] = Field(None, description="Item name at the time the activity was recorded")
    type: Literal["sale", "loss"]
    loss_type: Optional[str] = None
    quantity: int
    amount: float = 0
    date: str


# Request payloads
class RegisterPayload(Record):
    email: EmailStr
    password: Optional[str] = None
    name: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    profile_pic: Optional[str] = None


class LoginPayload(CamelModel):
    email: EmailStr
    password: str


class UserUpdate(Record):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    name: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    profile_pic: Optional[str] = None


class ItemCreate(Record):
    name: str
    stock: int = Field(0, ge=0)
    price: Optional[float] = None
    description: Optional[str] = None
    item_image: Optional[str] = None


class ItemUpdate(Record):
    name: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    price: Optional[float] = None
    description: Optional[str] = None
    item_image: Optional[str] = None


class SalePayload(CamelModel):
    item_id: str
    quantity: int = Field(..., gt=0)
    amount: float = Field(0, ge=0)


class LossPayload(SalePayload):
    loss_type: Optional[str] = Field(None, alias="type", description="Free-form category: damaged, stolen, expired...")


# Responses
class SuccessResponse(CamelModel):
    success: bool = True


class UserEnvelope(SuccessResponse):
    user: PublicUser


class ItemEnvelope(SuccessResponse):
    item: Item


class SaleReceipt(CamelModel):
    item_id: str
    quantity: int
    amount: float
    date: str


class LossReceipt(SaleReceipt):
    loss_type: Optional[str] = Field(None, alias="type")


class SaleEnvelope(SuccessResponse):
    sale: SaleReceipt


class LossEnvelope(SuccessResponse):
    loss: LossReceipt


class Series(CamelModel):
    labels: List[Any] = Field(default_factory=list)
    data: List[Number] = Field(default_factory=list)


class DashboardReport(CamelModel):
    total_stock: Number = 0
    monthly_revenue: Number = 0
    monthly_losses: Number = 0
    recent_activities: List[Dict[str, Any]] = Field(default_factory=list)


class AnalysisReport(CamelModel):
    total_revenue: Number = 0
    total_losses: Number = 0
    items_sold: Number = 0
    items_lost: Number = 0
    monthly_sales: Series = Field(default_factory=Series)
    monthly_losses: Series = Field(default_factory=Series)
    top_items: Series = Field(default_factory=Series)
    loss_types: Series = Field(default_factory=Series)
